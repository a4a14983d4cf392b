"""
ledger.py - Stateful Balance Ledger

The Ledger class is the fungible-balance collaborator of the vault: it holds
asset and share balances for every wallet and is the only module that
mutates them.

Key responsibilities:
    - Implements LedgerView protocol for safe read-only access
    - Executes transactions atomically (all moves succeed or all fail)
    - Issues and retires units through SYSTEM_WALLET (mint / burn)
    - Invokes per-unit move hooks before each move is applied
    - Tracks logical time (forward only) and keeps an audit log
    - Provides snapshot()/restore() so callers can roll back compound actions
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Set, Optional, Tuple, Type, Any
import copy
import logging

from .core import (
    # Types
    Move, Transaction, Unit,
    PendingTransaction, TransactionOrigin, OriginType,
    ExecuteResult,
    Positions, BalanceMap,
    build_transaction,
    # Constants
    SYSTEM_WALLET, ZERO,
    # Exceptions
    VaultError, TransactionRejected, InsufficientFunds, BalanceConstraintViolation,
    UnitNotRegistered, WalletNotRegistered,
)

logger = logging.getLogger(__name__)

# Invoked as hook(source, dest, quantity) before a move of the hooked unit is
# applied. source is SYSTEM_WALLET for mints, dest is SYSTEM_WALLET for burns.
MoveHook = Callable[[str, str, Decimal], None]

# (valid, reason, exception type _move raises when not valid)
_Validation = Tuple[bool, str, Type[TransactionRejected]]


@dataclass(frozen=True)
class LedgerSnapshot:
    """Point-in-time copy of everything execute() can change."""
    balances: Dict[str, Dict[str, Decimal]]
    positions_by_unit: Dict[str, Dict[str, Decimal]]
    transaction_log: Tuple[Transaction, ...]
    next_sequence: int
    registered_wallets: frozenset
    units: Dict[str, Unit]


class Ledger:
    """
    Asset and share balances of every wallet, with an audit log.

    Every execute() is validated in full (timestamp, registration, unit
    min/max balance) before anything is applied, and every applied
    transaction is appended to transaction_log with a sequence number.
    Hooks registered for a unit run right before each move of that unit,
    while the balances still show the pre-move state.

    Not thread-safe; the vault drives it from a single thread.

    Example:
        ledger = Ledger("main")
        ledger.register_unit(asset("USDC", "USD Coin"))
        ledger.register_wallet("alice")
        ledger.mint("alice", "USDC", Decimal("1000"))
        ledger.transfer("alice", "bob", "USDC", Decimal("100"))
    """

    def __init__(self, name: str, initial_time: Optional[datetime] = None,
                 test_mode: bool = False):
        """
        Args:
            name: Ledger identifier, used in execution ids
            initial_time: Starting logical time (default: 1970-01-01)
            test_mode: Allow set_balance() (default: False)
        """
        self.name = name
        self.units: Dict[str, Unit] = {}
        self.registered_wallets: Set[str] = {SYSTEM_WALLET}
        self.balances: Dict[str, Dict[str, Decimal]] = {SYSTEM_WALLET: defaultdict(lambda: ZERO)}
        self.transaction_log: List[Transaction] = []
        self.last_rejection: Optional[str] = None
        self.last_rejection_error: Type[TransactionRejected] = TransactionRejected
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self._test_mode = test_mode
        self._next_sequence = 0
        # unit -> {wallet -> non-zero quantity}
        self._positions_by_unit: Dict[str, Dict[str, Decimal]] = defaultdict(dict)
        self._hooks: Dict[str, List[MoveHook]] = defaultdict(list)

    def _require_wallet(self, wallet_id: str) -> None:
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")

    def _require_unit(self, unit_symbol: str) -> None:
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")

    # ========================================================================
    # READS (LedgerView)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        return self._current_time

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """
        Raises:
            WalletNotRegistered: If wallet is not registered
            UnitNotRegistered: If unit is not registered
        """
        self._require_wallet(wallet_id)
        self._require_unit(unit_symbol)
        return self.balances[wallet_id].get(unit_symbol, ZERO)

    def get_positions(self, unit_symbol: str) -> Positions:
        """Non-zero holdings of a unit by wallet, SYSTEM_WALLET included."""
        return dict(self._positions_by_unit.get(unit_symbol, {}))

    def list_wallets(self) -> Set[str]:
        return set(self.registered_wallets)

    def list_units(self) -> List[str]:
        return sorted(self.units)

    def get_unit(self, symbol: str) -> Unit:
        self._require_unit(symbol)
        return self.units[symbol]

    def get_wallet_balances(self, wallet_id: str) -> BalanceMap:
        self._require_wallet(wallet_id)
        return dict(self.balances[wallet_id])

    def total_supply(self, unit_symbol: str) -> Decimal:
        """
        Circulating amount of a unit: everything held outside SYSTEM_WALLET.
        Summed in sorted wallet order so the result never depends on set
        iteration order.
        """
        self._require_unit(unit_symbol)
        holders = sorted(self.registered_wallets - {SYSTEM_WALLET})
        return sum((self.balances[w].get(unit_symbol, ZERO) for w in holders), ZERO)

    def verify_double_entry(self) -> Dict[str, Any]:
        """
        Check that every unit nets to zero across all wallets.

        Mint and burn are the only ways in and out of circulation, so the
        system wallet must hold exactly minus the circulating supply.
        set_balance() breaks this deliberately.

        Returns:
            {'valid': bool,
             'supplies': {unit: circulating supply},
             'discrepancies': [{'unit', 'circulating', 'system_balance'}, ...]}
        """
        supplies = {symbol: self.total_supply(symbol) for symbol in sorted(self.units)}
        system = self.balances[SYSTEM_WALLET]
        discrepancies = [
            {'unit': symbol, 'circulating': supply,
             'system_balance': system.get(symbol, ZERO)}
            for symbol, supply in supplies.items()
            if supply + system.get(symbol, ZERO) != 0
        ]
        return {'valid': not discrepancies, 'supplies': supplies,
                'discrepancies': discrepancies}

    def is_registered(self, wallet_id: str) -> bool:
        return wallet_id in self.registered_wallets

    # ========================================================================
    # CLOCK
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Move the logical clock to new_time. The vault reads lock expiry and
        yield accrual off this clock.

        Raises:
            ValueError: If new_time is earlier than the current time
        """
        if new_time < self._current_time:
            raise ValueError(f"Cannot move time backwards: {new_time} < {self._current_time}")
        self._current_time = new_time

    # ========================================================================
    # SETUP
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Raises:
            ValueError: If wallet is already registered
        """
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(lambda: ZERO)
        return wallet_id

    def ensure_wallet(self, wallet_id: str) -> str:
        """Register wallet_id unless it already exists; receivers are created on demand."""
        if not self.is_registered(wallet_id):
            self.register_wallet(wallet_id)
        return wallet_id

    def register_unit(self, unit: Unit) -> None:
        """
        Raises:
            ValueError: If the symbol is already taken
        """
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        logger.debug("registered unit %s (%s) [%s]", unit.symbol, unit.name, unit.unit_type)

    def register_hook(self, unit_symbol: str, hook: MoveHook) -> None:
        """
        Call hook(source, dest, quantity) before every move of unit_symbol.
        Hooks run in registration order.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        self._require_unit(unit_symbol)
        self._hooks[unit_symbol].append(hook)

    def set_balance(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        """
        Overwrite a balance, bypassing mint/burn and hooks. Test mode only.

        Raises:
            VaultError: If the ledger was not created with test_mode=True
        """
        if not self._test_mode:
            raise VaultError(
                "set_balance() needs a ledger created with test_mode=True; "
                "use mint(), burn(), transfer() or execute() instead"
            )
        self._require_wallet(wallet_id)
        self._require_unit(unit_symbol)
        quantity = Decimal(str(quantity)) if not isinstance(quantity, Decimal) else quantity
        self.balances[wallet_id][unit_symbol] = quantity
        self._update_position_index(wallet_id, unit_symbol, quantity)

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """exec:{ledger}:{sequence, 12 digits}:{logical time in microseconds}"""
        micros = int(self._current_time.timestamp() * 1_000_000)
        return f"exec:{self.name}:{sequence:012d}:{micros}"

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Execute a PendingTransaction atomically.

        All moves succeed together or all fail together. Hooks registered
        for a move's unit run right before that move is applied; a hook may
        re-enter the ledger, in which case the move is validated again
        against the balances the hook left behind. If that check fails or a
        hook raises, every move already applied by this call is rolled back.
        Hooks are responsible for their own state.

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.REJECTED if validation failed (see last_rejection)
        """
        self.last_rejection = None
        self.last_rejection_error = TransactionRejected
        if pending.is_empty():
            return ExecuteResult.APPLIED

        valid, reason, error = self._validate_pending(pending)
        if not valid:
            return self._reject(reason, error)

        hooked = any(self._hooks.get(m.unit_symbol) for m in pending.moves)
        checkpoint = self.snapshot() if hooked else None
        try:
            for move in pending.moves:
                hooks = list(self._hooks.get(move.unit_symbol, ()))
                for hook in hooks:
                    hook(move.source, move.dest, move.quantity)
                if hooks:
                    valid, reason, error = self._validate_moves((move,))
                    if not valid:
                        self.restore(checkpoint)
                        return self._reject(reason, error)
                self._execute_moves((move,))
        except Exception:
            if checkpoint is not None:
                self.restore(checkpoint)
            raise

        sequence = self._next_sequence
        self._next_sequence += 1
        tx = Transaction(
            moves=pending.moves,
            origin=pending.origin,
            timestamp=pending.timestamp,
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
            execution_time=self._current_time,
            sequence_number=sequence,
        )
        self.transaction_log.append(tx)
        logger.debug("applied %r", tx)
        return ExecuteResult.APPLIED

    def _reject(self, reason: str, error: Type[TransactionRejected]) -> ExecuteResult:
        self.last_rejection = reason
        self.last_rejection_error = error
        logger.info("rejected transaction on %s: %s", self.name, reason)
        return ExecuteResult.REJECTED

    def _validate_pending(self, pending: PendingTransaction) -> _Validation:
        """
        Check a pending transaction before any hook runs: no future
        timestamp, then everything _validate_moves checks.

        Returns:
            (valid, reason, exception type _move raises when not valid)
        """
        if pending.timestamp > self._current_time:
            return False, "future timestamp", TransactionRejected
        return self._validate_moves(pending.moves)

    def _validate_moves(self, moves) -> _Validation:
        """Registration of every unit and wallet, then unit min/max on net balances."""
        for move in moves:
            for missing, label in ((move.unit_symbol not in self.units, f"unit not registered: {move.unit_symbol}"),
                                   (not self.is_registered(move.source), f"wallet not registered: {move.source}"),
                                   (not self.is_registered(move.dest), f"wallet not registered: {move.dest}")):
                if missing:
                    return False, label, TransactionRejected

        net: Dict[Tuple[str, str], Decimal] = defaultdict(lambda: ZERO)
        for move in moves:
            net[(move.source, move.unit_symbol)] -= move.quantity
            net[(move.dest, move.unit_symbol)] += move.quantity

        for (wallet, symbol), delta in net.items():
            # SYSTEM_WALLET mirrors the circulating supply and goes negative
            if wallet == SYSTEM_WALLET:
                continue
            unit = self.units[symbol]
            proposed = unit.round(self.balances[wallet][symbol] + delta)
            if proposed < unit.min_balance:
                return False, f"{wallet} {symbol}: {proposed} < min {unit.min_balance}", InsufficientFunds
            if proposed > unit.max_balance:
                return False, f"{wallet} {symbol}: {proposed} > max {unit.max_balance}", BalanceConstraintViolation
        return True, "", TransactionRejected

    def _update_position_index(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        positions = self._positions_by_unit[unit_symbol]
        if quantity:
            positions[wallet_id] = quantity
        else:
            positions.pop(wallet_id, None)

    def _credit(self, wallet_id: str, unit: Unit, delta: Decimal) -> None:
        balance = unit.round(self.balances[wallet_id][unit.symbol] + delta)
        self.balances[wallet_id][unit.symbol] = balance
        self._update_position_index(wallet_id, unit.symbol, balance)

    def _execute_moves(self, moves) -> None:
        for move in moves:
            unit = self.units[move.unit_symbol]
            self._credit(move.source, unit, -move.quantity)
            self._credit(move.dest, unit, move.quantity)

    # ========================================================================
    # TOKEN OPERATIONS (Mutating)
    # ========================================================================

    def mint(self, account: str, unit_symbol: str, quantity: Decimal,
             origin: Optional[TransactionOrigin] = None) -> Transaction:
        """Issue quantity of a unit to account (SYSTEM_WALLET -> account)."""
        return self._move(SYSTEM_WALLET, account, unit_symbol, quantity, "mint", origin)

    def burn(self, account: str, unit_symbol: str, quantity: Decimal,
             origin: Optional[TransactionOrigin] = None) -> Transaction:
        """Retire quantity of a unit held by account (account -> SYSTEM_WALLET)."""
        return self._move(account, SYSTEM_WALLET, unit_symbol, quantity, "burn", origin)

    def transfer(self, source: str, dest: str, unit_symbol: str, quantity: Decimal,
                 origin: Optional[TransactionOrigin] = None) -> Transaction:
        """Move quantity of a unit between two wallets."""
        return self._move(source, dest, unit_symbol, quantity, "transfer", origin)

    def _move(self, source: str, dest: str, unit_symbol: str, quantity: Decimal,
              contract_id: str, origin: Optional[TransactionOrigin]) -> Transaction:
        """
        Execute a single-move transaction.

        Raises:
            InsufficientFunds: If a balance would fall below the unit minimum
            BalanceConstraintViolation: If a balance would exceed the unit maximum
            TransactionRejected: If the ledger rejects the move for another reason
        """
        if origin is None:
            origin = TransactionOrigin(OriginType.USER_ACTION, source, contract_id.upper())
        pending = build_transaction(
            self, [Move(quantity, unit_symbol, source, dest, contract_id)], origin
        )
        if self.execute(pending) == ExecuteResult.REJECTED:
            raise self.last_rejection_error(f"{contract_id} rejected: {self.last_rejection}")
        return self.transaction_log[-1]

    # ========================================================================
    # SNAPSHOTS
    # ========================================================================

    def snapshot(self) -> LedgerSnapshot:
        """
        Capture balances, registrations and the audit log.

        Time and hooks are not captured: time is never rewound, and hooks
        belong to whoever registered them.
        """
        return LedgerSnapshot(
            balances={w: dict(b) for w, b in self.balances.items()},
            positions_by_unit=copy.deepcopy(dict(self._positions_by_unit)),
            transaction_log=tuple(self.transaction_log),
            next_sequence=self._next_sequence,
            registered_wallets=frozenset(self.registered_wallets),
            units=dict(self.units),
        )

    def restore(self, snapshot: LedgerSnapshot) -> None:
        """Return the ledger to a state captured by snapshot()."""
        self.balances = {
            w: defaultdict(lambda: ZERO, b) for w, b in snapshot.balances.items()
        }
        self._positions_by_unit = defaultdict(
            dict, {u: dict(p) for u, p in snapshot.positions_by_unit.items()}
        )
        self.transaction_log = list(snapshot.transaction_log)
        self._next_sequence = snapshot.next_sequence
        self.registered_wallets = set(snapshot.registered_wallets)
        self.units = dict(snapshot.units)
