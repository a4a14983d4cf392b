"""
Core types and pure functions for the time-locked vault.

This module provides the foundational data structures shared by every other module:
1. Protocols: LedgerView for read-only access to balances and time
2. Immutable data structures: Move, PendingTransaction, Transaction, Unit, VaultTerms
3. Exceptions: VaultError and the balance / vault specific error types
4. Type aliases: Positions, BalanceMap
5. Unit factories: Functions to create the asset and share units

Amounts are integral Decimals expressed in base units of the unit they
measure (e.g. wei for an 18-decimals asset). All functions in this module
are pure; none can mutate ledger or vault state.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_EVEN, getcontext
from enum import Enum
from typing import Dict, Set, Optional, Protocol, Tuple, FrozenSet, runtime_checkable


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Share and asset arithmetic must be deterministic. Amounts are integral, but
# intermediate products (assets * supply) easily reach 50 significant digits
# for 18-decimals assets, so the context is widened accordingly.
#
# Code that needs a different precision uses decimal.localcontext() rather
# than touching the global context.
#
_VAULT_DECIMAL_CONTEXT = getcontext()
_VAULT_DECIMAL_CONTEXT.prec = 80
_VAULT_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet standing for "nobody": the source of every mint and the
# destination of every burn. It is exempt from balance validation.
SYSTEM_WALLET = "system"

UNIT_TYPE_ASSET = "ASSET"
UNIT_TYPE_SHARE = "SHARE"

ZERO = Decimal("0")

DEFAULT_LOCK_DURATION = timedelta(days=7)
DEFAULT_SECONDS_PER_YEAR = 365 * 24 * 60 * 60

# Rates are expressed in parts-per-thousand (100 == 10.0%).
RATE_DENOMINATOR = 1000
PERCENT_DENOMINATOR = 100


# ============================================================================
# TYPE ALIASES
# ============================================================================

# wallet -> quantity of one unit
Positions = Dict[str, Decimal]

# unit -> quantity held by one wallet
BalanceMap = Dict[str, Decimal]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to the balance ledger.

    The vault and its helpers accept a LedgerView wherever they only need to
    observe balances or the logical clock. The Ledger class implements this
    protocol but also provides mutation methods.
    """

    @property
    def current_time(self) -> datetime:
        """Logical clock; lock expiry and accrual are measured against it."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """Zero when the wallet never held the unit."""
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        """Non-zero holdings by wallet."""
        ...

    def total_supply(self, unit_symbol: str) -> Decimal:
        """Circulating amount: everything outside SYSTEM_WALLET."""
        ...

    def list_wallets(self) -> Set[str]:
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    What Ledger.execute() did with a PendingTransaction.

    APPLIED: Transaction was validated and applied to the ledger.
    REJECTED: Transaction failed validation (registration, balance limits).
    """
    APPLIED = "applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated, for the audit trail."""
    USER_ACTION = "user_action"           # Direct ledger use (transfers, funding)
    VAULT = "vault"                       # Deposit / withdrawal flows
    SYSTEM = "system"                     # Administrative operations


# ============================================================================
# EXCEPTIONS
# ============================================================================

class VaultError(Exception):
    """Base exception for all vault and balance-ledger errors."""
    pass


class UnitNotRegistered(VaultError):
    """Raised when attempting to operate on a unit that has not been registered with the ledger."""
    pass


class WalletNotRegistered(VaultError):
    """Raised when attempting to operate on a wallet that has not been registered with the ledger."""
    pass


class TransactionRejected(VaultError):
    """Raised when a balance mutation requested by the vault is rejected by the ledger."""
    pass


class InsufficientFunds(TransactionRejected):
    """Raised when a move would take a wallet balance below the unit's minimum."""
    pass


class BalanceConstraintViolation(TransactionRejected):
    """Raised when a move would take a wallet balance above the unit's maximum."""
    pass


class LimitExceeded(VaultError):
    """
    Raised when a deposit, mint, withdrawal or redemption exceeds the
    caller's currently available (fee-adjusted, lock-aware) maximum.
    """

    def __init__(self, operation: str, owner: str, requested: Decimal, maximum: Decimal):
        self.operation = operation
        self.owner = owner
        self.requested = requested
        self.maximum = maximum
        super().__init__(
            f"{operation} exceeds maximum for {owner}: requested {requested}, max {maximum}"
        )


class AccountingUnderflow(VaultError):
    """Raised when a value decrease would drive the tracked total value negative."""

    def __init__(self, total_value: Decimal, delta: Decimal):
        self.total_value = total_value
        self.delta = delta
        super().__init__(f"total value {total_value} cannot absorb delta {delta}")


class PreconditionViolation(VaultError):
    """Raised when an action is attempted in a state that does not allow it."""
    pass


class EnforcedPause(PreconditionViolation):
    """Raised when a value-changing action is attempted while the vault is paused."""
    pass


class ExpectedPause(PreconditionViolation):
    """Raised when an emergency action is attempted while the vault is not paused."""
    pass


class MissingDestination(PreconditionViolation):
    """Raised when an emergency withdrawal has no destination configured."""
    pass


class ReservedWallet(PreconditionViolation):
    """Raised when SYSTEM_WALLET is named as a party to a vault action."""
    pass


class Unauthorized(VaultError):
    """Raised when an account lacks the role (or allowance) an action requires."""

    def __init__(self, account: str, role: str):
        self.account = account
        self.role = role
        super().__init__(f"{account} is missing role {role}")


# ============================================================================
# AMOUNTS
# ============================================================================

def as_amount(value, name: str = "amount") -> Decimal:
    """
    Coerce an int/str/Decimal into a non-negative integral Decimal amount.

    Floats are rejected: base-unit amounts must be exact.

    Raises:
        ValueError: If the value is a float, negative, non-finite or fractional
    """
    if isinstance(value, float):
        raise ValueError(f"{name} must be int or Decimal, got float {value!r}")
    if not isinstance(value, Decimal):
        value = Decimal(value)
    if not value.is_finite():
        raise ValueError(f"{name} must be finite, got {value}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
    if value != value.to_integral_value():
        raise ValueError(f"{name} must be integral, got {value}")
    return value.quantize(Decimal(1))


# ============================================================================
# MOVES AND TRANSACTIONS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    quantity of unit_symbol leaving source for dest.

    Mints come from SYSTEM_WALLET and burns go to it. contract_id names the
    vault flow ("deposit", "redeem", ...) that produced the move.
    """
    quantity: Decimal
    unit_symbol: str
    source: str
    dest: str
    contract_id: str

    def __post_init__(self):
        for field_name in ("source", "dest", "unit_symbol", "contract_id"):
            text = getattr(self, field_name)
            if not text or not text.strip():
                raise ValueError(f"Move {field_name} cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal, got {type(self.quantity).__name__}")
        if not self.quantity.is_finite():
            raise ValueError(f"Move quantity must be finite, got {self.quantity}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError(f"Move source and dest must be different, both are {self.source}")

    @property
    def is_mint(self) -> bool:
        return self.source == SYSTEM_WALLET

    @property
    def is_burn(self) -> bool:
        return self.dest == SYSTEM_WALLET

    def __repr__(self) -> str:
        return f"Move({self.source} -> {self.dest}: {self.quantity} {self.unit_symbol})"


@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """Audit tag: which kind of actor (origin_type), which one (source_id), doing what."""
    origin_type: OriginType
    source_id: str
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        label = f"{self.origin_type.value}:{self.source_id}"
        return f"Origin({label}/{self.event_type})" if self.event_type else f"Origin({label})"


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """Moves the vault wants applied together, stamped with the ledger time it saw."""
    moves: Tuple[Move, ...]
    origin: TransactionOrigin
    timestamp: datetime

    def is_empty(self) -> bool:
        return len(self.moves) == 0

    def __repr__(self) -> str:
        return f"PendingTransaction({self.origin}, {len(self.moves)} moves)"


def build_transaction(view: LedgerView, moves, origin: Optional[TransactionOrigin] = None
                      ) -> PendingTransaction:
    """Wrap moves in a PendingTransaction at view.current_time; origin defaults to a user action."""
    return PendingTransaction(
        tuple(moves),
        origin or TransactionOrigin(OriginType.USER_ACTION, "user"),
        view.current_time,
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    A PendingTransaction after the ledger applied it, as kept in the audit log.

    exec_id and sequence_number are assigned by the executing ledger;
    sequence numbers increase by one per applied transaction. contract_ids
    is derived from the moves when not given.
    """
    moves: Tuple[Move, ...]
    origin: TransactionOrigin
    timestamp: datetime
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    contract_ids: Optional[FrozenSet[str]] = None

    def __post_init__(self):
        if not self.moves:
            raise ValueError("Transaction must have moves")
        if self.contract_ids is None:
            object.__setattr__(self, "contract_ids", frozenset(m.contract_id for m in self.moves))

    def __repr__(self) -> str:
        return f"Transaction(#{self.sequence_number} {self.origin}: {list(self.moves)})"


# ============================================================================
# UNITS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Unit:
    """
    A fungible unit on the ledger: the vault's asset or its share.

    Wallet balances other than SYSTEM_WALLET must stay within
    [min_balance, max_balance]; balances are truncated to decimal_places.
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: Decimal = ZERO
    max_balance: Decimal = Decimal("Infinity")
    decimal_places: int = 0

    def round(self, value: Decimal) -> Decimal:
        return Decimal(value).quantize(Decimal(1).scaleb(-self.decimal_places), rounding=ROUND_DOWN)


# ============================================================================
# VAULT TERMS
# ============================================================================

@dataclass(frozen=True, slots=True)
class VaultTerms:
    """
    Immutable term sheet for a vault - set at construction, never changes.

    Rates are parts-per-thousand; the withdrawal fee is a whole percentage.
    The stepped APY is base_apy + floor(total_value / apy_step_size) *
    apy_step_rate, clamped at max_apy.
    """
    lock_duration: timedelta = DEFAULT_LOCK_DURATION
    withdrawal_fee_percent: int = 5
    base_apy: int = 100
    apy_step_size: Decimal = Decimal(10) ** 24
    apy_step_rate: int = 10
    max_apy: int = 200
    seconds_per_year: int = DEFAULT_SECONDS_PER_YEAR
    decimals_offset: int = 0

    def __post_init__(self):
        """Convert numeric inputs to Decimal and validate ranges."""
        if not isinstance(self.apy_step_size, Decimal):
            object.__setattr__(self, 'apy_step_size', Decimal(str(self.apy_step_size)))

        if self.lock_duration < timedelta(0):
            raise ValueError(f"lock_duration must be non-negative, got {self.lock_duration}")
        if not 0 <= self.withdrawal_fee_percent < PERCENT_DENOMINATOR:
            raise ValueError(
                f"withdrawal_fee_percent must be in [0, 100), got {self.withdrawal_fee_percent}"
            )
        if self.base_apy < 0:
            raise ValueError(f"base_apy must be non-negative, got {self.base_apy}")
        if self.apy_step_rate < 0:
            raise ValueError(f"apy_step_rate must be non-negative, got {self.apy_step_rate}")
        if self.max_apy < self.base_apy:
            raise ValueError(f"max_apy ({self.max_apy}) must be >= base_apy ({self.base_apy})")
        if self.apy_step_size <= 0:
            raise ValueError(f"apy_step_size must be positive, got {self.apy_step_size}")
        if self.seconds_per_year <= 0:
            raise ValueError(f"seconds_per_year must be positive, got {self.seconds_per_year}")
        if self.decimals_offset < 0:
            raise ValueError(f"decimals_offset must be non-negative, got {self.decimals_offset}")


# ============================================================================
# UNIT FACTORIES
# ============================================================================

def asset(symbol: str, name: str) -> Unit:
    """
    Create the underlying asset unit held in custody by the vault.

    Args:
        symbol: Asset ticker (e.g., "USDC").
        name: Full name of the asset.

    Returns:
        A Unit with integral base-unit balances that cannot go negative.
    """
    return Unit(symbol=symbol, name=name, unit_type=UNIT_TYPE_ASSET)


def shares(symbol: str, name: str) -> Unit:
    """
    Create the vault share unit.

    Args:
        symbol: Share ticker (e.g., "vUSDC").
        name: Full name of the share token.

    Returns:
        A Unit with integral balances; issuance and burning go through SYSTEM_WALLET.
    """
    return Unit(symbol=symbol, name=name, unit_type=UNIT_TYPE_SHARE)
