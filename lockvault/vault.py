"""
vault.py - Time-locked yield vault

The Vault ties the balance ledger, the timelock book and the yield engine
together. It issues shares against deposited assets, charges an early
withdrawal fee on the part of a withdrawal still covered by lock records,
and reports a pool value that compounds continuously at a stepped APY.

Lock bookkeeping is driven by a hook on the share unit, so it follows every
share movement on the ledger, not only the ones the vault starts:

    mint      -> create_lock(receiver, shares)
    burn      -> release(owner, fee-bearing part of the burned shares)
    transfer  -> transfer_locks(sender, receiver, shares)

Ordering of each action:
    deposit / mint:     custody in, mint shares, engine +assets
    withdraw / redeem:  burn shares, engine -assets, custody out

Conversions use a virtual offset so the exchange rate of an empty pool
cannot be manipulated:

    shares = assets * (supply + 10**decimals_offset) / (total_assets + 1)
    assets = shares * (total_assets + 1) / (supply + 10**decimals_offset)

Amounts computed for the caller round down (shares for a deposit, assets
for a redemption); amounts charged to the caller round up (assets for a
mint, shares for a withdrawal). Fee deductions round against the caller
the same way.

Every public action is all-or-nothing: ledger, locks, engine, allowances,
events and the pause flag are restored if anything inside it raises.
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING
import logging

from .core import (
    Unit, VaultTerms, TransactionOrigin, OriginType,
    SYSTEM_WALLET, ZERO, PERCENT_DENOMINATOR, UNIT_TYPE_SHARE,
    LimitExceeded, EnforcedPause, ExpectedPause, MissingDestination,
    ReservedWallet, Unauthorized, as_amount,
)
from .core import shares as make_share_unit
from .ledger import Ledger
from .timelocks import TimelockBook
from .yield_engine import YieldEngine
from .access import AccessControl, Role, DEFAULT_ADMIN_ROLE, PAUSER_ROLE, EMERGENCY_ROLE
from .events import Deposit, Withdraw, Paused, Unpaused, EmergencyWithdraw

if TYPE_CHECKING:
    from .config import VaultSettings

logger = logging.getLogger(__name__)

UNLIMITED = Decimal("Infinity")

_EPOCH = datetime(1970, 1, 1)
_EPOCH_UTC = datetime(1970, 1, 1, tzinfo=timezone.utc)
_SECOND = timedelta(seconds=1)


def _mul_div(x: Decimal, y: Decimal, denominator: Decimal, rounding: str) -> Decimal:
    """x * y / denominator on integers, rounded down or up."""
    quotient, remainder = divmod(int(x) * int(y), int(denominator))
    if remainder and rounding == ROUND_CEILING:
        quotient += 1
    return Decimal(quotient)


def _check_rounding(rounding: str) -> None:
    if rounding not in (ROUND_FLOOR, ROUND_CEILING):
        raise ValueError(f"rounding must be ROUND_FLOOR or ROUND_CEILING, got {rounding}")


def _require_parties(*accounts: str) -> None:
    for account in accounts:
        if account == SYSTEM_WALLET:
            raise ReservedWallet(f"{SYSTEM_WALLET} cannot be a party to a vault action")


class Vault:
    """
    Pooled vault over one asset unit of a Ledger.

    The vault registers its share unit and a custody wallet (named after
    the vault) on the ledger. The asset unit must already be registered
    and the custody wallet must not be.
    The admin account receives every role.

    Example:
        ledger = Ledger("main")
        ledger.register_unit(asset("USDC", "USD Coin"))
        ledger.register_wallet("alice")
        ledger.mint("alice", "USDC", Decimal(1000))

        vault = Vault(ledger, "USDC", shares("vUSDC", "Vault USDC"), admin="ops")
        vault.deposit(Decimal(1000), "alice")
        vault.max_withdraw("alice")     # 950: the whole deposit is still locked
    """

    def __init__(
        self,
        ledger: Ledger,
        asset_symbol: str,
        share_unit: Unit,
        admin: str,
        terms: Optional[VaultTerms] = None,
        name: str = "vault",
    ):
        if share_unit.unit_type != UNIT_TYPE_SHARE:
            raise ValueError(f"share unit must have type {UNIT_TYPE_SHARE}, got {share_unit.unit_type}")
        ledger.get_unit(asset_symbol)
        _require_parties(name)
        if ledger.is_registered(name):
            raise ValueError(f"custody wallet {name} is already registered on {ledger.name}")

        self.ledger = ledger
        self.name = name
        self.terms = terms or VaultTerms()
        self.asset_symbol = asset_symbol
        self.share_symbol = share_unit.symbol
        self.custody = name

        self.book = TimelockBook(self.terms.lock_duration // _SECOND)
        self.engine = YieldEngine(self.terms, self._now())
        self.access = AccessControl(admin)
        self.access.grant_role(PAUSER_ROLE, admin, caller=admin)
        self.access.grant_role(EMERGENCY_ROLE, admin, caller=admin)

        self.paused = False
        self.emergency_destination: Optional[str] = None
        self.events: List[object] = []
        self._allowances: Dict[Tuple[str, str], Decimal] = {}

        ledger.register_unit(share_unit)
        ledger.register_wallet(name)
        ledger.register_hook(self.share_symbol, self._on_share_move)

    @classmethod
    def from_settings(cls, ledger: Ledger, settings: VaultSettings, admin: str) -> 'Vault':
        """Build a vault from loaded configuration (see config.load_config)."""
        return cls(
            ledger,
            settings.asset_symbol,
            make_share_unit(settings.share_symbol, settings.share_name),
            admin,
            terms=settings.to_terms(),
            name=settings.name,
        )

    # ========================================================================
    # TIME / ATOMICITY
    # ========================================================================

    def _now(self) -> int:
        """Ledger time in whole seconds since the epoch."""
        t = self.ledger.current_time
        epoch = _EPOCH if t.tzinfo is None else _EPOCH_UTC
        return (t - epoch) // _SECOND

    @contextmanager
    def _atomic(self):
        checkpoint = (
            self.ledger.snapshot(),
            self.book.snapshot(),
            self.engine.snapshot(),
            dict(self._allowances),
            len(self.events),
            self.paused,
        )
        try:
            yield
        except Exception:
            ledger_snap, book_snap, engine_snap, allowances, n_events, paused = checkpoint
            self.ledger.restore(ledger_snap)
            self.book.restore(book_snap)
            self.engine.restore(engine_snap)
            self._allowances = allowances
            del self.events[n_events:]
            self.paused = paused
            raise

    def _origin(self, event_type: str, origin_type: OriginType = OriginType.VAULT) -> TransactionOrigin:
        return TransactionOrigin(origin_type, self.name, event_type)

    # ========================================================================
    # SHARE HOOK
    # ========================================================================

    def _on_share_move(self, source: str, dest: str, quantity: Decimal) -> None:
        """Keep lock records in step with share movements (runs pre-move)."""
        now = self._now()
        if source == SYSTEM_WALLET:
            self.book.create_lock(dest, quantity, now)
        elif dest == SYSTEM_WALLET:
            self.book.release(source, self._fee_bearing(source, quantity, now), now)
        else:
            self.book.transfer_locks(source, dest, quantity, now)

    def _fee_bearing(self, owner: str, shares: Decimal, now: int) -> Decimal:
        """Part of shares that must come out of owner's locked balance."""
        balance = self.ledger.get_balance(owner, self.share_symbol)
        unlocked = balance - self.book.locked_amount(owner, balance, now)
        return max(ZERO, shares - unlocked)

    # ========================================================================
    # VIEWS
    # ========================================================================

    @property
    def asset(self) -> str:
        """Symbol of the underlying asset."""
        return self.asset_symbol

    def total_assets(self) -> Decimal:
        """As-of-now pool value, including accrued yield."""
        return self.engine.total_value_at(self._now())

    def total_supply(self) -> Decimal:
        return self.ledger.total_supply(self.share_symbol)

    def balance_of(self, account: str) -> Decimal:
        if not self.ledger.is_registered(account):
            return ZERO
        return self.ledger.get_balance(account, self.share_symbol)

    def locked_amount(self, owner: str, limit: Optional[Decimal] = None) -> Decimal:
        """How much of up to limit shares of owner is still locked (None = all)."""
        return self.book.locked_amount(owner, limit, self._now())

    def apy(self) -> int:
        """Currently cached APY in parts-per-thousand."""
        return self.engine.state.apy

    # ========================================================================
    # CONVERSIONS
    # ========================================================================

    def convert_to_shares(self, assets: Decimal, rounding: str = ROUND_FLOOR) -> Decimal:
        _check_rounding(rounding)
        assets = as_amount(assets, "assets")
        return _mul_div(
            assets,
            self.total_supply() + 10 ** self.terms.decimals_offset,
            self.total_assets() + 1,
            rounding,
        )

    def convert_to_assets(self, shares: Decimal, rounding: str = ROUND_FLOOR) -> Decimal:
        _check_rounding(rounding)
        shares = as_amount(shares, "shares")
        return _mul_div(
            shares,
            self.total_assets() + 1,
            self.total_supply() + 10 ** self.terms.decimals_offset,
            rounding,
        )

    def _after_fee(self, assets: Decimal) -> Decimal:
        return _mul_div(
            assets, PERCENT_DENOMINATOR - self.terms.withdrawal_fee_percent,
            PERCENT_DENOMINATOR, ROUND_FLOOR,
        )

    def _before_fee(self, assets: Decimal) -> Decimal:
        return _mul_div(
            assets, PERCENT_DENOMINATOR,
            PERCENT_DENOMINATOR - self.terms.withdrawal_fee_percent, ROUND_CEILING,
        )

    def _unlocked_shares(self, owner: Optional[str]) -> Decimal:
        if owner is None:
            return ZERO
        balance = self.balance_of(owner)
        return balance - self.locked_amount(owner, balance)

    # ========================================================================
    # PREVIEWS
    # ========================================================================

    def preview_deposit(self, assets: Decimal) -> Decimal:
        """Shares a deposit of assets would mint now."""
        return self.convert_to_shares(assets, ROUND_FLOOR)

    def preview_mint(self, shares: Decimal) -> Decimal:
        """Assets a mint of shares would take now."""
        return self.convert_to_assets(shares, ROUND_CEILING)

    def preview_redeem(self, shares: Decimal, owner: Optional[str] = None) -> Decimal:
        """
        Net assets owner would receive for redeeming shares now.

        Shares up to owner's unlocked balance convert fee-free; the rest
        pays the withdrawal fee. Without an owner every share is treated
        as locked.
        """
        shares = as_amount(shares, "shares")
        free = min(shares, self._unlocked_shares(owner))
        locked = shares - free
        return (
            self.convert_to_assets(free, ROUND_FLOOR)
            + self._after_fee(self.convert_to_assets(locked, ROUND_FLOOR))
        )

    def preview_withdraw(self, assets: Decimal, owner: Optional[str] = None) -> Decimal:
        """
        Shares owner would burn to receive exactly assets now.

        Assets covered by owner's unlocked shares convert fee-free; the rest
        is grossed up by the fee before conversion. Without an owner every
        share is treated as locked.
        """
        assets = as_amount(assets, "assets")
        free_shares = self._unlocked_shares(owner)
        free_assets = self.convert_to_assets(free_shares, ROUND_FLOOR)
        if assets <= free_assets:
            return self.convert_to_shares(assets, ROUND_CEILING)
        gross = self._before_fee(assets - free_assets)
        return free_shares + self.convert_to_shares(gross, ROUND_CEILING)

    # ========================================================================
    # LIMITS
    # ========================================================================

    def max_deposit(self, receiver: str) -> Decimal:
        return ZERO if self.paused else UNLIMITED

    def max_mint(self, receiver: str) -> Decimal:
        return ZERO if self.paused else UNLIMITED

    def max_withdraw(self, owner: str) -> Decimal:
        """Net assets owner can withdraw now, after fees on locked shares."""
        if self.paused:
            return ZERO
        return self.preview_redeem(self.balance_of(owner), owner)

    def max_redeem(self, owner: str) -> Decimal:
        if self.paused:
            return ZERO
        return self.balance_of(owner)

    # ========================================================================
    # ALLOWANCES
    # ========================================================================

    def approve(self, owner: str, spender: str, shares: Decimal) -> None:
        """Let spender withdraw or redeem up to shares on owner's behalf."""
        if shares != UNLIMITED:
            shares = as_amount(shares, "shares")
        self._allowances[(owner, spender)] = shares

    def allowance(self, owner: str, spender: str) -> Decimal:
        return self._allowances.get((owner, spender), ZERO)

    def _spend_allowance(self, owner: str, spender: str, shares: Decimal) -> None:
        current = self.allowance(owner, spender)
        if current == UNLIMITED:
            return
        if shares > current:
            raise Unauthorized(spender, f"allowance of {owner} ({current} < {shares})")
        self._allowances[(owner, spender)] = current - shares

    # ========================================================================
    # SHARE TRANSFERS
    # ========================================================================

    def transfer(self, sender: str, receiver: str, shares: Decimal) -> None:
        """Move shares between accounts; their locks move with them."""
        _require_parties(sender, receiver)
        shares = as_amount(shares, "shares")
        if shares == 0:
            return
        with self._atomic():
            self.ledger.ensure_wallet(receiver)
            self.ledger.transfer(sender, receiver, self.share_symbol, shares,
                                 self._origin("TRANSFER"))

    # ========================================================================
    # DEPOSIT / MINT
    # ========================================================================

    def _require_not_paused(self) -> None:
        if self.paused:
            raise EnforcedPause(f"{self.name} is paused")

    def deposit(self, assets: Decimal, receiver: str, caller: Optional[str] = None) -> Decimal:
        """
        Deposit assets from caller and mint shares to receiver.

        Returns:
            Shares minted

        Raises:
            EnforcedPause: If the vault is paused
            TransactionRejected: If caller cannot supply the assets
        """
        self._require_not_paused()
        assets = as_amount(assets, "assets")
        caller = caller or receiver
        maximum = self.max_deposit(receiver)
        if assets > maximum:
            raise LimitExceeded("deposit", receiver, assets, maximum)
        with self._atomic():
            shares = self.preview_deposit(assets)
            self._enter(caller, receiver, assets, shares)
        return shares

    def mint(self, shares: Decimal, receiver: str, caller: Optional[str] = None) -> Decimal:
        """
        Mint exactly shares to receiver, taking the required assets from caller.

        Returns:
            Assets taken
        """
        self._require_not_paused()
        shares = as_amount(shares, "shares")
        caller = caller or receiver
        maximum = self.max_mint(receiver)
        if shares > maximum:
            raise LimitExceeded("mint", receiver, shares, maximum)
        with self._atomic():
            assets = self.preview_mint(shares)
            self._enter(caller, receiver, assets, shares)
        return assets

    def _enter(self, caller: str, receiver: str, assets: Decimal, shares: Decimal) -> None:
        _require_parties(caller, receiver)
        self.ledger.ensure_wallet(receiver)
        if assets > 0:
            self.ledger.transfer(caller, self.custody, self.asset_symbol, assets,
                                 self._origin("DEPOSIT"))
        if shares > 0:
            self.ledger.mint(receiver, self.share_symbol, shares, self._origin("DEPOSIT"))
        self.engine.update(assets, self._now())

        event = Deposit(caller, receiver, assets, shares, self.ledger.current_time)
        self.events.append(event)
        logger.info("deposit %s: %s -> %s, %s assets for %s shares",
                    self.name, caller, receiver, assets, shares)

    # ========================================================================
    # WITHDRAW / REDEEM
    # ========================================================================

    def withdraw(self, assets: Decimal, receiver: str, owner: str,
                 caller: Optional[str] = None) -> Decimal:
        """
        Pay exactly assets to receiver, burning owner's shares.

        Returns:
            Shares burned

        Raises:
            EnforcedPause: If the vault is paused
            LimitExceeded: If assets exceed max_withdraw(owner)
            Unauthorized: If caller is not owner and lacks allowance
        """
        self._require_not_paused()
        assets = as_amount(assets, "assets")
        caller = caller or owner
        maximum = self.max_withdraw(owner)
        if assets > maximum:
            raise LimitExceeded("withdraw", owner, assets, maximum)
        with self._atomic():
            shares = self.preview_withdraw(assets, owner)
            if shares > self.balance_of(owner):
                raise LimitExceeded("withdraw", owner, assets, maximum)
            self._exit(caller, receiver, owner, assets, shares)
        return shares

    def redeem(self, shares: Decimal, receiver: str, owner: str,
               caller: Optional[str] = None) -> Decimal:
        """
        Burn exactly shares of owner and pay the net assets to receiver.

        Returns:
            Assets paid out
        """
        self._require_not_paused()
        shares = as_amount(shares, "shares")
        caller = caller or owner
        maximum = self.max_redeem(owner)
        if shares > maximum:
            raise LimitExceeded("redeem", owner, shares, maximum)
        with self._atomic():
            assets = self.preview_redeem(shares, owner)
            self._exit(caller, receiver, owner, assets, shares)
        return assets

    def _exit(self, caller: str, receiver: str, owner: str,
              assets: Decimal, shares: Decimal) -> None:
        _require_parties(caller, owner, receiver)
        if caller != owner:
            self._spend_allowance(owner, caller, shares)
        if shares > 0:
            self.ledger.burn(owner, self.share_symbol, shares, self._origin("WITHDRAW"))
        self.engine.update(-assets, self._now())
        if assets > 0:
            self.ledger.ensure_wallet(receiver)
            self.ledger.transfer(self.custody, receiver, self.asset_symbol, assets,
                                 self._origin("WITHDRAW"))

        event = Withdraw(caller, receiver, owner, assets, shares, self.ledger.current_time)
        self.events.append(event)
        logger.info("withdraw %s: %s burned %s shares, %s assets -> %s",
                    self.name, owner, shares, assets, receiver)

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    def grant_role(self, role: Role, account: str, caller: str) -> bool:
        return self.access.grant_role(role, account, caller)

    def revoke_role(self, role: Role, account: str, caller: str) -> bool:
        return self.access.revoke_role(role, account, caller)

    def has_role(self, role: Role, account: str) -> bool:
        return self.access.has_role(role, account)

    def pause(self, caller: str) -> None:
        """
        Raises:
            Unauthorized: If caller lacks PAUSER_ROLE
            EnforcedPause: If already paused
        """
        self.access.require_role(PAUSER_ROLE, caller)
        self._require_not_paused()
        self.paused = True
        self.events.append(Paused(caller, self.ledger.current_time))
        logger.info("%s paused by %s", self.name, caller)

    def unpause(self, caller: str) -> None:
        """
        Raises:
            Unauthorized: If caller lacks PAUSER_ROLE
            ExpectedPause: If not paused
        """
        self.access.require_role(PAUSER_ROLE, caller)
        if not self.paused:
            raise ExpectedPause(f"{self.name} is not paused")
        self.paused = False
        self.events.append(Unpaused(caller, self.ledger.current_time))
        logger.info("%s unpaused by %s", self.name, caller)

    def set_emergency_destination(self, destination: str, caller: str) -> None:
        """
        Raises:
            Unauthorized: If caller lacks DEFAULT_ADMIN_ROLE
        """
        self.access.require_role(DEFAULT_ADMIN_ROLE, caller)
        _require_parties(destination)
        if not destination:
            raise ValueError(f"invalid emergency destination: {destination!r}")
        self.emergency_destination = destination
        logger.info("%s emergency destination set to %s by %s", self.name, destination, caller)

    def emergency_withdraw(self, caller: str) -> Decimal:
        """
        Move the whole custody balance to the emergency destination.

        Shares, locks and the tracked pool value are left untouched.

        Returns:
            Assets moved

        Raises:
            Unauthorized: If caller lacks EMERGENCY_ROLE
            ExpectedPause: If the vault is not paused
            MissingDestination: If no destination is configured
        """
        self.access.require_role(EMERGENCY_ROLE, caller)
        if not self.paused:
            raise ExpectedPause(f"{self.name} is not paused")
        if self.emergency_destination is None:
            raise MissingDestination(f"{self.name} has no emergency destination")

        destination = self.emergency_destination
        with self._atomic():
            amount = self.ledger.get_balance(self.custody, self.asset_symbol)
            if amount > 0:
                self.ledger.ensure_wallet(destination)
                self.ledger.transfer(self.custody, destination, self.asset_symbol, amount,
                                     self._origin("EMERGENCY_WITHDRAW", OriginType.SYSTEM))
            self.events.append(
                EmergencyWithdraw(caller, destination, amount, self.ledger.current_time)
            )
        logger.warning("%s emergency withdrawal of %s %s to %s by %s",
                       self.name, amount, self.asset_symbol, destination, caller)
        return amount
