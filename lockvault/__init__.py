"""
lockvault - Time-Locked Yield Vault

Pooled vault accounting where every deposit is locked for a fixed duration,
early withdrawal of locked value pays a fee, and the pool value compounds
continuously at an APY that steps up with the pool's size.

Usage:
    from datetime import timedelta
    from decimal import Decimal
    from lockvault import Ledger, Vault, asset, shares

    ledger = Ledger("main")
    ledger.register_unit(asset("USDC", "USD Coin"))
    ledger.register_wallet("alice")
    ledger.mint("alice", "USDC", Decimal(1_000_000))

    vault = Vault(ledger, "USDC", shares("vUSDC", "Vault USDC"), admin="ops")
    minted = vault.deposit(Decimal(1_000_000), "alice")

    vault.locked_amount("alice")                  # all of minted
    vault.preview_redeem(minted, "alice")         # 950_000, fee on locked shares

    ledger.advance_time(ledger.current_time + timedelta(days=8))
    vault.redeem(minted, "alice", "alice")        # fee-free, plus accrued yield
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    Unit,
    VaultTerms,
    ExecuteResult,
    VaultError,
    InsufficientFunds,
    BalanceConstraintViolation,
    UnitNotRegistered,
    WalletNotRegistered,
    TransactionRejected,
    LimitExceeded,
    AccountingUnderflow,
    PreconditionViolation,
    EnforcedPause,
    ExpectedPause,
    MissingDestination,
    ReservedWallet,
    Unauthorized,
    as_amount,
    asset,
    shares,
    SYSTEM_WALLET,
    UNIT_TYPE_ASSET,
    UNIT_TYPE_SHARE,
    RATE_DENOMINATOR,
    PERCENT_DENOMINATOR,
)

# Balance ledger
from .ledger import Ledger, LedgerSnapshot, MoveHook

# Fixed-point math and rates
from . import fixed_point
from .fixed_point import FixedPointOverflow
from .rate_math import (
    multiplier_for_apy,
    compound,
    stepped_apy,
    apy_curve,
    project_values,
)

# Timelocks and yield
from .timelocks import TimelockBook, LockRecord
from .yield_engine import YieldEngine, RateState

# Vault
from .access import AccessControl, Role, DEFAULT_ADMIN_ROLE, PAUSER_ROLE, EMERGENCY_ROLE
from .events import Deposit, Withdraw, Paused, Unpaused, EmergencyWithdraw
from .vault import Vault, UNLIMITED

# Configuration
from .config import VaultSettings, load_config, config_from_dict


__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction',
    'TransactionOrigin', 'OriginType', 'build_transaction',
    'Unit', 'VaultTerms', 'ExecuteResult', 'as_amount', 'asset', 'shares',
    'SYSTEM_WALLET', 'UNIT_TYPE_ASSET', 'UNIT_TYPE_SHARE',
    'RATE_DENOMINATOR', 'PERCENT_DENOMINATOR',
    # Errors
    'VaultError', 'InsufficientFunds', 'BalanceConstraintViolation',
    'UnitNotRegistered', 'WalletNotRegistered', 'TransactionRejected',
    'LimitExceeded', 'AccountingUnderflow', 'PreconditionViolation',
    'EnforcedPause', 'ExpectedPause', 'MissingDestination', 'ReservedWallet', 'Unauthorized',
    'FixedPointOverflow',
    # Ledger
    'Ledger', 'LedgerSnapshot', 'MoveHook',
    # Rates
    'fixed_point', 'multiplier_for_apy', 'compound', 'stepped_apy',
    'apy_curve', 'project_values',
    # Timelocks and yield
    'TimelockBook', 'LockRecord', 'YieldEngine', 'RateState',
    # Vault
    'Vault', 'UNLIMITED',
    'AccessControl', 'Role', 'DEFAULT_ADMIN_ROLE', 'PAUSER_ROLE', 'EMERGENCY_ROLE',
    'Deposit', 'Withdraw', 'Paused', 'Unpaused', 'EmergencyWithdraw',
    # Configuration
    'VaultSettings', 'load_config', 'config_from_dict',
]

__version__ = '1.0.0'
