"""
helpers.py - Shared constants and builders for vault tests
"""

from datetime import datetime, timedelta
from decimal import Decimal

from lockvault import Ledger, Vault, VaultTerms, asset, shares


START = datetime(2025, 1, 1)
DAY = timedelta(days=1)
LOCK = timedelta(days=7)

ASSET = "USDC"
SHARE = "vUSDC"
ADMIN = "ops"


def advance(ledger: Ledger, delta: timedelta) -> None:
    """Move the ledger clock forward by delta."""
    ledger.advance_time(ledger.current_time + delta)


def flat_terms(**overrides) -> VaultTerms:
    """Terms with zero APY so conversions stay exactly 1:1."""
    params = dict(base_apy=0, apy_step_rate=0, max_apy=0)
    params.update(overrides)
    return VaultTerms(**params)


def make_vault(ledger: Ledger, terms: VaultTerms = None) -> Vault:
    return Vault(ledger, ASSET, shares(SHARE, "Vault USDC"), admin=ADMIN, terms=terms)


def fund(ledger: Ledger, wallet: str, amount) -> None:
    """Register wallet if needed and mint asset to it."""
    ledger.ensure_wallet(wallet)
    ledger.mint(wallet, ASSET, Decimal(amount))


def build_vault(terms: VaultTerms = None, wallets=("alice", "bob"), amount=10 ** 12):
    """
    Fresh ledger and vault for tests that cannot use fixtures (hypothesis).

    Returns:
        (ledger, vault)
    """
    ledger = Ledger("test", START)
    ledger.register_unit(asset(ASSET, "USD Coin"))
    for wallet in wallets:
        fund(ledger, wallet, amount)
    return ledger, make_vault(ledger, terms)
