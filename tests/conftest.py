"""
conftest.py - Shared pytest fixtures for vault tests

Provides common fixtures used across unit and conformance tests:
- Basic ledgers (empty, asset-registered, funded)
- Vaults with default terms and with a flat zero APY (exact arithmetic)
- Builders and constants live in tests/helpers.py
"""

import pytest

from lockvault import Ledger, asset

from tests.helpers import START, ASSET, fund, flat_terms, make_vault


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Fresh ledger with no registrations."""
    return Ledger("test", START)


@pytest.fixture
def asset_ledger():
    """Ledger with the asset unit and two wallets."""
    ledger = Ledger("test", START)
    ledger.register_unit(asset(ASSET, "USD Coin"))
    ledger.register_wallet("alice")
    ledger.register_wallet("bob")
    return ledger


@pytest.fixture
def funded_ledger(asset_ledger):
    """Asset ledger with alice and bob holding 1,000,000 base units each."""
    fund(asset_ledger, "alice", 1_000_000)
    fund(asset_ledger, "bob", 1_000_000)
    return asset_ledger


# =============================================================================
# VAULT FIXTURES
# =============================================================================

@pytest.fixture
def vault(funded_ledger):
    """Vault with default terms (7-day lock, 5% fee, 10% base APY)."""
    return make_vault(funded_ledger)


@pytest.fixture
def flat_vault(funded_ledger):
    """Vault with default lock and fee but zero APY."""
    return make_vault(funded_ledger, flat_terms())
