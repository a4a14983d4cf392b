"""
events.py - Immutable records of vault actions

Every successful deposit, withdrawal and administrative action appends one
of these to Vault.events. They are plain frozen dataclasses so tests and
callers can compare them directly.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass(frozen=True, slots=True)
class Deposit:
    """
    Assets entered custody and shares were issued.

    Attributes:
        sender: Account that supplied the assets
        owner: Account that received the shares
        assets: Assets moved into custody
        shares: Shares minted
        timestamp: Ledger time of the deposit
    """
    sender: str
    owner: str
    assets: Decimal
    shares: Decimal
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class Withdraw:
    """
    Shares were burned and assets left custody.

    assets is the net amount paid out; any early-withdrawal fee stays in
    the pool.
    """
    sender: str
    receiver: str
    owner: str
    assets: Decimal
    shares: Decimal
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class Paused:
    account: str
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class Unpaused:
    account: str
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class EmergencyWithdraw:
    """The whole custody balance was moved to the emergency destination."""
    account: str
    destination: str
    assets: Decimal
    timestamp: datetime
