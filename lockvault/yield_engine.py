"""
yield_engine.py - Lazily compounded pool value

The engine stores the pool's total value together with a cached per-second
compounding multiplier and the time it was last recomputed. Growth is
never ticked forward: total_value_at(now) derives the as-of-now value on
every read, and update() is the only mutation, called once per deposit or
withdrawal.

Same-instant calls (elapsed == 0) work from the stored value rather than
a recomputed one, so a nested call that already changed the total within
the same second is not overwritten by a stale outer read.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Tuple
import logging

from .core import VaultTerms, AccountingUnderflow, ZERO
from .rate_math import compound, multiplier_for_apy, stepped_apy

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RateState:
    """
    Cached rate of the pool.

    Attributes:
        apy: Current stepped APY in parts-per-thousand
        multiplier: Per-second compounding factor in 64.64 fixed point
        last_update: Second at which the multiplier was last recomputed
    """
    apy: int
    multiplier: int
    last_update: int


class YieldEngine:
    """
    Total-value tracker for the pool.

    Example:
        engine = YieldEngine(VaultTerms(), now=0)
        engine.update(Decimal(10**18), now=0)
        engine.total_value_at(365 * 86400)   # ~1.1e18 at the base 10% APY
    """

    def __init__(self, terms: VaultTerms, now: int, total_value: Decimal = ZERO):
        self.terms = terms
        self.total_value = total_value
        apy = stepped_apy(total_value, terms)
        self.state = RateState(
            apy=apy,
            multiplier=multiplier_for_apy(apy, terms.seconds_per_year),
            last_update=now,
        )

    def total_value_at(self, now: int) -> Decimal:
        """As-of-now total value, compounded since the last recomputation."""
        elapsed = now - self.state.last_update
        if elapsed <= 0:
            return self.total_value
        return compound(self.total_value, self.state.multiplier, elapsed)

    def update(self, delta: Decimal, now: int) -> Decimal:
        """
        Apply a signed value change at time now.

        Returns:
            The new stored total value

        Raises:
            AccountingUnderflow: If delta would drive the total negative
        """
        elapsed = now - self.state.last_update
        base = self.total_value if elapsed <= 0 else self.total_value_at(now)
        new_total = base + delta
        if new_total < 0:
            raise AccountingUnderflow(base, delta)
        self.total_value = new_total

        apy = stepped_apy(new_total, self.terms)
        if elapsed > 0 or apy != self.state.apy:
            self.state = RateState(
                apy=apy,
                multiplier=multiplier_for_apy(apy, self.terms.seconds_per_year),
                last_update=now,
            )
            logger.debug(
                "rate recomputed at %s: total=%s apy=%s", now, new_total, apy
            )
        return new_total

    def snapshot(self) -> Tuple[Decimal, RateState]:
        return self.total_value, self.state

    def restore(self, snapshot: Tuple[Decimal, RateState]) -> None:
        self.total_value, self.state = snapshot
