"""
rate_math.py - Compounding rate math for the vault

Converts an annual percentage yield into a per-second compounding
multiplier and applies that multiplier over an elapsed number of seconds.

    multiplier = 2 ** (log2(1 + apy) / seconds_per_year)     (64.64 fixed point)
    value'     = value * multiplier ** elapsed

Only the exponentiation runs in fixed point; the final multiplication by
value is exact integer arithmetic. APYs are parts-per-thousand.

The float helpers at the bottom (apy_curve, project_values) accept scalars
or numpy arrays and exist for reporting; accounting never uses them.
"""

from decimal import Decimal, ROUND_FLOOR
from typing import Union

import numpy as np

from . import fixed_point
from .core import RATE_DENOMINATOR, VaultTerms


# Type alias for scalar or array inputs
Numeric = Union[float, np.ndarray]


# ============================================================================
# STEPPED APY
# ============================================================================

def stepped_apy(total_value: Decimal, terms: VaultTerms) -> int:
    """
    APY (parts-per-thousand) earned by a pool holding total_value.

    Rises by apy_step_rate for every full apy_step_size of value and is
    clamped at max_apy.
    """
    steps = int((total_value / terms.apy_step_size).to_integral_value(rounding=ROUND_FLOOR))
    return min(terms.base_apy + steps * terms.apy_step_rate, terms.max_apy)


# ============================================================================
# MULTIPLIER
# ============================================================================

def multiplier_for_apy(apy: int, seconds_per_year: int) -> int:
    """
    Per-second compounding factor (1 + apy)^(1 / seconds_per_year) in 64.64.

    Args:
        apy: Annual yield in parts-per-thousand (100 == 10%)
        seconds_per_year: Length of the compounding year

    Raises:
        ValueError: If apy is negative or seconds_per_year is not positive
    """
    if apy < 0:
        raise ValueError(f"apy must be non-negative, got {apy}")
    if seconds_per_year <= 0:
        raise ValueError(f"seconds_per_year must be positive, got {seconds_per_year}")
    yearly = fixed_point.from_fraction(RATE_DENOMINATOR + apy, RATE_DENOMINATOR)
    return fixed_point.exp2(fixed_point.log2(yearly) // seconds_per_year)


def compound(value: Decimal, multiplier: int, elapsed: int) -> Decimal:
    """
    Grow value by multiplier for elapsed seconds, truncating to whole units.

    Raises:
        ValueError: If elapsed is negative
        FixedPointOverflow: If multiplier ** elapsed leaves the 64.64 range
    """
    if elapsed < 0:
        raise ValueError(f"elapsed must be non-negative, got {elapsed}")
    if elapsed == 0:
        return value
    factor = fixed_point.pow(multiplier, elapsed)
    return Decimal(fixed_point.mul_int(factor, int(value)))


# ============================================================================
# REPORTING HELPERS (float, vectorised)
# ============================================================================

def apy_curve(total_values: Numeric, terms: VaultTerms) -> np.ndarray:
    """Stepped APY (parts-per-thousand) for each of total_values."""
    values = np.asarray(total_values, dtype=float)
    if np.any(values < 0):
        raise ValueError("total values must be non-negative")
    steps = np.floor(values / float(terms.apy_step_size))
    return np.minimum(terms.base_apy + steps * terms.apy_step_rate, terms.max_apy)


def project_values(value: float, apy: int, seconds: Numeric,
                   seconds_per_year: int) -> np.ndarray:
    """Approximate value compounded at a fixed apy after each of seconds."""
    elapsed = np.asarray(seconds, dtype=float)
    if np.any(elapsed < 0):
        raise ValueError("seconds must be non-negative")
    growth = np.log1p(apy / RATE_DENOMINATOR) / seconds_per_year
    return float(value) * np.exp(growth * elapsed)
