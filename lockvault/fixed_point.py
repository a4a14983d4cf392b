"""
fixed_point.py - Signed 64.64 binary fixed-point arithmetic

Values are plain Python ints holding x * 2**64, restricted to the signed
128-bit range. 64 fractional bits resolve per-second growth factors of
~3e-9 with room to spare, and 63 integer bits hold multi-century
compounding results (~1e16) comfortably.

log2 uses the iterative squaring method and exp2 a product of
precomputed 2**(2**-k) factors, so every operation is deterministic
integer arithmetic independent of the platform's floating point.

Provides:
- Conversions: from_int, from_fraction, to_int
- Arithmetic: mul, div, mul_int
- Transcendentals: log2, exp2, pow
"""

from decimal import Decimal, localcontext

ONE = 1 << 64
MIN_64x64 = -(1 << 127)
MAX_64x64 = (1 << 127) - 1

_FRACTION_MASK = ONE - 1


class FixedPointOverflow(ArithmeticError):
    """Raised when a result does not fit the signed 64.64 range."""
    pass


def _checked(x: int) -> int:
    if x < MIN_64x64 or x > MAX_64x64:
        raise FixedPointOverflow(f"value {x} outside 64.64 range")
    return x


def _exp2_factors():
    # 2**(2**-k) scaled by 2**128 for k = 1..64, by repeated square roots of 2
    factors = []
    with localcontext() as ctx:
        ctx.prec = 90
        root = Decimal(2)
        scale = Decimal(2) ** 128
        for _ in range(64):
            root = root.sqrt()
            factors.append(int(root * scale))
    return tuple(factors)


_EXP2_FACTORS = _exp2_factors()


# ============================================================================
# CONVERSIONS
# ============================================================================

def from_int(n: int) -> int:
    """Convert an integer to 64.64."""
    return _checked(n << 64)


def from_fraction(numerator: int, denominator: int) -> int:
    """Convert numerator / denominator to 64.64, truncating toward zero."""
    if denominator == 0:
        raise ZeroDivisionError("denominator is zero")
    negative = (numerator < 0) != (denominator < 0)
    result = (abs(numerator) << 64) // abs(denominator)
    return _checked(-result if negative else result)


def to_int(x: int) -> int:
    """Convert 64.64 to an integer, rounding toward negative infinity."""
    return x >> 64


# ============================================================================
# ARITHMETIC
# ============================================================================

def mul(x: int, y: int) -> int:
    """Multiply two 64.64 numbers, rounding toward negative infinity."""
    return _checked((x * y) >> 64)


def div(x: int, y: int) -> int:
    """Divide two 64.64 numbers, truncating toward zero."""
    if y == 0:
        raise ZeroDivisionError("division by zero")
    negative = (x < 0) != (y < 0)
    result = (abs(x) << 64) // abs(y)
    return _checked(-result if negative else result)


def mul_int(x: int, n: int) -> int:
    """
    Multiply a non-negative 64.64 number by a non-negative integer and
    return the integer part of the product.

    The product is computed at full width, so it is exact up to the final
    truncation regardless of how large n is.
    """
    if x < 0 or n < 0:
        raise ValueError("mul_int operands must be non-negative")
    return (x * n) >> 64


# ============================================================================
# TRANSCENDENTALS
# ============================================================================

def log2(x: int) -> int:
    """
    Binary logarithm of a positive 64.64 number.

    Raises:
        ValueError: If x is not positive
    """
    if x <= 0:
        raise ValueError(f"log2 undefined for {x}")
    msb = x.bit_length() - 1
    result = (msb - 64) << 64
    # Normalise the mantissa into [2**127, 2**128)
    ux = x << (127 - msb) if msb < 127 else x >> (msb - 127)
    bit = 1 << 63
    while bit > 0:
        ux *= ux
        b = ux >> 255
        ux >>= 127 + b
        result += bit * b
        bit >>= 1
    return result


def exp2(x: int) -> int:
    """
    Binary exponent 2**x of a 64.64 number.

    Raises:
        FixedPointOverflow: If the result exceeds the 64.64 range
    """
    if x >= 63 << 64:
        raise FixedPointOverflow(f"exp2 overflow for {x}")
    if x < -64 << 64:
        return 0

    result = 1 << 127
    fraction = x & _FRACTION_MASK
    for k in range(64):
        if fraction & (1 << (63 - k)):
            result = (result * _EXP2_FACTORS[k]) >> 128
    return _checked(result >> (63 - (x >> 64)))


def pow(x: int, n: int) -> int:
    """
    Raise a non-negative 64.64 number to a non-negative integer power by
    repeated squaring, keeping 64 guard bits in the intermediates.

    Raises:
        FixedPointOverflow: If the result exceeds the 64.64 range
    """
    if x < 0:
        raise ValueError(f"pow base must be non-negative, got {x}")
    if n < 0:
        raise ValueError(f"pow exponent must be non-negative, got {n}")

    # 128 fractional bits while squaring, truncated back to 64 at the end
    limit = MAX_64x64 << 64
    base = x << 64
    result = 1 << 128
    while n:
        if n & 1:
            result = (result * base) >> 128
            if result > limit:
                raise FixedPointOverflow("pow overflow")
        n >>= 1
        if n:
            base = (base * base) >> 128
            if base > limit:
                raise FixedPointOverflow("pow overflow")
    return _checked(result >> 64)
