"""
Fixed-point arithmetic helpers for the Shares valuation engine.

All monetary quantities inside the engine are Python integers scaled to
18 decimal places (the "value unit"). External asset amounts are scaled to
their own native decimal count and must be converted explicitly.

Division is always performed once, after a full-width multiply, so that no
intermediate result loses precision to a decimal-count mismatch.
"""

from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from errors import Overflow, Underflow


VALUE_DECIMALS = 18
VALUE_UNIT = 10 ** VALUE_DECIMALS

BPS_DENOMINATOR = 10_000
SECONDS_PER_YEAR = 365 * 24 * 60 * 60

UINT256_MAX = 2 ** 256 - 1
INT256_MAX = 2 ** 255 - 1
INT256_MIN = -(2 ** 255)

# Enough digits for any int256 at 18 decimals
DECIMAL_PRECISION = 100


def mul_div(x: int, y: int, denominator: int) -> int:
    """
    Compute floor(x * y / denominator) for non-negative operands.

    The product is formed at full width before the single division.

    Raises:
        ZeroDivisionError: If denominator is zero
        ValueError: If any operand is negative
    """
    if denominator == 0:
        raise ZeroDivisionError("mul_div denominator is zero")
    if x < 0 or y < 0 or denominator < 0:
        raise ValueError(f"mul_div expects non-negative operands, got {x}, {y}, {denominator}")
    return (x * y) // denominator


def trunc_div(numerator: int, denominator: int) -> int:
    """
    Signed integer division rounding toward zero.

    Python's ``//`` floors toward negative infinity; accrual math on signed
    values truncates instead, so -7 / 2 is -3 rather than -4.
    """
    if denominator == 0:
        raise ZeroDivisionError("trunc_div denominator is zero")
    quotient = abs(numerator) // abs(denominator)
    if (numerator < 0) != (denominator < 0):
        return -quotient
    return quotient


def checked_sub(a: int, b: int, what: str = 'value') -> int:
    """Subtract b from a, raising Underflow instead of going negative."""
    if b > a:
        raise Underflow(f"{what}: cannot subtract {b} from {a}")
    return a - b


def to_uint256(value: int, what: str = 'value') -> int:
    """Validate that value fits an unsigned 256-bit slot."""
    if value < 0:
        raise Underflow(f"{what} is negative: {value}")
    if value > UINT256_MAX:
        raise Overflow(f"{what} exceeds uint256: {value}")
    return value


def to_int256(value: int, what: str = 'value') -> int:
    """Validate that value fits a signed 256-bit slot."""
    if value < INT256_MIN or value > INT256_MAX:
        raise Overflow(f"{what} exceeds int256: {value}")
    return value


def bps_of(amount: int, bps: int) -> int:
    """Return floor(amount * bps / 10_000)."""
    return mul_div(amount, bps, BPS_DENOMINATOR)


def to_value_units(amount: Union[int, str, Decimal]) -> int:
    """
    Scale a human-readable number into 18-decimal value units.

    Accepts strings and Decimals so configuration files can say ``"1.5"``
    without passing through a float.

    Examples:
        >>> to_value_units("1.5")
        1500000000000000000
    """
    try:
        with localcontext() as ctx:
            ctx.prec = DECIMAL_PRECISION
            scaled = Decimal(str(amount)) * VALUE_UNIT
    except InvalidOperation:
        raise ValueError(f"not a decimal number: {amount!r}") from None
    if scaled != scaled.to_integral_value():
        raise ValueError(f"{amount} has more than {VALUE_DECIMALS} decimal places")
    return int(scaled)


def from_value_units(value: int) -> Decimal:
    """Convert 18-decimal value units into an exact Decimal."""
    with localcontext() as ctx:
        ctx.prec = DECIMAL_PRECISION
        return Decimal(value) / VALUE_UNIT


def format_value(value: int, places: int = 6) -> str:
    """Format value units for reports, e.g. ``1,234.500000``."""
    return f"{from_value_units(value):,.{places}f}"
