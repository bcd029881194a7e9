"""Decimal helpers for payment amounts.

Amounts are Decimal in the payment's currency. Rounding happens where an
amount is computed, at the currency's minor-unit precision, rounding halves
away from zero.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

ZERO = Decimal("0")


def to_amount(value: Any) -> Decimal:
    """
    Coerce a stored or user-supplied amount to Decimal.

    Accepts Decimal, int, float and numeric strings (thousands separators
    and surrounding whitespace are stripped). Empty values become zero.

    Raises:
        ValueError: If the value is not numeric.
    """
    if value is None or value == "" or value is False:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, int):
        return Decimal(value)

    cleaned = str(value).strip().replace(",", "")
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {value!r}")


def round_amount(value: Any, decimals: int = 2) -> Decimal:
    """Round an amount to `decimals` places, halves away from zero."""
    exponent = Decimal(1).scaleb(-decimals)
    return to_amount(value).quantize(exponent, rounding=ROUND_HALF_UP)


def clamp_zero(value: Decimal) -> Decimal:
    """Return value, or zero if it is negative."""
    return value if value > ZERO else ZERO
