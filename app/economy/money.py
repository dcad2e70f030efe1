from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal, InvalidOperation

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENTS = Decimal("0.01")


def to_decimal(value: object) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        return ZERO
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return ZERO


def ceil_units(value: object) -> int:
    """Round up to the nearest whole currency unit."""
    return int(to_decimal(value).to_integral_value(rounding=ROUND_CEILING))


def percentage_of(amount: object, percentage: object) -> Decimal:
    return to_decimal(amount) * to_decimal(percentage) / HUNDRED


def clamp(value: Decimal, *, lower: Decimal, upper: Decimal) -> Decimal:
    return max(lower, min(upper, value))


def format_amount(value: object) -> str:
    return str(to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP))
