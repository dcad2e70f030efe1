from __future__ import annotations

from decimal import Decimal

from app.economy.money import ZERO, ceil_units, clamp, percentage_of, to_decimal

from .types import DiscountCalculation

DISCOUNT_TYPES = ("percentage", "fixed")


def calculate_discount(
    *,
    original_price: int,
    discount_type: str,
    discount_value: Decimal,
) -> DiscountCalculation:
    if discount_type not in DISCOUNT_TYPES:
        raise ValueError(f"Unsupported discount type: {discount_type}")

    price = to_decimal(original_price)
    if discount_type == "percentage":
        raw_discount = percentage_of(price, discount_value)
    else:
        raw_discount = to_decimal(discount_value)

    discount = clamp(raw_discount, lower=ZERO, upper=price)
    final_price = ceil_units(price - discount)
    return DiscountCalculation(
        original_price=original_price,
        discount_amount=original_price - final_price,
        final_price=final_price,
        discount_type=discount_type,
        discount_value=to_decimal(discount_value),
    )
