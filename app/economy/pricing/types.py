from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from app.economy.coupons.types import EligibleDiscount

PURCHASE_TYPES = ("original", "reset", "activation")
RESET_PRODUCT_TYPES = ("evaluation", "funded")


@dataclass(frozen=True, slots=True)
class TierRef:
    tier_id: str
    position: int
    account_size: str
    price: Decimal | None
    reset_fee: Decimal | None = None
    reset_fee_funded: Decimal | None = None


@dataclass(frozen=True, slots=True)
class ProgramRef:
    id: int
    name: str
    category: str
    activation_fee_value: Decimal | None = None
    tiers: tuple[TierRef, ...] = ()


@dataclass(frozen=True, slots=True)
class SelectedAddOn:
    add_on_id: str
    percentage: Decimal
    metadata: dict[str, object] = field(default_factory=dict)

    def as_payload(self) -> dict[str, object]:
        return {
            "addOn": self.add_on_id,
            "priceIncreasePercentage": float(self.percentage),
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True, slots=True)
class PriceContext:
    program_id: int
    account_size: str
    purchase_type: str = "original"
    tier_id: str | None = None
    reset_product_type: str | None = None
    add_ons: tuple[SelectedAddOn, ...] = ()
    coupon_code: str | None = None
    customer_email: str | None = None


@dataclass(frozen=True, slots=True)
class PriceBreakdown:
    tier: TierRef
    tier_price: int
    original_price: int
    applied_discount: int
    final_purchase_price: int
    add_on_value: int
    total_price: int
    discount: EligibleDiscount | None = None

    @property
    def coupon_code(self) -> str | None:
        return self.discount.code if self.discount is not None else None

    def as_response(self) -> dict[str, object]:
        return {
            "tierPrice": self.tier_price,
            "originalPrice": self.original_price,
            "appliedDiscount": self.applied_discount,
            "finalPurchasePrice": self.final_purchase_price,
            "addOnValue": self.add_on_value,
            "totalPrice": self.total_price,
            "couponCode": self.coupon_code,
        }
