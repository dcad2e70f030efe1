from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from app.economy.pricing.types import PriceBreakdown


@dataclass(slots=True)
class CustomerDetails:
    first_name: str
    last_name: str
    email: str
    phone: str | None = None
    address: str | None = None
    address_2: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def billing_address(self, *, country_code: str | None) -> dict[str, object]:
        return {
            "address": self.address or "",
            "address2": self.address_2 or "",
            "city": self.city or "",
            "state": self.state or "",
            "postalCode": self.postal_code or "",
            "country": country_code or (self.country or ""),
        }


@dataclass(slots=True)
class CheckoutInput:
    program_id: int
    account_size: str
    customer: CustomerDetails
    purchase_type: str = "original"
    reset_product_type: str | None = None
    tier_id: str | None = None
    platform_slug: str | None = None
    program_details: str | None = None
    add_ons: list[tuple[str, dict[str, object]]] = field(default_factory=list)
    coupon_code: str | None = None
    client_price_hints: dict[str, object] = field(default_factory=dict)
    existing_purchase_id: UUID | None = None
    affiliate_cookie: str | None = None
    external_account_id: str | None = None
    is_in_app_purchase: bool = False
    payment_method: str = "bridgerpay"
    currency: str = "USD"


@dataclass(slots=True)
class CheckoutPreparation:
    purchase_id: UUID
    order_number: int
    status: str
    breakdown: PriceBreakdown
    customer: CustomerDetails
    country_code: str
    program_name: str
    currency: str


@dataclass(slots=True)
class PurchaseUpdateResult:
    purchase_id: UUID
    status: str
    breakdown: PriceBreakdown

    @property
    def has_add_on(self) -> bool:
        return self.breakdown.add_on_value > 0


@dataclass(slots=True)
class ExternalOrderResult:
    purchase_id: UUID
    order_number: int
    total_price: int
    external_product_id: str
    customer_email: str
    purchase_type: str


@dataclass(slots=True)
class PriceMismatch:
    root_total: int
    mirrored_total: float
    difference: float


@dataclass(slots=True)
class TransitionResult:
    purchase_id: UUID
    previous_status: str
    status: str
    transitioned: bool
    idempotent_replay: bool = False
    anomaly: str | None = None
