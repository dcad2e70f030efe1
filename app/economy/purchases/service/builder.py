from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from app.db.models.purchases import Purchase
from app.economy.pricing.types import PriceBreakdown, SelectedAddOn
from app.economy.purchases.regions import region_for_country
from app.economy.purchases.types import CustomerDetails

from .metadata import merge_metadata, price_mirror

COUPON_AUTO_APPLIED_KEY = "couponAutoApplied"


def apply_breakdown(
    purchase: Purchase,
    breakdown: PriceBreakdown,
    *,
    add_ons: tuple[SelectedAddOn, ...],
) -> None:
    purchase.tier_id = breakdown.tier.tier_id
    purchase.base_price = breakdown.original_price
    purchase.applied_discount = breakdown.applied_discount
    purchase.purchase_price = breakdown.final_purchase_price
    purchase.add_on_value = breakdown.add_on_value
    purchase.total_price = breakdown.total_price
    purchase.discount_code = breakdown.coupon_code
    purchase.selected_add_ons = (
        [add_on.as_payload() for add_on in add_ons] if purchase.purchase_type == "original" else []
    )
    auto_applied = breakdown.discount is not None and breakdown.discount.auto_applied
    merge_metadata(purchase, {**price_mirror(breakdown), COUPON_AUTO_APPLIED_KEY: auto_applied})


def customer_metadata(customer: CustomerDetails) -> dict[str, object]:
    return {
        "firstName": customer.first_name,
        "lastName": customer.last_name,
        "email": customer.email,
        "phone": customer.phone or "",
        "address": {
            "line1": customer.address or "",
            "line2": customer.address_2 or "",
            "city": customer.city or "",
            "state": customer.state or "",
            "postalCode": customer.postal_code or "",
            "country": customer.country or "",
        },
    }


def build_pending_purchase(
    *,
    order_number: int,
    program_id: int,
    program_name: str,
    account_size: str,
    purchase_type: str,
    reset_product_type: str | None,
    customer: CustomerDetails,
    country_code: str | None,
    currency: str,
    now_utc: datetime,
) -> Purchase:
    purchase = Purchase(
        id=uuid4(),
        order_number=order_number,
        program_id=program_id,
        program_name=program_name,
        account_size=account_size,
        purchase_type=purchase_type,
        reset_product_type=reset_product_type if purchase_type == "reset" else None,
        currency=currency.upper(),
        status="pending",
        customer_name=customer.full_name,
        customer_email=customer.email.strip().lower(),
        customer_phone=customer.phone,
        billing_address=customer.billing_address(country_code=country_code),
        region=region_for_country(country_code),
        selected_add_ons=[],
        is_in_app_purchase=False,
        metadata_={},
    )
    merge_metadata(
        purchase,
        {
            "customerDetails": customer_metadata(customer),
            "purchaseType": purchase_type,
            "createdAt": now_utc.isoformat(),
        },
    )
    return purchase
