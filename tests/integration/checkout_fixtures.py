from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from app.db.models.add_ons import AddOn
from app.db.models.coupons import Coupon
from app.db.models.product_mappings import ProductMapping
from app.db.models.programs import Platform, PricingTier, Program
from app.db.session import SessionLocal
from app.economy.purchases.types import CheckoutInput, CustomerDetails

UTC = timezone.utc
PROGRAM_ID = 3
TIER_KEY = "tier-1-50000"
PLATFORM_SLUG = "mt5"
ADD_ON_ID = "profit-split-90"
COUPON_CODE = "SPRING10"


async def seed_catalog(*, with_mapping: bool = True) -> None:
    now_utc = datetime.now(UTC)
    async with SessionLocal.begin() as session:
        session.add(Program(id=PROGRAM_ID, name="Two Step Challenge", category="evaluation", status="active"))
        session.add(Platform(slug=PLATFORM_SLUG, name="MetaTrader 5"))
        await session.flush()
        session.add(
            PricingTier(
                program_id=PROGRAM_ID,
                position=1,
                tier_key=TIER_KEY,
                account_size="$50,000",
                price=Decimal("299.00"),
                reset_fee=Decimal("79.00"),
            )
        )
        session.add(
            AddOn(
                id=ADD_ON_ID,
                key="profit_split_90",
                name="90% Profit Split",
                price_increase_percentage=Decimal("20.00"),
                status="active",
            )
        )
        session.add(
            Coupon(
                code=COUPON_CODE,
                discount_type="percentage",
                discount_value=Decimal("10.00"),
                valid_from=now_utc - timedelta(days=7),
                valid_to=now_utc + timedelta(days=7),
                status="active",
                restriction_mode="all",
                program_ids=[],
                account_size_discounts=[],
            )
        )
        if with_mapping:
            session.add(
                ProductMapping(
                    program_id=PROGRAM_ID,
                    tier_id=TIER_KEY,
                    platform_id=PLATFORM_SLUG,
                    product_id="9001",
                    variation_id="9002",
                )
            )


def checkout_input(**overrides: object) -> CheckoutInput:
    values: dict[str, object] = {
        "program_id": PROGRAM_ID,
        "account_size": "$50,000",
        "customer": CustomerDetails(
            first_name="Ada",
            last_name="Lovelace",
            email="Ada@Example.com",
            phone="+44 20 7946 0000",
            address="12 St James's Square",
            city="London",
            postal_code="SW1Y 4JH",
            country="GB",
        ),
        "platform_slug": PLATFORM_SLUG,
        "add_ons": [(ADD_ON_ID, {"addOn": ADD_ON_ID})],
        "coupon_code": COUPON_CODE,
    }
    values.update(overrides)
    return CheckoutInput(**values)
