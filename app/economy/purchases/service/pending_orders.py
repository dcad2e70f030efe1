from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import email_hash
from app.db.repo.programs_repo import ProgramsRepo
from app.db.repo.purchases_repo import PurchasesRepo
from app.economy.coupons.service import CouponResolver
from app.economy.mappings.resolver import find_by_external_product_id
from app.economy.pricing.calculator import quote_price, resolve_tier
from app.economy.pricing.catalog import load_program
from app.economy.pricing.types import PriceContext, ProgramRef
from app.economy.purchases.errors import PurchaseValidationError
from app.economy.purchases.regions import to_country_code
from app.economy.purchases.types import CustomerDetails, ExternalOrderResult

from .builder import apply_breakdown, build_pending_purchase
from .checkout import _apply_attribution
from .metadata import merge_metadata

logger = structlog.get_logger(__name__)
PENDING_ORDER_SOURCE = "inapp-orders:create-pending"


def _account_size_for_tier(program: ProgramRef, tier_id: str) -> str:
    for tier in program.tiers:
        if tier.tier_id == tier_id:
            return tier.account_size
    return tier_id if tier_id.startswith("$") else f"${tier_id.upper()}"


async def create_external_pending_order(
    session: AsyncSession,
    *,
    external_product_id: str,
    external_account_id: str,
    customer: CustomerDetails,
    affiliate_cookie: str | None,
    now_utc: datetime,
    resolver: CouponResolver | None = None,
) -> ExternalOrderResult:
    """Create a pending purchase for an order started in the companion app.

    The external product id decides the purchase variant; original orders
    receive the best auto-apply coupon, fee variants are never discounted.
    """
    match = await find_by_external_product_id(session, external_product_id)
    if match is None:
        raise PurchaseValidationError("No mapping found for product_id. Product may not be configured.")
    mapping = match.mapping

    program = await load_program(session, mapping.program_id)
    platform = await ProgramsRepo.get_platform(session, mapping.platform_id)
    account_size = _account_size_for_tier(program, mapping.tier_id)

    context = PriceContext(
        program_id=program.id,
        account_size=account_size,
        purchase_type=match.purchase_type,
        tier_id=mapping.tier_id,
        reset_product_type=match.reset_product_type,
        customer_email=customer.email,
    )
    tier = resolve_tier(program, context)
    breakdown = await quote_price(session, context, program=program, resolver=resolver)

    order_number = await PurchasesRepo.next_order_number(session)
    purchase = build_pending_purchase(
        order_number=order_number,
        program_id=program.id,
        program_name=program.name,
        account_size=tier.account_size,
        purchase_type=match.purchase_type,
        reset_product_type=match.reset_product_type,
        customer=customer,
        country_code=to_country_code(customer.country),
        currency="USD",
        now_utc=now_utc,
    )
    platform_name = platform.name if platform is not None else mapping.platform_id
    purchase.program_type = program.category
    purchase.platform_slug = mapping.platform_id
    purchase.platform_name = platform_name
    purchase.program_details = f"{tier.account_size} - {program.name} - {platform_name}"
    purchase.external_account_id = external_account_id
    purchase.is_in_app_purchase = True
    if match.purchase_type == "original":
        purchase.product_id = mapping.product_id
        purchase.variation_id = mapping.variation_id
    elif match.purchase_type == "reset" and match.reset_product_type == "funded":
        purchase.product_id = external_product_id
        purchase.variation_id = mapping.reset_fee_funded_variation_id or mapping.variation_id
    else:
        purchase.product_id = external_product_id
        purchase.variation_id = mapping.variation_id
    _apply_attribution(purchase, breakdown, affiliate_cookie)
    apply_breakdown(purchase, breakdown, add_ons=())
    merge_metadata(
        purchase,
        {
            "account_id": external_account_id,
            "source": PENDING_ORDER_SOURCE,
            "tierId": mapping.tier_id,
            "platformId": mapping.platform_id,
            "externalProductId": external_product_id,
        },
    )
    await PurchasesRepo.create(session, purchase=purchase, created_at=now_utc)

    logger.info(
        "pending_order_created",
        purchase_id=str(purchase.id),
        order_number=order_number,
        program_id=program.id,
        purchase_type=match.purchase_type,
        reset_product_type=match.reset_product_type,
        total_price=purchase.total_price,
        coupon_code=purchase.discount_code,
        email_hash=email_hash(customer.email),
    )
    return ExternalOrderResult(
        purchase_id=purchase.id,
        order_number=order_number,
        total_price=purchase.total_price,
        external_product_id=external_product_id,
        customer_email=purchase.customer_email,
        purchase_type=match.purchase_type,
    )
