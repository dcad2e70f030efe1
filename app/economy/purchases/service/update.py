from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.economy.coupons.service import CouponResolver
from app.economy.pricing.calculator import quote_price
from app.economy.pricing.catalog import load_program, load_selected_add_ons
from app.economy.pricing.types import PriceContext
from app.economy.purchases.errors import PurchaseInvalidStateError
from app.economy.purchases.types import PurchaseUpdateResult

from .builder import COUPON_AUTO_APPLIED_KEY, apply_breakdown
from .store import get_purchase_for_update

logger = structlog.get_logger(__name__)


async def update_pending_purchase(
    session: AsyncSession,
    *,
    purchase_id: UUID,
    add_ons: Sequence[tuple[str, dict[str, object]]],
    coupon_code: str | None,
    coupon_code_set: bool,
    now_utc: datetime,
    resolver: CouponResolver | None = None,
) -> PurchaseUpdateResult:
    """Re-price a pending purchase after the customer changed add-ons or coupon.

    ``coupon_code_set=False`` keeps the stored code, or re-runs auto-apply when
    the stored code was auto-applied. An explicit ``None`` clears the code and
    lets auto-apply pick a candidate again.
    """
    purchase = await get_purchase_for_update(session, purchase_id)
    if purchase.status != "pending":
        raise PurchaseInvalidStateError("Can only update pending purchases")

    if coupon_code_set:
        effective_code = coupon_code
    elif (purchase.metadata_ or {}).get(COUPON_AUTO_APPLIED_KEY):
        effective_code = None
    else:
        effective_code = purchase.discount_code
    selected = ()
    if purchase.purchase_type == "original":
        selected = await load_selected_add_ons(session, add_ons)

    program = await load_program(session, purchase.program_id)
    context = PriceContext(
        program_id=purchase.program_id,
        account_size=purchase.account_size,
        purchase_type=purchase.purchase_type,
        tier_id=purchase.tier_id,
        reset_product_type=purchase.reset_product_type,
        add_ons=selected,
        coupon_code=effective_code,
        customer_email=purchase.customer_email,
    )
    breakdown = await quote_price(session, context, program=program, resolver=resolver)

    apply_breakdown(purchase, breakdown, add_ons=selected)
    purchase.updated_at = now_utc
    await session.flush()

    logger.info(
        "purchase_repriced",
        purchase_id=str(purchase.id),
        order_number=purchase.order_number,
        total_price=breakdown.total_price,
        add_on_value=breakdown.add_on_value,
        coupon_code=breakdown.coupon_code,
    )
    return PurchaseUpdateResult(
        purchase_id=purchase.id,
        status=purchase.status,
        breakdown=breakdown,
    )
