from __future__ import annotations

from collections.abc import Iterable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import email_hash
from app.economy.coupons.calculation import calculate_discount
from app.economy.coupons.errors import CouponIneligibleError
from app.economy.coupons.service import CouponResolver, get_coupon_resolver
from app.economy.coupons.types import CouponContext, EligibleDiscount, Ineligible
from app.economy.money import ZERO, ceil_units, percentage_of

from .catalog import load_program
from .errors import PriceUnavailableError, TierNotFoundError
from .tiers import find_tier
from .types import PURCHASE_TYPES, PriceBreakdown, PriceContext, ProgramRef, SelectedAddOn, TierRef

logger = structlog.get_logger(__name__)


def select_base_price(
    program: ProgramRef,
    tier: TierRef,
    *,
    purchase_type: str,
    reset_product_type: str | None,
) -> int:
    if purchase_type not in PURCHASE_TYPES:
        raise PriceUnavailableError(f"Unsupported purchase type: {purchase_type}")

    if purchase_type == "reset":
        if reset_product_type == "funded" and tier.reset_fee_funded:
            return ceil_units(tier.reset_fee_funded)
        if tier.reset_fee:
            return ceil_units(tier.reset_fee)
        raise PriceUnavailableError(
            f"No reset fee for program {program.id} and account size {tier.account_size}"
        )

    if purchase_type == "activation":
        if not program.activation_fee_value:
            raise PriceUnavailableError(f"No activation fee for program {program.id}")
        return ceil_units(program.activation_fee_value)

    if not tier.price:
        raise PriceUnavailableError(f"No price for program {program.id} and account size {tier.account_size}")
    return ceil_units(tier.price)


def compute_add_on_value(price_after_discount: int, add_ons: Iterable[SelectedAddOn]) -> int:
    return sum(
        ceil_units(percentage_of(price_after_discount, add_on.percentage or ZERO))
        for add_on in add_ons
    )


def resolve_tier(program: ProgramRef, context: PriceContext) -> TierRef:
    tier = find_tier(program, account_size=context.account_size, tier_id=context.tier_id)
    if tier is None:
        raise TierNotFoundError(
            f"Could not find pricing tier for program {program.id} and account size {context.account_size}"
        )
    return tier


def compute_price(
    context: PriceContext,
    program: ProgramRef,
    *,
    discount: EligibleDiscount | None = None,
) -> PriceBreakdown:
    """Authoritative price breakdown over already-loaded reference data."""
    tier = resolve_tier(program, context)
    base_price = select_base_price(
        program,
        tier,
        purchase_type=context.purchase_type,
        reset_product_type=context.reset_product_type,
    )

    if context.purchase_type != "original":
        return PriceBreakdown(
            tier=tier,
            tier_price=base_price,
            original_price=base_price,
            applied_discount=0,
            final_purchase_price=base_price,
            add_on_value=0,
            total_price=base_price,
        )

    final_price = base_price
    applied_discount = 0
    if discount is not None:
        calculation = calculate_discount(
            original_price=base_price,
            discount_type=discount.discount_type,
            discount_value=discount.discount_value,
        )
        final_price = calculation.final_price
        applied_discount = calculation.discount_amount

    add_on_value = compute_add_on_value(final_price, context.add_ons)
    return PriceBreakdown(
        tier=tier,
        tier_price=base_price,
        original_price=base_price,
        applied_discount=applied_discount,
        final_purchase_price=final_price,
        add_on_value=add_on_value,
        total_price=final_price + add_on_value,
        discount=discount,
    )


async def _resolve_discount(
    session: AsyncSession,
    *,
    resolver: CouponResolver,
    context: PriceContext,
    order_amount: int,
) -> EligibleDiscount | None:
    coupon_context = CouponContext(
        program_id=context.program_id,
        account_size=context.account_size,
        order_amount=order_amount,
        customer_email=context.customer_email,
    )

    code = (context.coupon_code or "").strip()
    if code:
        outcome = await resolver.validate(session, code, coupon_context)
        if isinstance(outcome, Ineligible):
            raise CouponIneligibleError(outcome.reason)
        return outcome

    try:
        return await resolver.best_auto_apply(session, coupon_context)
    except Exception:
        logger.exception(
            "coupon_auto_apply_lookup_failed",
            program_id=context.program_id,
            account_size=context.account_size,
            email_hash=email_hash(context.customer_email),
        )
        return None


async def quote_price(
    session: AsyncSession,
    context: PriceContext,
    *,
    program: ProgramRef | None = None,
    resolver: CouponResolver | None = None,
) -> PriceBreakdown:
    resolved_program = program or await load_program(session, context.program_id)
    discount: EligibleDiscount | None = None
    if context.purchase_type == "original":
        tier = resolve_tier(resolved_program, context)
        order_amount = select_base_price(
            resolved_program,
            tier,
            purchase_type=context.purchase_type,
            reset_product_type=context.reset_product_type,
        )
        discount = await _resolve_discount(
            session,
            resolver=resolver or get_coupon_resolver(),
            context=context,
            order_amount=order_amount,
        )
    return compute_price(context, resolved_program, discount=discount)
