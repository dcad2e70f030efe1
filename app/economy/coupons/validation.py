from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from app.economy.money import to_decimal
from app.economy.pricing.tiers import normalize_account_size

from .types import (
    AFFILIATE_BOUND,
    BELOW_MINIMUM,
    EXPIRED,
    MANUAL_ENTRY_BLOCKED,
    NOT_ACTIVE,
    NOT_YET_VALID,
    PER_USER_LIMIT_REACHED,
    PROGRAM_BLACKLISTED,
    PROGRAM_NOT_WHITELISTED,
    USAGE_LIMIT_REACHED,
    CouponContext,
    CouponSnapshot,
    CouponUsageCounts,
    EligibleDiscount,
    Ineligible,
)


def resolve_discount_value(coupon: CouponSnapshot, account_size: str) -> Decimal:
    target = normalize_account_size(account_size)
    for override_size, override_value in coupon.account_size_discounts:
        if normalize_account_size(override_size) == target:
            return override_value
    return coupon.discount_value


def is_program_allowed(coupon: CouponSnapshot, program_id: int) -> str | None:
    if coupon.restriction_mode == "whitelist" and program_id not in coupon.program_ids:
        return PROGRAM_NOT_WHITELISTED
    if coupon.restriction_mode == "blacklist" and program_id in coupon.program_ids:
        return PROGRAM_BLACKLISTED
    return None


def needs_usage_counts(coupon: CouponSnapshot) -> bool:
    return coupon.total_usage_limit is not None or coupon.per_user_limit is not None


def evaluate_coupon(
    coupon: CouponSnapshot,
    context: CouponContext,
    *,
    manual_entry: bool,
    usage: CouponUsageCounts | None = None,
    bound_affiliate_id: str | None = None,
) -> EligibleDiscount | Ineligible:
    """Run the eligibility checks in order and stop at the first failure."""
    if manual_entry and coupon.auto_apply and coupon.prevent_manual_entry:
        return Ineligible(MANUAL_ENTRY_BLOCKED)

    if coupon.status != "active":
        return Ineligible(NOT_ACTIVE)

    now_utc = context.now_utc or datetime.now(timezone.utc)
    if now_utc < coupon.valid_from:
        return Ineligible(NOT_YET_VALID)
    if coupon.valid_to is not None and now_utc > coupon.valid_to:
        return Ineligible(EXPIRED)

    if (
        coupon.affiliate_id
        and bound_affiliate_id
        and str(bound_affiliate_id) != str(coupon.affiliate_id)
    ):
        return Ineligible(AFFILIATE_BOUND)

    program_reason = is_program_allowed(coupon, context.program_id)
    if program_reason is not None:
        return Ineligible(program_reason)

    minimum = coupon.minimum_purchase_amount
    if minimum is not None and to_decimal(context.order_amount) < minimum:
        return Ineligible(BELOW_MINIMUM)

    if usage is not None:
        if coupon.total_usage_limit is not None and usage.total >= coupon.total_usage_limit:
            return Ineligible(USAGE_LIMIT_REACHED)
        if (
            coupon.per_user_limit is not None
            and context.customer_email
            and usage.for_customer >= coupon.per_user_limit
        ):
            return Ineligible(PER_USER_LIMIT_REACHED)

    return EligibleDiscount(
        coupon_id=coupon.id,
        code=coupon.code,
        discount_type=coupon.discount_type,
        discount_value=resolve_discount_value(coupon, context.account_size),
        auto_applied=not manual_entry,
        affiliate_id=coupon.affiliate_id,
        affiliate_email=coupon.affiliate_email,
        affiliate_username=coupon.affiliate_username,
    )
