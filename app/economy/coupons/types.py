from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

INVALID_CODE = "Invalid coupon code"
MANUAL_ENTRY_BLOCKED = "This coupon code cannot be entered manually"
NOT_ACTIVE = "This coupon is not active"
NOT_YET_VALID = "This coupon is not yet valid"
EXPIRED = "This coupon has expired"
AFFILIATE_BOUND = "This coupon is not applicable as you are bound to another affiliate."
PROGRAM_NOT_WHITELISTED = "This coupon is not valid for the selected program"
PROGRAM_BLACKLISTED = "This coupon cannot be used with the selected program"
BELOW_MINIMUM = "Order amount is below the minimum required for this coupon"
USAGE_LIMIT_REACHED = "This coupon has reached its usage limit"
PER_USER_LIMIT_REACHED = "You have already used this coupon the maximum number of times"


@dataclass(frozen=True, slots=True)
class CouponSnapshot:
    """Typed view of a coupon row, detached from the session."""

    id: int
    code: str
    discount_type: str
    discount_value: Decimal
    valid_from: datetime
    valid_to: datetime | None
    status: str
    restriction_mode: str = "all"
    program_ids: frozenset[int] = frozenset()
    minimum_purchase_amount: Decimal | None = None
    account_size_discounts: tuple[tuple[str, Decimal], ...] = ()
    total_usage_limit: int | None = None
    per_user_limit: int | None = None
    auto_apply: bool = False
    auto_apply_priority: int = 0
    prevent_manual_entry: bool = False
    affiliate_id: str | None = None
    affiliate_email: str | None = None
    affiliate_username: str | None = None


@dataclass(frozen=True, slots=True)
class CouponContext:
    program_id: int
    account_size: str
    order_amount: Decimal
    customer_email: str | None = None
    now_utc: datetime | None = None


@dataclass(frozen=True, slots=True)
class CouponUsageCounts:
    total: int = 0
    for_customer: int = 0


@dataclass(frozen=True, slots=True)
class EligibleDiscount:
    coupon_id: int
    code: str
    discount_type: str
    discount_value: Decimal
    auto_applied: bool
    affiliate_id: str | None = None
    affiliate_email: str | None = None
    affiliate_username: str | None = None


@dataclass(frozen=True, slots=True)
class Ineligible:
    reason: str


@dataclass(frozen=True, slots=True)
class DiscountCalculation:
    original_price: int
    discount_amount: int
    final_price: int
    discount_type: str
    discount_value: Decimal
