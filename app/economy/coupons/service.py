from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
from time import monotonic

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.logging import email_hash
from app.core.ttl_cache import TTLCache
from app.db.models.coupons import Coupon
from app.db.repo.coupon_usages_repo import CouponUsagesRepo
from app.db.repo.coupons_repo import CouponsRepo
from app.db.repo.purchases_repo import PurchasesRepo
from app.economy.money import to_decimal

from .types import (
    INVALID_CODE,
    CouponContext,
    CouponSnapshot,
    CouponUsageCounts,
    EligibleDiscount,
    Ineligible,
)
from .validation import evaluate_coupon, needs_usage_counts

logger = structlog.get_logger(__name__)
AUTO_APPLY_CACHE_KEY = "auto_apply_candidates"
AUTO_APPLY_CANDIDATE_LIMIT = 100


def snapshot_coupon(coupon: Coupon) -> CouponSnapshot:
    overrides: list[tuple[str, Decimal]] = []
    for entry in coupon.account_size_discounts or []:
        if not isinstance(entry, dict):
            continue
        size = entry.get("accountSize")
        value = entry.get("discountValue")
        if isinstance(size, str) and value is not None:
            overrides.append((size, to_decimal(value)))

    return CouponSnapshot(
        id=coupon.id,
        code=coupon.code,
        discount_type=coupon.discount_type,
        discount_value=to_decimal(coupon.discount_value),
        valid_from=coupon.valid_from,
        valid_to=coupon.valid_to,
        status=coupon.status,
        restriction_mode=coupon.restriction_mode,
        program_ids=frozenset(int(program_id) for program_id in coupon.program_ids or []),
        minimum_purchase_amount=(
            to_decimal(coupon.minimum_purchase_amount)
            if coupon.minimum_purchase_amount is not None
            else None
        ),
        account_size_discounts=tuple(overrides),
        total_usage_limit=coupon.total_usage_limit,
        per_user_limit=coupon.per_user_limit,
        auto_apply=coupon.auto_apply,
        auto_apply_priority=coupon.auto_apply_priority,
        prevent_manual_entry=coupon.prevent_manual_entry,
        affiliate_id=coupon.affiliate_id,
        affiliate_email=coupon.affiliate_email,
        affiliate_username=coupon.affiliate_username,
    )


class CouponResolver:
    def __init__(self, *, candidates_cache: TTLCache[tuple[CouponSnapshot, ...]]) -> None:
        self._candidates_cache = candidates_cache

    @staticmethod
    async def _usage_counts(
        session: AsyncSession,
        coupon: CouponSnapshot,
        context: CouponContext,
    ) -> CouponUsageCounts | None:
        if not needs_usage_counts(coupon):
            return None
        total = await CouponUsagesRepo.count_for_coupon(session, coupon_id=coupon.id)
        for_customer = 0
        if context.customer_email and coupon.per_user_limit is not None:
            for_customer = await CouponUsagesRepo.count_for_coupon_and_email(
                session,
                coupon_id=coupon.id,
                customer_email=context.customer_email,
            )
        return CouponUsageCounts(total=total, for_customer=for_customer)

    @staticmethod
    async def _bound_affiliate_id(session: AsyncSession, context: CouponContext) -> str | None:
        if not context.customer_email:
            return None
        first_affiliated = await PurchasesRepo.get_first_affiliated_for_email(
            session,
            context.customer_email,
        )
        return first_affiliated.affiliate_id if first_affiliated is not None else None

    async def _evaluate(
        self,
        session: AsyncSession,
        coupon: CouponSnapshot,
        context: CouponContext,
        *,
        manual_entry: bool,
        bound_affiliate_id: str | None,
    ) -> EligibleDiscount | Ineligible:
        preliminary = evaluate_coupon(
            coupon,
            context,
            manual_entry=manual_entry,
            bound_affiliate_id=bound_affiliate_id,
        )
        if isinstance(preliminary, Ineligible) or not needs_usage_counts(coupon):
            return preliminary
        usage = await self._usage_counts(session, coupon, context)
        return evaluate_coupon(
            coupon,
            context,
            manual_entry=manual_entry,
            usage=usage,
            bound_affiliate_id=bound_affiliate_id,
        )

    async def validate(
        self,
        session: AsyncSession,
        code: str,
        context: CouponContext,
    ) -> EligibleDiscount | Ineligible:
        row = await CouponsRepo.get_by_code(session, code)
        if row is None:
            return Ineligible(INVALID_CODE)

        coupon = snapshot_coupon(row)
        bound_affiliate_id = None
        if coupon.affiliate_id:
            bound_affiliate_id = await self._bound_affiliate_id(session, context)
        return await self._evaluate(
            session,
            coupon,
            context,
            manual_entry=True,
            bound_affiliate_id=bound_affiliate_id,
        )

    async def _load_candidates(self, session: AsyncSession) -> tuple[CouponSnapshot, ...]:
        async def _compute() -> tuple[CouponSnapshot, ...]:
            rows = await CouponsRepo.list_auto_apply_candidates(
                session,
                now_utc=datetime.now(timezone.utc),
                limit=AUTO_APPLY_CANDIDATE_LIMIT,
            )
            return tuple(snapshot_coupon(row) for row in rows)

        candidates = await self._candidates_cache.get_or_compute(AUTO_APPLY_CACHE_KEY, _compute)
        return tuple(
            sorted(
                candidates,
                key=lambda candidate: (-candidate.auto_apply_priority, candidate.id),
            )
        )

    async def best_auto_apply(
        self,
        session: AsyncSession,
        context: CouponContext,
    ) -> EligibleDiscount | None:
        candidates = await self._load_candidates(session)
        if not candidates:
            return None

        bound_affiliate_id = None
        if any(candidate.affiliate_id for candidate in candidates):
            bound_affiliate_id = await self._bound_affiliate_id(session, context)

        for candidate in candidates:
            outcome = await self._evaluate(
                session,
                candidate,
                context,
                manual_entry=False,
                bound_affiliate_id=bound_affiliate_id,
            )
            if isinstance(outcome, EligibleDiscount):
                logger.info(
                    "coupon_auto_apply_selected",
                    coupon_code=outcome.code,
                    program_id=context.program_id,
                    email_hash=email_hash(context.customer_email),
                )
                return outcome
        return None

    def invalidate(self) -> None:
        self._candidates_cache.invalidate()


_resolver: CouponResolver | None = None


def build_coupon_resolver(
    *,
    ttl_seconds: float | None = None,
    clock: Callable[[], float] = monotonic,
) -> CouponResolver:
    resolved_ttl = ttl_seconds if ttl_seconds is not None else get_settings().coupon_cache_ttl_seconds
    return CouponResolver(candidates_cache=TTLCache(ttl_seconds=resolved_ttl, clock=clock))


def get_coupon_resolver() -> CouponResolver:
    global _resolver
    if _resolver is None:
        _resolver = build_coupon_resolver()
    return _resolver
