from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.purchases import Purchase
from app.db.repo.coupon_usages_repo import CouponUsagesRepo
from app.db.repo.coupons_repo import CouponsRepo
from app.db.repo.purchases_repo import TERMINAL_STATUSES, PurchasesRepo
from app.economy.purchases.errors import PurchaseInvalidStateError
from app.economy.purchases.types import TransitionResult

from .metadata import merge_metadata

logger = structlog.get_logger(__name__)
MAX_RECORDED_ANOMALIES = 20


def _record_anomaly(
    purchase: Purchase,
    *,
    kind: str,
    claimed_status: str,
    source: str,
    now_utc: datetime,
) -> None:
    anomalies = list((purchase.metadata_ or {}).get("anomalies") or [])
    anomalies.append(
        {
            "kind": kind,
            "claimedStatus": claimed_status,
            "currentStatus": purchase.status,
            "source": source,
            "at": now_utc.isoformat(),
        }
    )
    merge_metadata(purchase, {"anomalies": anomalies[-MAX_RECORDED_ANOMALIES:]})


async def _record_coupon_usage(session: AsyncSession, purchase: Purchase, *, now_utc: datetime) -> None:
    if not purchase.discount_code:
        return
    coupon = await CouponsRepo.get_by_code(session, purchase.discount_code)
    if coupon is None:
        logger.warning(
            "coupon_usage_coupon_missing",
            purchase_id=str(purchase.id),
            coupon_code=purchase.discount_code,
        )
        return
    await CouponUsagesRepo.record_once(
        session,
        coupon_id=coupon.id,
        purchase_id=purchase.id,
        customer_email=purchase.customer_email,
        program_id=purchase.program_id,
        account_size=purchase.account_size,
        original_price=purchase.base_price,
        discount_amount=purchase.applied_discount,
        final_price=purchase.purchase_price,
        payment_method=purchase.payment_method,
        currency=purchase.currency,
        used_at=now_utc,
    )


def _settled_outcome(
    purchase: Purchase,
    *,
    to_status: str,
    source: str,
    now_utc: datetime,
) -> TransitionResult:
    if purchase.status == to_status:
        return TransitionResult(
            purchase_id=purchase.id,
            previous_status=purchase.status,
            status=purchase.status,
            transitioned=False,
            idempotent_replay=True,
        )

    logger.warning(
        "webhook_terminal_state_conflict",
        purchase_id=str(purchase.id),
        order_number=purchase.order_number,
        current_status=purchase.status,
        claimed_status=to_status,
        source=source,
    )
    _record_anomaly(
        purchase,
        kind="terminal_state_conflict",
        claimed_status=to_status,
        source=source,
        now_utc=now_utc,
    )
    return TransitionResult(
        purchase_id=purchase.id,
        previous_status=purchase.status,
        status=purchase.status,
        transitioned=False,
        anomaly="terminal_state_conflict",
    )


async def transition_from_pending(
    session: AsyncSession,
    *,
    purchase: Purchase,
    to_status: str,
    now_utc: datetime,
    source: str,
) -> TransitionResult:
    """Move a purchase out of pending exactly once.

    Replays of the same terminal status are no-ops; a conflicting terminal
    claim is recorded as an anomaly and never changes the status.
    """
    if to_status not in TERMINAL_STATUSES:
        raise PurchaseInvalidStateError(f"Unsupported target status: {to_status}")

    if purchase.status != "pending":
        return _settled_outcome(purchase, to_status=to_status, source=source, now_utc=now_utc)

    moved = await PurchasesRepo.transition_from_pending(
        session,
        purchase_id=purchase.id,
        to_status=to_status,
        now_utc=now_utc,
    )
    await session.refresh(purchase)
    if not moved:
        return _settled_outcome(purchase, to_status=to_status, source=source, now_utc=now_utc)

    if to_status == "completed":
        await _record_coupon_usage(session, purchase, now_utc=now_utc)

    logger.info(
        "purchase_transitioned",
        purchase_id=str(purchase.id),
        order_number=purchase.order_number,
        from_status="pending",
        to_status=to_status,
        source=source,
    )
    return TransitionResult(
        purchase_id=purchase.id,
        previous_status="pending",
        status=to_status,
        transitioned=True,
    )
