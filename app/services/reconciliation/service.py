from __future__ import annotations

from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.purchases import Purchase
from app.db.repo.purchases_repo import PurchasesRepo
from app.db.session import SessionLocal
from app.economy.purchases.errors import PurchaseInvalidStateError, PurchaseNotFoundError
from app.economy.purchases.service import PurchaseService
from app.economy.purchases.types import TransitionResult
from app.services.alerts import send_ops_alert
from app.services.gateways.confirmo import ConfirmoGateway, purchase_id_from_reference
from app.services.gateways.types import INTERNAL_STATUSES, GatewayOutcome

from .effects import EffectContext, run_effects
from .steps import FULFILLMENT_RETRY_EFFECTS, effects_for_status
from .types import ReconciliationResult

logger = structlog.get_logger(__name__)
ADMIN_SOURCE = "admin"
CONFIRMO_POLL_SOURCE = "confirmo-poll"


async def locate_by_order_reference(session: AsyncSession, order_reference: str | None) -> Purchase | None:
    """Card gateway webhooks echo either the order number or the purchase id."""
    if not order_reference:
        return None
    reference = order_reference.strip()
    if reference.isdigit():
        return await PurchasesRepo.get_by_order_number_for_update(session, int(reference))
    try:
        purchase_id = UUID(reference)
    except ValueError:
        return None
    return await PurchasesRepo.get_by_id_for_update(session, purchase_id)


async def locate_by_invoice(
    session: AsyncSession,
    *,
    reference: str | None,
    invoice_id: str | None,
) -> Purchase | None:
    purchase_id = purchase_id_from_reference(reference)
    if purchase_id is not None:
        purchase = await PurchasesRepo.get_by_id_for_update(session, purchase_id)
        if purchase is not None:
            return purchase
    if invoice_id:
        return await PurchasesRepo.get_by_confirmo_invoice_id_for_update(session, invoice_id)
    return None


def _bookkeeping_patch(outcome: GatewayOutcome, *, now_utc: datetime) -> dict[str, object]:
    return {
        **outcome.metadata,
        "paymentGateway": outcome.gateway,
        "webhookProcessedAt": now_utc.isoformat(),
    }


def _refusal_reason(outcome: GatewayOutcome) -> str | None:
    """Unverified completion claims only touch bookkeeping."""
    if outcome.status not in INTERNAL_STATUSES:
        return "status_unknown"
    if outcome.status == "completed" and not outcome.verified:
        return "completion_unverified"
    return None


async def _settle(
    session: AsyncSession,
    *,
    purchase: Purchase,
    outcome: GatewayOutcome,
    source: str,
    now_utc: datetime,
) -> TransitionResult:
    refusal = _refusal_reason(outcome)
    if refusal is not None:
        logger.warning(
            "gateway_outcome_refused",
            purchase_id=str(purchase.id),
            gateway=outcome.gateway,
            provider_status=outcome.provider_status,
            status=outcome.status,
            reason=refusal,
            source=source,
        )
    if refusal is not None or outcome.status == "pending":
        PurchaseService.merge_metadata(purchase, _bookkeeping_patch(outcome, now_utc=now_utc))
        purchase.updated_at = now_utc
        return TransitionResult(
            purchase_id=purchase.id,
            previous_status=purchase.status,
            status=purchase.status,
            transitioned=False,
        )

    if purchase.status == "pending":
        PurchaseService.merge_metadata(purchase, _bookkeeping_patch(outcome, now_utc=now_utc))
        if outcome.notes:
            purchase.notes = outcome.notes
    return await PurchaseService.transition_from_pending(
        session,
        purchase=purchase,
        to_status=outcome.status,
        now_utc=now_utc,
        source=source,
    )


async def apply_gateway_outcome(
    *,
    purchase_id: UUID,
    outcome: GatewayOutcome,
    source: str,
    now_utc: datetime,
) -> ReconciliationResult:
    """Apply a verified provider claim and run the post-transition effects.

    The transition commits before any effect runs, so a failing side effect
    never rolls the status back.
    """
    async with SessionLocal.begin() as session:
        purchase = await PurchaseService.get_purchase_for_update(session, purchase_id)
        transition = await _settle(session, purchase=purchase, outcome=outcome, source=source, now_utc=now_utc)
    return await _after_commit(purchase, transition=transition, outcome=outcome, source=source, now_utc=now_utc)


async def _after_commit(
    purchase: Purchase,
    *,
    transition: TransitionResult,
    outcome: GatewayOutcome,
    source: str,
    now_utc: datetime,
) -> ReconciliationResult:
    if transition.anomaly is not None:
        await send_ops_alert(
            event="webhook_terminal_state_conflict",
            payload={
                "purchase_id": str(purchase.id),
                "order_number": purchase.order_number,
                "current_status": transition.status,
                "claimed_status": outcome.status,
                "gateway": outcome.gateway,
                "source": source,
            },
        )

    effects = []
    if transition.transitioned:
        context = EffectContext(
            purchase=purchase,
            gateway=outcome.gateway,
            source=source,
            now_utc=now_utc,
            reason=outcome.notes or outcome.provider_status,
        )
        effects = await run_effects(effects_for_status(transition.status), context)

    logger.info(
        "gateway_outcome_applied",
        purchase_id=str(purchase.id),
        order_number=purchase.order_number,
        gateway=outcome.gateway,
        provider_status=outcome.provider_status,
        status=transition.status,
        transitioned=transition.transitioned,
        idempotent_replay=transition.idempotent_replay,
        anomaly=transition.anomaly,
        source=source,
        outcomes={effect.name: effect.status for effect in effects},
    )
    return ReconciliationResult(
        purchase_id=purchase.id,
        order_number=purchase.order_number,
        status=transition.status,
        transitioned=transition.transitioned,
        idempotent_replay=transition.idempotent_replay,
        anomaly=transition.anomaly,
        effects=effects,
    )


async def complete_pending_purchase(
    *,
    purchase_id: UUID,
    now_utc: datetime,
    note: str | None = None,
) -> ReconciliationResult:
    """Operator confirmation of a payment the gateways never reported."""
    outcome = GatewayOutcome(
        gateway=ADMIN_SOURCE,
        provider_status="completed",
        status="completed",
        verified=True,
        metadata={"manuallyCompletedAt": now_utc.isoformat()},
        notes=note or "Payment confirmed manually by operator",
    )
    async with SessionLocal.begin() as session:
        purchase = await PurchaseService.get_purchase_for_update(session, purchase_id)
        if purchase.status in ("failed", "cancelled"):
            raise PurchaseInvalidStateError(f"Cannot complete a {purchase.status} purchase")
        transition = await _settle(
            session,
            purchase=purchase,
            outcome=outcome,
            source=ADMIN_SOURCE,
            now_utc=now_utc,
        )
    return await _after_commit(
        purchase,
        transition=transition,
        outcome=outcome,
        source=ADMIN_SOURCE,
        now_utc=now_utc,
    )


async def retry_fulfillment(*, purchase_id: UUID, now_utc: datetime) -> ReconciliationResult:
    async with SessionLocal() as session:
        purchase = await PurchaseService.get_purchase(session, purchase_id)
    if purchase.status != "completed":
        raise PurchaseInvalidStateError("Fulfillment can only be retried for completed purchases")

    gateway = (purchase.metadata_ or {}).get("paymentGateway")
    context = EffectContext(
        purchase=purchase,
        gateway=gateway if isinstance(gateway, str) else (purchase.payment_method or ADMIN_SOURCE),
        source=ADMIN_SOURCE,
        now_utc=now_utc,
        refresh_mapping=True,
    )
    effects = await run_effects(FULFILLMENT_RETRY_EFFECTS, context)
    logger.info(
        "fulfillment_retry_finished",
        purchase_id=str(purchase.id),
        order_number=purchase.order_number,
        outcomes={effect.name: effect.status for effect in effects},
    )
    return ReconciliationResult(
        purchase_id=purchase.id,
        order_number=purchase.order_number,
        status=purchase.status,
        transitioned=False,
        effects=effects,
    )


async def poll_crypto_invoice(
    *,
    purchase_id: UUID,
    invoice_id: str,
    now_utc: datetime,
    gateway: ConfirmoGateway | None = None,
) -> ReconciliationResult:
    gateway = gateway or ConfirmoGateway.from_settings()
    outcome = await gateway.fetch_authoritative(invoice_id)
    return await apply_gateway_outcome(
        purchase_id=purchase_id,
        outcome=outcome,
        source=CONFIRMO_POLL_SOURCE,
        now_utc=now_utc,
    )


async def find_purchase_id(
    *,
    order_reference: str | None = None,
    invoice_reference: str | None = None,
    invoice_id: str | None = None,
) -> UUID:
    async with SessionLocal() as session:
        if invoice_reference is not None or invoice_id is not None:
            purchase = await locate_by_invoice(session, reference=invoice_reference, invoice_id=invoice_id)
        else:
            purchase = await locate_by_order_reference(session, order_reference)
    if purchase is None:
        raise PurchaseNotFoundError
    return purchase.id
