from __future__ import annotations

import structlog

from app.db.repo.programs_repo import ProgramsRepo
from app.db.session import SessionLocal
from app.economy.mappings.errors import MappingUnresolvedError
from app.economy.mappings.resolver import resolve_product
from app.economy.mappings.types import ResolvedProduct
from app.economy.purchases.service import PurchaseService
from app.services.alerts import send_ops_alert
from app.services.fulfillment import build_fulfillment_payload, send_fulfillment_notification
from app.services.tracking import hyros
from app.services.tracking.klaviyo import KlaviyoClient

from .effects import EFFECT_FAILED, EFFECT_OK, Effect, EffectContext, EffectOutcome

logger = structlog.get_logger(__name__)
PRICE_MISMATCH_REPAIR = "price_mismatch_repair"
MAPPING_RESOLUTION = "mapping_resolution"
FULFILLMENT_NOTIFICATION = "fulfillment_notification"
HYROS_PURCHASE = "hyros_purchase"
KLAVIYO_PLACED_ORDER = "klaviyo_placed_order"
KLAVIYO_ORDER_FAILED = "klaviyo_order_failed"


async def repair_price_mismatch(context: EffectContext) -> EffectOutcome:
    async with SessionLocal.begin() as session:
        purchase = await PurchaseService.get_purchase_for_update(session, context.purchase_id)
        mismatch = PurchaseService.repair_price_mirror(purchase, now_utc=context.now_utc, source=context.source)
        if mismatch is not None:
            purchase.updated_at = context.now_utc
    if mismatch is None:
        return EffectOutcome(name=PRICE_MISMATCH_REPAIR, status=EFFECT_OK, detail={"repaired": False})
    return EffectOutcome(
        name=PRICE_MISMATCH_REPAIR,
        status=EFFECT_OK,
        detail={"repaired": True, "previousTotal": mismatch.mirrored_total},
    )


async def resolve_mapping(context: EffectContext) -> EffectOutcome:
    purchase = context.purchase
    if purchase.product_id and purchase.variation_id and not context.refresh_mapping:
        context.resolved = ResolvedProduct(
            product_id=purchase.product_id,
            variation_id=purchase.variation_id,
            tier_id=purchase.tier_id or "",
            platform_id=purchase.platform_slug or "",
        )
        return EffectOutcome(name=MAPPING_RESOLUTION, status=EFFECT_OK, detail={"stored": True})

    try:
        async with SessionLocal.begin() as session:
            resolved = await resolve_product(
                session,
                program_id=purchase.program_id,
                platform_id=purchase.platform_slug,
                purchase_type=purchase.purchase_type,
                reset_product_type=purchase.reset_product_type,
                tier_id=purchase.tier_id,
                account_size=purchase.account_size,
            )
            locked = await PurchaseService.get_purchase_for_update(session, purchase.id)
            locked.product_id = resolved.product_id
            locked.variation_id = resolved.variation_id
            locked.updated_at = context.now_utc
    except MappingUnresolvedError as exc:
        alert_payload = {
            "purchase_id": str(purchase.id),
            "order_number": purchase.order_number,
            "program_id": exc.program_id,
            "tier_id": exc.tier_id,
            "platform_id": exc.platform_id,
            "purchase_type": exc.purchase_type,
        }
        logger.error("fulfillment_mapping_unresolved", **alert_payload)
        await send_ops_alert(event="fulfillment_mapping_unresolved", payload=alert_payload)
        return EffectOutcome(name=MAPPING_RESOLUTION, status=EFFECT_FAILED, error=str(exc))

    purchase.product_id = resolved.product_id
    purchase.variation_id = resolved.variation_id
    context.resolved = resolved
    return EffectOutcome(
        name=MAPPING_RESOLUTION,
        status=EFFECT_OK,
        detail={"productId": resolved.product_id, "variationId": resolved.variation_id},
    )


async def notify_fulfillment(context: EffectContext) -> EffectOutcome:
    if context.resolved is None:
        logger.error(
            "fulfillment_notification_blocked",
            purchase_id=str(context.purchase_id),
            order_number=context.purchase.order_number,
            reason="mapping_unresolved",
        )
        return EffectOutcome(name=FULFILLMENT_NOTIFICATION, status=EFFECT_FAILED, error="mapping_unresolved")

    add_on_ids = [
        str(item.get("addOn"))
        for item in context.purchase.selected_add_ons or []
        if isinstance(item, dict) and item.get("addOn") is not None
    ]
    async with SessionLocal() as session:
        add_on_keys = await ProgramsRepo.list_add_on_keys(session, add_on_ids)

    payload = build_fulfillment_payload(
        context.purchase,
        resolved=context.resolved,
        add_on_keys=add_on_keys,
        now_utc=context.now_utc,
    )
    status_code = await send_fulfillment_notification(payload, gateway=context.gateway)
    return EffectOutcome(name=FULFILLMENT_NOTIFICATION, status=EFFECT_OK, detail={"statusCode": status_code})


def _customer_ip(context: EffectContext) -> str | None:
    value = (context.purchase.metadata_ or {}).get("bridgerPayCustomerIp")
    return value if isinstance(value, str) and value else None


async def track_hyros_purchase(context: EffectContext) -> EffectOutcome:
    event_type = "completed" if context.purchase.status == "completed" else "declined"
    result = await hyros.track_purchase(
        context.purchase,
        event_type=event_type,
        now_utc=context.now_utc,
        ip_address=_customer_ip(context),
    )
    return EffectOutcome.from_tracking(HYROS_PURCHASE, result)


async def track_klaviyo_placed_order(context: EffectContext) -> EffectOutcome:
    result = await KlaviyoClient.from_settings().track_placed_order(context.purchase, now_utc=context.now_utc)
    return EffectOutcome.from_tracking(KLAVIYO_PLACED_ORDER, result)


async def track_klaviyo_order_failed(context: EffectContext) -> EffectOutcome:
    result = await KlaviyoClient.from_settings().track_order_failed(
        context.purchase,
        reason=context.reason,
        now_utc=context.now_utc,
    )
    return EffectOutcome.from_tracking(KLAVIYO_ORDER_FAILED, result)


COMPLETED_EFFECTS: tuple[tuple[str, Effect], ...] = (
    (PRICE_MISMATCH_REPAIR, repair_price_mismatch),
    (MAPPING_RESOLUTION, resolve_mapping),
    (FULFILLMENT_NOTIFICATION, notify_fulfillment),
    (HYROS_PURCHASE, track_hyros_purchase),
    (KLAVIYO_PLACED_ORDER, track_klaviyo_placed_order),
)
DECLINED_EFFECTS: tuple[tuple[str, Effect], ...] = (
    (HYROS_PURCHASE, track_hyros_purchase),
    (KLAVIYO_ORDER_FAILED, track_klaviyo_order_failed),
)
FULFILLMENT_RETRY_EFFECTS: tuple[tuple[str, Effect], ...] = (
    (MAPPING_RESOLUTION, resolve_mapping),
    (FULFILLMENT_NOTIFICATION, notify_fulfillment),
)


def effects_for_status(status: str) -> tuple[tuple[str, Effect], ...]:
    if status == "completed":
        return COMPLETED_EFFECTS
    if status in ("failed", "cancelled"):
        return DECLINED_EFFECTS
    return ()
