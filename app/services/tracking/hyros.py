from __future__ import annotations

from datetime import datetime

import httpx
import structlog

from app.core.config import get_settings
from app.core.logging import email_hash
from app.db.models.purchases import Purchase
from app.services.fulfillment import split_customer_name
from app.services.http import async_client

from .types import TrackingResult

logger = structlog.get_logger(__name__)
HYROS_EVENT_TYPES = ("pending", "completed", "declined")


def build_order_event(
    purchase: Purchase,
    *,
    event_type: str,
    now_utc: datetime,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> dict[str, object]:
    if event_type not in HYROS_EVENT_TYPES:
        raise ValueError(f"Unsupported Hyros event type: {event_type}")

    first_name, last_name = split_customer_name(purchase.customer_name)
    body: dict[str, object] = {"email": purchase.customer_email}
    if first_name:
        body["firstName"] = first_name
    if last_name:
        body["lastName"] = last_name
    body.update(
        {
            "orderId": str(purchase.order_number),
            "date": now_utc.replace(microsecond=0, tzinfo=None).isoformat(),
            "currency": purchase.currency or "USD",
            "priceFormat": "DECIMAL",
            "stage": "Customer" if event_type == "completed" else "Lead",
        }
    )
    if ip_address:
        body["leadIps"] = [ip_address]
        body["ip_address"] = ip_address
    if user_agent:
        body["user_agent"] = user_agent
    if purchase.discount_code:
        body["orderDiscount"] = purchase.applied_discount

    item: dict[str, object] = {
        "name": purchase.program_name or "Trading Program",
        "price": purchase.total_price,
        "externalId": str(purchase.program_id),
        "quantity": 1,
        "categoryName": purchase.program_type or "trading-program",
    }
    if purchase.platform_name:
        item["tag"] = purchase.platform_name
    body["items"] = [item]
    return body


async def track_purchase(
    purchase: Purchase,
    *,
    event_type: str,
    now_utc: datetime,
    ip_address: str | None = None,
    user_agent: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> TrackingResult:
    settings = get_settings()
    if not settings.hyros_enabled:
        return TrackingResult.skipped("tracking_disabled")
    if not settings.hyros_api_key:
        logger.warning("hyros_api_key_missing", order_number=purchase.order_number)
        return TrackingResult.failed("missing_api_key")

    body = build_order_event(
        purchase,
        event_type=event_type,
        now_utc=now_utc,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    try:
        async with async_client(
            timeout=settings.outbound_http_timeout_seconds,
            transport=transport,
        ) as client:
            response = await client.post(
                f"{settings.hyros_api_url.rstrip('/')}/orders",
                json=body,
                headers={"API-Key": settings.hyros_api_key},
            )
    except httpx.HTTPError as exc:
        logger.warning(
            "hyros_event_transport_failed",
            order_number=purchase.order_number,
            event_type=event_type,
            error=exc.__class__.__name__,
        )
        return TrackingResult.failed(exc.__class__.__name__)

    try:
        data = response.json()
    except ValueError:
        data = None

    if response.status_code >= 400:
        error = data.get("error") if isinstance(data, dict) else None
        logger.warning(
            "hyros_event_rejected",
            order_number=purchase.order_number,
            event_type=event_type,
            status_code=response.status_code,
        )
        if data is None:
            return TrackingResult.failed(f"Invalid response: {response.status_code} {response.text[:100]}")
        return TrackingResult.failed(str(error or f"HTTP {response.status_code}"))

    # Accepted events may come back with an empty body.
    event_id = data.get("event_id") if isinstance(data, dict) else None
    logger.info(
        "hyros_event_sent",
        order_number=purchase.order_number,
        event_type=event_type,
        email_hash=email_hash(purchase.customer_email),
    )
    return TrackingResult.ok(event_id=str(event_id) if event_id is not None else None)
