from __future__ import annotations

from datetime import datetime

import httpx
import structlog

from app.core.config import get_settings
from app.db.models.purchases import Purchase
from app.services.http import async_client, response_error_message

from .types import TrackingResult

logger = structlog.get_logger(__name__)
KLAVIYO_REVISION = "2024-07-15"
METRIC_STARTED_ORDER = "Started Order"
METRIC_PLACED_ORDER = "Placed Order"
METRIC_ORDERED_PRODUCT = "Ordered Product"
METRIC_ORDER_FAILED = "Order Failed"


def order_items(purchase: Purchase) -> list[dict[str, object]]:
    return [
        {
            "product_id": str(purchase.program_id),
            "sku": f"{purchase.program_id}-{purchase.account_size}",
            "name": purchase.program_name or "Program",
            "quantity": 1,
            "price": purchase.total_price,
        }
    ]


def order_properties(purchase: Purchase) -> dict[str, object]:
    properties: dict[str, object] = {
        "$value": purchase.total_price,
        "order_id": str(purchase.order_number),
        "currency": purchase.currency or "USD",
        "items": order_items(purchase),
    }
    if purchase.discount_code:
        properties["discount_code"] = purchase.discount_code
    return properties


def build_event(
    *,
    metric: str,
    email: str,
    properties: dict[str, object],
    unique_id: str | None,
    now_utc: datetime,
) -> dict[str, object]:
    attributes: dict[str, object] = {
        "metric": {"data": {"type": "metric", "attributes": {"name": metric}}},
        "properties": properties,
        "time": now_utc.isoformat(),
        "profile": {"data": {"type": "profile", "attributes": {"email": email.strip().lower()}}},
    }
    if unique_id:
        attributes["unique_id"] = unique_id
    return {"data": {"type": "event", "attributes": attributes}}


class KlaviyoClient:
    def __init__(
        self,
        *,
        api_url: str,
        api_key: str,
        enabled: bool,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self._api_key = api_key
        self.enabled = enabled
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, *, transport: httpx.AsyncBaseTransport | None = None) -> KlaviyoClient:
        settings = get_settings()
        return cls(
            api_url=settings.klaviyo_api_url,
            api_key=settings.klaviyo_api_key,
            enabled=settings.klaviyo_enabled,
            timeout=settings.outbound_http_timeout_seconds,
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Klaviyo-API-Key {self._api_key}", "revision": KLAVIYO_REVISION}

    async def send_events(self, events: list[dict[str, object]], *, order_number: int) -> TrackingResult:
        if not self.enabled:
            return TrackingResult.skipped("tracking_disabled")
        if not self._api_key:
            logger.warning("klaviyo_api_key_missing", order_number=order_number)
            return TrackingResult.failed("missing_api_key")

        try:
            async with async_client(timeout=self._timeout, transport=self._transport) as client:
                for event in events:
                    response = await client.post(f"{self.api_url}/events/", json=event, headers=self._headers())
                    if response.status_code >= 400:
                        logger.warning(
                            "klaviyo_event_rejected",
                            order_number=order_number,
                            status_code=response.status_code,
                        )
                        return TrackingResult.failed(
                            f"Klaviyo /events/ failed: {response.status_code} - {response_error_message(response)}"
                        )
        except httpx.HTTPError as exc:
            logger.warning("klaviyo_event_transport_failed", order_number=order_number, error=exc.__class__.__name__)
            return TrackingResult.failed(exc.__class__.__name__)

        logger.info("klaviyo_events_sent", order_number=order_number, count=len(events))
        return TrackingResult.ok()

    async def track_started_order(self, purchase: Purchase, *, now_utc: datetime) -> TrackingResult:
        event = build_event(
            metric=METRIC_STARTED_ORDER,
            email=purchase.customer_email,
            properties=order_properties(purchase),
            unique_id=f"started_{purchase.order_number}",
            now_utc=now_utc,
        )
        return await self.send_events([event], order_number=purchase.order_number)

    async def track_placed_order(self, purchase: Purchase, *, now_utc: datetime) -> TrackingResult:
        """Placed Order plus one Ordered Product event per line item."""
        events = [
            build_event(
                metric=METRIC_PLACED_ORDER,
                email=purchase.customer_email,
                properties=order_properties(purchase),
                unique_id=f"placed_{purchase.order_number}",
                now_utc=now_utc,
            )
        ]
        for item in order_items(purchase):
            events.append(
                build_event(
                    metric=METRIC_ORDERED_PRODUCT,
                    email=purchase.customer_email,
                    properties={
                        "$value": item["price"],
                        "order_id": str(purchase.order_number),
                        **item,
                    },
                    unique_id=f"placed_{purchase.order_number}_{item['sku']}",
                    now_utc=now_utc,
                )
            )
        return await self.send_events(events, order_number=purchase.order_number)

    async def track_order_failed(
        self,
        purchase: Purchase,
        *,
        reason: str | None,
        now_utc: datetime,
    ) -> TrackingResult:
        event = build_event(
            metric=METRIC_ORDER_FAILED,
            email=purchase.customer_email,
            properties={**order_properties(purchase), "reason": reason or "Payment declined"},
            unique_id=f"failed_{purchase.order_number}",
            now_utc=now_utc,
        )
        return await self.send_events([event], order_number=purchase.order_number)
