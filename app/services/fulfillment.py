from __future__ import annotations

from datetime import datetime

import httpx
import structlog

from app.core.config import get_settings
from app.core.logging import email_hash
from app.db.models.purchases import Purchase
from app.economy.mappings.types import ResolvedProduct
from app.services.http import async_client

logger = structlog.get_logger(__name__)
ADD_ON_FEE_META_ID = 4182315
ADD_ON_FEE_META_KEY = "_wc_checkout_add_on_value"
FULFILLMENT_CURRENCY = "USD"
ACCOUNT_REFERENCE_PURCHASE_TYPES = ("reset", "activation")


class FulfillmentDeliveryError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _numeric_id(value: str) -> int | str:
    return int(value) if value.isdigit() else value


def split_customer_name(full_name: str | None) -> tuple[str, str]:
    parts = (full_name or "").strip().split(" ", 1)
    first_name = parts[0] if parts else ""
    last_name = parts[1].strip() if len(parts) > 1 else ""
    return first_name, last_name


def build_fulfillment_payload(
    purchase: Purchase,
    *,
    resolved: ResolvedProduct,
    add_on_keys: list[str],
    now_utc: datetime,
) -> dict[str, object]:
    """Order document for the downstream order-processing webhook.

    The receiver reads line item ``product_id`` as the variation and
    ``variation_id`` as the product, so the resolved ids are swapped here.
    """
    billing = purchase.billing_address or {}
    first_name, last_name = split_customer_name(purchase.customer_name)
    account_id = purchase.external_account_id

    payload: dict[str, object] = {
        "id": int(purchase.order_number),
        "status": "completed",
        "currency": FULFILLMENT_CURRENCY,
        "date_created": now_utc.isoformat(),
        "total": str(purchase.purchase_price),
    }
    if account_id:
        payload["account_id"] = account_id
    payload["billing"] = {
        "first_name": first_name,
        "last_name": last_name,
        "company": "",
        "address_1": str(billing.get("address") or ""),
        "address_2": "",
        "city": str(billing.get("city") or ""),
        "state": str(billing.get("state") or ""),
        "postcode": str(billing.get("postalCode") or ""),
        "country": str(billing.get("country") or "").upper(),
        "email": purchase.customer_email,
        "phone": "",
    }
    payload["line_items"] = [
        {
            "name": purchase.program_name or "Program",
            "product_id": _numeric_id(resolved.variation_id),
            "variation_id": _numeric_id(resolved.product_id),
            "total": str(purchase.purchase_price),
        }
    ]
    payload["fee_lines"] = (
        [{"meta_data": [{"id": ADD_ON_FEE_META_ID, "key": ADD_ON_FEE_META_KEY, "value": list(add_on_keys)}]}]
        if add_on_keys
        else []
    )
    if purchase.purchase_type in ACCOUNT_REFERENCE_PURCHASE_TYPES and account_id:
        payload["meta_data"] = [{"key": "account_id", "value": account_id}]
    return payload


async def send_fulfillment_notification(
    payload: dict[str, object],
    *,
    gateway: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    settings = get_settings()
    billing = payload.get("billing") if isinstance(payload.get("billing"), dict) else {}
    log_context = {
        "order_number": payload.get("id"),
        "gateway": gateway,
        "email_hash": email_hash(billing.get("email") if isinstance(billing.get("email"), str) else None),
    }
    try:
        async with async_client(
            timeout=settings.outbound_http_timeout_seconds,
            transport=transport,
        ) as client:
            response = await client.post(settings.fulfillment_webhook_url, json=payload)
    except httpx.HTTPError as exc:
        logger.warning("fulfillment_notification_transport_failed", error=exc.__class__.__name__, **log_context)
        raise FulfillmentDeliveryError(f"Fulfillment webhook unreachable: {exc.__class__.__name__}") from exc

    if response.status_code >= 400:
        logger.warning("fulfillment_notification_rejected", status_code=response.status_code, **log_context)
        raise FulfillmentDeliveryError(
            f"Fulfillment webhook failed ({response.status_code}): {response.text[:200]}",
            status_code=response.status_code,
        )

    logger.info("fulfillment_notification_sent", status_code=response.status_code, **log_context)
    return response.status_code
