from __future__ import annotations

import time
from decimal import Decimal
from urllib.parse import quote, unquote
from uuid import UUID

import httpx
import structlog

from app.core.config import get_settings
from app.economy.money import format_amount
from app.economy.purchases.types import CustomerDetails
from app.services.http import async_client, response_error_message

from .errors import GatewayConfigError, GatewayError
from .signatures import is_valid_signature
from .types import CryptoInvoice, GatewayOutcome

logger = structlog.get_logger(__name__)
GATEWAY_NAME = "confirmo"
SIGNATURE_HEADER = "bp-signature"
REFERENCE_PREFIX = "ftm"
STATUS_MAP = {
    "prepared": "pending",
    "active": "pending",
    "confirming": "pending",
    "paid": "completed",
    "expired": "failed",
    "error": "failed",
}


def map_status(provider_status: str | None) -> str:
    return STATUS_MAP.get((provider_status or "").strip().lower(), "pending")


def build_reference(
    *,
    purchase_id: UUID,
    program_id: int,
    account_size: str,
    customer: CustomerDetails,
    timestamp_ms: int | None = None,
) -> str:
    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return "-".join(
        (
            REFERENCE_PREFIX,
            purchase_id.hex,
            str(program_id),
            account_size,
            quote(customer.email, safe=""),
            customer.first_name,
            customer.last_name,
            str(stamp),
        )
    )


def purchase_id_from_reference(reference: str | None) -> UUID | None:
    if not reference or not reference.startswith(f"{REFERENCE_PREFIX}-"):
        return None
    parts = reference.split("-")
    if len(parts) < 7:
        return None
    try:
        return UUID(hex=parts[1])
    except ValueError:
        return None


def customer_email_from_reference(reference: str | None) -> str | None:
    if purchase_id_from_reference(reference) is None:
        return None
    return unquote(reference.split("-")[4]) if reference else None


def build_invoice_request(
    *,
    amount: int | Decimal,
    currency: str,
    reference: str,
    product_name: str,
    account_size: str,
    customer_email: str,
    purchase_id: UUID,
    public_base_url: str,
) -> dict[str, object]:
    upper_currency = currency.upper()
    base_url = public_base_url.rstrip("/")
    return {
        "invoice": {"amount": format_amount(amount), "currencyFrom": upper_currency},
        "settlement": {"currency": upper_currency},
        "reference": reference,
        "product": {"name": product_name, "description": f"Account Size: {account_size}"},
        "notifyUrl": f"{base_url}/api/webhooks/confirmo",
        "returnUrl": f"{base_url}/en/checkout/order-received?orderId={purchase_id}&gateway=confirmo",
        "customerEmail": customer_email,
    }


class ConfirmoGateway:
    """Crypto invoices; the invoice endpoint is the authority on payment status."""

    name = GATEWAY_NAME

    def __init__(
        self,
        *,
        api_url: str,
        api_key: str,
        callback_password: str,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self._api_key = api_key
        self._callback_password = callback_password
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, *, transport: httpx.AsyncBaseTransport | None = None) -> ConfirmoGateway:
        settings = get_settings()
        return cls(
            api_url=settings.confirmo_api_url,
            api_key=settings.confirmo_api_key,
            callback_password=settings.confirmo_callback_password,
            timeout=settings.outbound_http_timeout_seconds,
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise GatewayConfigError("Confirmo configuration missing. Required: CONFIRMO_API_KEY", status_code=500)
        return {"Authorization": f"Bearer {self._api_key}"}

    async def _request(self, method: str, path: str, *, body: dict[str, object] | None = None) -> dict[str, object]:
        headers = self._headers()
        try:
            async with async_client(timeout=self._timeout, transport=self._transport) as client:
                response = await client.request(method, f"{self.api_url}{path}", json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise GatewayError(f"Confirmo request failed: {exc.__class__.__name__}", status_code=504) from exc

        if response.status_code >= 400:
            logger.error("confirmo_request_failed", path=path.split("/")[1], status_code=response.status_code)
            raise GatewayError(response_error_message(response), status_code=response.status_code)
        data = response.json()
        if not isinstance(data, dict):
            raise GatewayError("Confirmo returned an unexpected payload", status_code=502)
        return data

    async def create_invoice(self, body: dict[str, object]) -> CryptoInvoice:
        data = await self._request("POST", "/invoices", body=body)
        invoice = _as_invoice(data)
        logger.info("confirmo_invoice_created", invoice_id=invoice.invoice_id, status=invoice.status)
        return invoice

    async def fetch_invoice(self, invoice_id: str) -> CryptoInvoice:
        data = await self._request("GET", f"/invoices/{quote(invoice_id, safe='')}")
        return _as_invoice(data)

    def verify_webhook(self, *, raw_body: bytes, signature: str | None) -> bool:
        return is_valid_signature(
            raw_body=raw_body,
            received_signature=signature,
            secret=self._callback_password,
        )

    def map_status(self, provider_status: str | None) -> str:
        return map_status(provider_status)

    async def fetch_authoritative(self, provider_payment_id: str) -> GatewayOutcome:
        invoice = await self.fetch_invoice(provider_payment_id)
        return outcome_from_invoice(invoice.raw, verified=True)


def _as_invoice(data: dict[str, object]) -> CryptoInvoice:
    invoice_id = data.get("id")
    if not isinstance(invoice_id, str) or not invoice_id:
        raise GatewayError("Confirmo invoice has no id", status_code=502)
    return CryptoInvoice(
        invoice_id=invoice_id,
        url=str(data.get("url") or ""),
        status=str(data.get("status") or ""),
        raw=data,
    )


def invoice_metadata(payload: dict[str, object]) -> dict[str, object]:
    rate = payload.get("rate") if isinstance(payload.get("rate"), dict) else {}
    paid = payload.get("paid") if isinstance(payload.get("paid"), dict) else {}
    transactions = payload.get("cryptoTransactions")
    return {
        "confirmoInvoiceId": payload.get("id"),
        "confirmoStatus": payload.get("status"),
        "cryptoCurrency": rate.get("currencyTo") or "-",
        "cryptoAmount": paid.get("amount") or 0,
        "exchangeRate": rate.get("value") or 0,
        "cryptoTransactions": [
            tx.get("txid") for tx in transactions if isinstance(tx, dict) and tx.get("txid")
        ]
        if isinstance(transactions, list)
        else [],
    }


def outcome_from_invoice(payload: dict[str, object], *, verified: bool) -> GatewayOutcome:
    provider_status = str(payload.get("status") or "")
    status = map_status(provider_status)
    customer_amount = payload.get("customerAmount") if isinstance(payload.get("customerAmount"), dict) else {}
    raw_amount = customer_amount.get("amount")
    amount = (
        Decimal(str(raw_amount))
        if isinstance(raw_amount, (int, float)) and not isinstance(raw_amount, bool)
        else None
    )
    invoice_id = payload.get("id") if isinstance(payload.get("id"), str) else None

    notes = None
    if status == "completed":
        notes = f"Payment received via Confirmo. Invoice ID: {invoice_id}"
    elif status == "failed":
        notes = f"Crypto invoice {provider_status} via Confirmo. Invoice ID: {invoice_id}"

    return GatewayOutcome(
        gateway=GATEWAY_NAME,
        provider_status=provider_status,
        status=status,
        order_reference=payload.get("reference") if isinstance(payload.get("reference"), str) else None,
        transaction_id=invoice_id,
        amount=amount,
        currency=customer_amount.get("currency") if isinstance(customer_amount.get("currency"), str) else None,
        event_type=provider_status,
        verified=verified,
        metadata=invoice_metadata(payload),
        notes=notes,
    )
