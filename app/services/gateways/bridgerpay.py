from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal
from time import monotonic

import httpx
import structlog

from app.core.config import get_settings
from app.economy.money import format_amount
from app.economy.purchases.types import CustomerDetails
from app.services.http import async_client, response_error_message

from .errors import GatewayAuthError, GatewayConfigError, GatewayError
from .signatures import is_valid_signature
from .types import CheckoutSession, GatewayOutcome

logger = structlog.get_logger(__name__)
GATEWAY_NAME = "bridgerpay"
SIGNATURE_HEADER = "x-bridgerpay-signature"
TOKEN_EXPIRY_MARGIN_SECONDS = 60
PROCESSED_WEBHOOK_TYPES = frozenset({"approved", "declined"})
ENVIRONMENTS = frozenset({"sandbox", "production"})
STATUS_MAP = {
    "approved": "completed",
    "success": "completed",
    "completed": "completed",
    "captured": "completed",
    "settled": "completed",
    "declined": "failed",
    "rejected": "failed",
    "failed": "failed",
    "error": "failed",
    "pending": "pending",
    "processing": "pending",
    "authorized": "pending",
    "cancelled": "cancelled",
    "canceled": "cancelled",
    "voided": "cancelled",
    "refunded": "cancelled",
}


def normalize_environment(value: str | None) -> str:
    """Anything other than an explicit sandbox runs against production."""
    candidate = (value or "").strip().lower()
    return candidate if candidate in ENVIRONMENTS else "production"


def map_status(provider_status: str | None) -> str:
    normalized = (provider_status or "").strip().lower()
    mapped = STATUS_MAP.get(normalized)
    if mapped is None:
        logger.info("bridgerpay_status_unknown", provider_status=provider_status)
        return "pending"
    return mapped


class AccessTokenCache:
    def __init__(self, *, clock: Callable[[], float] = monotonic) -> None:
        self._clock = clock
        self._token: str | None = None
        self._expires_at = 0.0

    def get(self) -> str | None:
        if self._token is None or self._clock() >= self._expires_at:
            self._token = None
            return None
        return self._token

    def set(self, token: str, *, expires_in: float) -> None:
        self._token = token
        self._expires_at = self._clock() + float(expires_in) - TOKEN_EXPIRY_MARGIN_SECONDS

    def clear(self) -> None:
        self._token = None
        self._expires_at = 0.0


_shared_token_cache = AccessTokenCache()


def build_session_request(
    *,
    cashier_key: str,
    order_number: int,
    purchase_id: str,
    amount: int | Decimal,
    currency: str,
    country_code: str,
    customer: CustomerDetails,
    platform_id: str | None,
) -> dict[str, object]:
    return {
        "cashier_key": cashier_key,
        "order_id": str(order_number),
        "currency": currency,
        "country": country_code,
        "amount": float(format_amount(amount)),
        "theme": "bright",
        "first_name": customer.first_name,
        "last_name": customer.last_name,
        "email": customer.email,
        "phone": customer.phone or "",
        "address": customer.address or "",
        "city": customer.city or "",
        "state": customer.state or "",
        "zip_code": customer.postal_code or "",
        "language": "en",
        "currency_lock": True,
        "amount_lock": True,
        "payload": purchase_id,
        "custom_data": {
            "platform_id": platform_id or "",
            "affiliate_id": "",
            "tracking_id": "",
        },
    }


class BridgerPayGateway:
    """Hosted cashier sessions for the card/APM gateway."""

    name = GATEWAY_NAME

    def __init__(
        self,
        *,
        api_url: str,
        api_key: str,
        cashier_key: str,
        username: str,
        password: str,
        webhook_secret: str,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        token_cache: AccessTokenCache | None = None,
        environment: str = "production",
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.cashier_key = cashier_key
        self._username = username
        self._password = password
        self._webhook_secret = webhook_secret
        self._timeout = timeout
        self._transport = transport
        self._token_cache = token_cache or _shared_token_cache
        self.environment = normalize_environment(environment)

    @classmethod
    def from_settings(cls, *, transport: httpx.AsyncBaseTransport | None = None) -> BridgerPayGateway:
        settings = get_settings()
        return cls(
            api_url=settings.bridgerpay_api_url,
            api_key=settings.bridgerpay_api_key,
            cashier_key=settings.bridgerpay_cashier_key,
            username=settings.bridgerpay_username,
            password=settings.bridgerpay_password,
            webhook_secret=settings.bridgerpay_webhook_secret,
            timeout=settings.outbound_http_timeout_seconds,
            transport=transport,
            environment=settings.bridgerpay_env,
        )

    def ensure_configured(self) -> None:
        if not (self.api_key and self.cashier_key and self._username and self._password):
            raise GatewayConfigError(
                "BridgerPay configuration missing. Required: BRIDGERPAY_API_KEY, "
                "BRIDGERPAY_CASHIER_KEY, BRIDGERPAY_USERNAME, BRIDGERPAY_PASSWORD",
                status_code=500,
            )

    async def _authenticate(self, client: httpx.AsyncClient) -> str:
        cached = self._token_cache.get()
        if cached is not None:
            return cached

        response = await client.post(
            f"{self.api_url}/v2/auth/login",
            json={"user_name": self._username, "password": self._password},
            headers={"accept": "application/json"},
        )
        if response.status_code >= 400:
            logger.error("bridgerpay_auth_failed", status_code=response.status_code)
            raise GatewayAuthError(
                f"BridgerPay authentication failed: {response.status_code}",
                status_code=response.status_code,
            )

        data = response.json()
        access_token = ((data.get("result") or {}).get("access_token") or {}) if isinstance(data, dict) else {}
        token = access_token.get("token")
        if not isinstance(token, str) or not token:
            message = ((data.get("response") or {}).get("message") if isinstance(data, dict) else None) or ""
            raise GatewayAuthError(f"BridgerPay authentication failed: {message}".strip(), status_code=502)

        self._token_cache.set(token, expires_in=float(access_token.get("expires_in") or 0))
        return token

    async def _post_session(self, client: httpx.AsyncClient, body: dict[str, object], token: str) -> httpx.Response:
        return await client.post(
            f"{self.api_url}/v2/cashier/session/create/{self.api_key}",
            json=body,
            headers={"Authorization": f"Bearer {token}"},
        )

    async def create_session(self, body: dict[str, object]) -> CheckoutSession:
        self.ensure_configured()
        try:
            async with async_client(timeout=self._timeout, transport=self._transport) as client:
                token = await self._authenticate(client)
                response = await self._post_session(client, body, token)
                if response.status_code == 401:
                    logger.info("bridgerpay_token_rejected_retrying", order_id=body.get("order_id"))
                    self._token_cache.clear()
                    token = await self._authenticate(client)
                    response = await self._post_session(client, body, token)
        except httpx.HTTPError as exc:
            raise GatewayError(f"BridgerPay request failed: {exc.__class__.__name__}", status_code=504) from exc

        if response.status_code >= 400:
            message = response_error_message(response)
            logger.error(
                "bridgerpay_session_create_failed",
                order_id=body.get("order_id"),
                status_code=response.status_code,
            )
            raise GatewayError(message, status_code=response.status_code)

        data = response.json()
        result = data.get("result") if isinstance(data, dict) else None
        cashier_token = result.get("cashier_token") if isinstance(result, dict) else None
        if not isinstance(cashier_token, str) or not cashier_token:
            raise GatewayError("BridgerPay did not return a cashier token", status_code=502)

        logger.info("bridgerpay_session_created", order_id=body.get("order_id"), environment=self.environment)
        return CheckoutSession(gateway=GATEWAY_NAME, session_token=cashier_token, cashier_key=self.cashier_key)

    def verify_webhook(self, *, raw_body: bytes, signature: str | None) -> bool:
        return is_valid_signature(raw_body=raw_body, received_signature=signature, secret=self._webhook_secret)

    def map_status(self, provider_status: str | None) -> str:
        return map_status(provider_status)

    async def fetch_authoritative(self, provider_payment_id: str) -> GatewayOutcome | None:
        # The signed webhook is the only status source this provider exposes.
        return None


def _first_str(source: object, *keys: str) -> str | None:
    if not isinstance(source, dict):
        return None
    for key in keys:
        value = source.get(key)
        if isinstance(value, str) and value:
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
    return None


def _first_number(source: object, *keys: str) -> Decimal | None:
    if not isinstance(source, dict):
        return None
    for key in keys:
        value = source.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return Decimal(str(value))
    return None


def _as_dict(value: object) -> dict[str, object]:
    return value if isinstance(value, dict) else {}


def parse_webhook(payload: dict[str, object]) -> GatewayOutcome:
    """Pull the order reference, status and charge details out of a webhook body."""
    data = _as_dict(payload.get("data"))
    charge = _as_dict(data.get("charge"))
    attributes = _as_dict(charge.get("attributes"))
    source = _as_dict(attributes.get("source"))

    event_type = _first_str(payload, "type") or _first_str(_as_dict(payload.get("webhook")), "type")
    order_reference = (
        _first_str(data, "order_id", "orderId", "reference")
        or _first_str(charge, "order_id", "orderId")
        or _first_str(payload, "order_id", "orderId", "reference")
    )
    transaction_id = (
        _first_str(charge, "psp_order_id", "id", "uuid", "transaction_id", "transactionId")
        or _first_str(data, "transaction_id", "id")
        or _first_str(payload, "transaction_id", "transactionId", "id")
    )
    provider_status = (
        _first_str(attributes, "status", "transaction_status")
        or _first_str(charge, "status")
        or _first_str(payload, "status", "transaction_status", "state")
        or event_type
        or ""
    )
    amount = (
        _first_number(attributes, "amount", "total_amount")
        or _first_number(charge, "amount")
        or _first_number(payload, "amount", "transaction_amount")
    )
    currency = (
        _first_str(attributes, "currency")
        or _first_str(charge, "currency")
        or _first_str(payload, "currency", "transaction_currency")
    )

    status = map_status(provider_status)
    card_brand = _first_str(attributes, "card_brand")
    card_last4 = _first_str(attributes, "card_number")
    metadata = {
        "bridgerPayTransactionId": transaction_id,
        "bridgerPayChargeId": _first_str(charge, "id", "uuid"),
        "bridgerPayStatus": provider_status,
        "bridgerPayAmount": float(amount) if amount is not None else None,
        "bridgerPayCurrency": currency,
        "bridgerPayPspName": _first_str(data, "psp_name"),
        "bridgerPayMidAlias": _first_str(attributes, "mid_alias"),
        "bridgerPayCardBrand": card_brand,
        "bridgerPayCardLast4": card_last4,
        "bridgerPayCustomerIp": _first_str(source, "ip_address"),
        "bridgerPayWebhookType": event_type,
    }

    card_info = f" ({card_brand} ending in {card_last4})" if card_brand else ""
    notes = None
    if status == "completed":
        notes = f"Payment approved via BridgerPay{card_info}. Transaction ID: {transaction_id}"
    elif status == "failed":
        reason = _first_str(attributes, "decline_reason") or provider_status
        notes = f"Payment declined via BridgerPay. Reason: {reason}"
    elif status == "cancelled":
        notes = f"Payment cancelled via BridgerPay. Status: {provider_status}"

    return GatewayOutcome(
        gateway=GATEWAY_NAME,
        provider_status=provider_status,
        status=status,
        order_reference=order_reference,
        transaction_id=transaction_id,
        amount=amount,
        currency=currency,
        event_type=event_type,
        verified=True,
        metadata={key: value for key, value in metadata.items() if value is not None},
        notes=notes,
    )
