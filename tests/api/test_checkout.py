from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace
from typing import Any

from fastapi.testclient import TestClient

from app.api.routes import checkout
from app.economy.pricing.errors import TierNotFoundError
from app.economy.pricing.types import PriceBreakdown, TierRef
from app.economy.purchases.types import CheckoutPreparation, CustomerDetails
from app.main import app
from app.services.gateways.errors import GatewayConfigError, GatewayError
from app.services.gateways.types import CheckoutSession
from tests.services.purchase_fixtures import PURCHASE_ID, FakeSessionFactory, make_purchase

CHECKOUT_URL = "/api/bridgerpay/checkout"


def _payload(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "programId": 3,
        "accountSize": "$50,000",
        "tierId": "tier-1-50000",
        "platformId": "mt5",
        "couponCode": " SPRING10 ",
        "purchaseType": "original-order",
        "currency": "usd",
        "totalPrice": 1,
        "selectedAddOns": [{"addOnId": "profit-split-90", "priceIncreasePercentage": 99}],
        "customerData": {
            "firstName": "Ada",
            "lastName": "Lovelace King",
            "email": "ada@example.com",
            "phone": "+44 20 7946 0000",
            "city": "London",
            "country": "United Kingdom",
        },
    }
    payload.update(overrides)
    return payload


def _breakdown() -> PriceBreakdown:
    return PriceBreakdown(
        tier=TierRef(tier_id="tier-1-50000", position=1, account_size="$50,000", price=Decimal("299")),
        tier_price=299,
        original_price=299,
        applied_discount=30,
        final_purchase_price=269,
        add_on_value=54,
        total_price=323,
    )


class _FakeGateway:
    cashier_key = "cashier-key"

    def __init__(self, *, configured: bool = True, error: GatewayError | None = None) -> None:
        self._configured = configured
        self._error = error
        self.session_requests: list[dict[str, object]] = []

    def ensure_configured(self) -> None:
        if not self._configured:
            raise GatewayConfigError("BridgerPay configuration missing", status_code=500)

    async def create_session(self, body: dict[str, object]) -> CheckoutSession:
        self.session_requests.append(body)
        if self._error is not None:
            raise self._error
        return CheckoutSession(gateway="bridgerpay", session_token="cashier-token", cashier_key=self.cashier_key)


def _patch_checkout(monkeypatch, gateway: _FakeGateway) -> dict[str, list[Any]]:
    calls: dict[str, list[Any]] = {"prepare": [], "session": [], "failed": [], "tracked": []}
    purchase = make_purchase()

    async def _fake_prepare(session, checkout_input, *, now_utc, resolver):
        calls["prepare"].append(checkout_input)
        return CheckoutPreparation(
            purchase_id=PURCHASE_ID,
            order_number=100042,
            status="pending",
            breakdown=_breakdown(),
            customer=checkout_input.customer,
            country_code="GB",
            program_name="Two Step Challenge",
            currency=checkout_input.currency,
        )

    async def _fake_get_for_update(session, purchase_id):
        return purchase

    async def _fake_record_session(session, *, purchase, gateway, session_token, now_utc):
        calls["session"].append((gateway, session_token))

    async def _fake_mark_failed(session, *, purchase, error_message, status_code, now_utc):
        calls["failed"].append((error_message, status_code))

    async def _fake_track(purchase, *, request, now_utc):
        calls["tracked"].append(purchase.order_number)

    monkeypatch.setattr(checkout, "SessionLocal", FakeSessionFactory())
    monkeypatch.setattr(checkout, "get_settings", lambda: SimpleNamespace(affiliate_cookie_name="affiliate_username"))
    monkeypatch.setattr(checkout, "get_coupon_resolver", lambda: None)
    monkeypatch.setattr(checkout, "get_bridgerpay_gateway", lambda: gateway)
    monkeypatch.setattr(checkout, "track_started_order", _fake_track)
    monkeypatch.setattr(checkout.PurchaseService, "prepare_checkout", _fake_prepare)
    monkeypatch.setattr(checkout.PurchaseService, "get_purchase_for_update", _fake_get_for_update)
    monkeypatch.setattr(checkout.PurchaseService, "record_checkout_session", _fake_record_session)
    monkeypatch.setattr(checkout.PurchaseService, "mark_checkout_failed", _fake_mark_failed)
    return calls


def test_checkout_rejects_missing_fields() -> None:
    client = TestClient(app)
    response = client.post(CHECKOUT_URL, json=_payload(customerData={"email": "ada@example.com"}))

    assert response.status_code == 400
    assert response.json()["error"] == "Missing required fields"


def test_checkout_rejects_invalid_email() -> None:
    payload = _payload()
    payload["customerData"] = {**payload["customerData"], "email": "ada-at-example"}

    client = TestClient(app)
    response = client.post(CHECKOUT_URL, json=payload)

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid email"


def test_checkout_reports_unconfigured_gateway(monkeypatch) -> None:
    _patch_checkout(monkeypatch, _FakeGateway(configured=False))

    client = TestClient(app)
    response = client.post(CHECKOUT_URL, json=_payload())

    assert response.status_code == 500
    assert response.json()["error"] == checkout.CHECKOUT_FAILED_ERROR


def test_checkout_maps_pricing_errors(monkeypatch) -> None:
    _patch_checkout(monkeypatch, _FakeGateway())

    async def _fake_prepare(session, checkout_input, *, now_utc, resolver):
        raise TierNotFoundError("program 3 has no tier for $50,000")

    monkeypatch.setattr(checkout.PurchaseService, "prepare_checkout", _fake_prepare)

    client = TestClient(app)
    response = client.post(CHECKOUT_URL, json=_payload())

    assert response.status_code == 400
    assert response.json() == {
        "error": "Could not find pricing tier for this purchase",
        "details": "program 3 has no tier for $50,000",
    }


def test_checkout_creates_session_with_server_prices(monkeypatch) -> None:
    gateway = _FakeGateway()
    calls = _patch_checkout(monkeypatch, gateway)

    client = TestClient(app)
    response = client.post(CHECKOUT_URL, json=_payload())

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["sessionToken"] == "cashier-token"
    assert body["cashierKey"] == "cashier-key"
    assert body["orderId"] == "100042"
    assert body["purchase"] == {"id": str(PURCHASE_ID), "status": "pending", "orderNumber": 100042}
    assert body["prices"]["totalPrice"] == 323

    checkout_input = calls["prepare"][0]
    assert checkout_input.purchase_type == "original"
    assert checkout_input.coupon_code == "SPRING10"
    assert checkout_input.currency == "USD"
    assert checkout_input.client_price_hints == {"totalPrice": 1}
    assert checkout_input.add_ons == [("profit-split-90", {})]
    assert checkout_input.customer == CustomerDetails(
        first_name="Ada",
        last_name="Lovelace King",
        email="ada@example.com",
        phone="+44 20 7946 0000",
        city="London",
        country="United Kingdom",
    )

    session_request = gateway.session_requests[0]
    assert session_request["amount"] == 323.0
    assert session_request["order_id"] == "100042"
    assert session_request["country"] == "GB"
    assert session_request["payload"] == str(PURCHASE_ID)
    assert calls["session"] == [("bridgerpay", "cashier-token")]
    assert calls["tracked"] == [100042]


def test_checkout_marks_purchase_failed_when_gateway_rejects(monkeypatch) -> None:
    calls = _patch_checkout(monkeypatch, _FakeGateway(error=GatewayError("Invalid cashier key", status_code=422)))

    client = TestClient(app)
    response = client.post(CHECKOUT_URL, json=_payload())

    assert response.status_code == 502
    assert response.json() == {"error": checkout.CHECKOUT_FAILED_ERROR, "details": "Invalid cashier key"}
    assert calls["failed"] == [("Invalid cashier key", 422)]
    assert calls["session"] == []
    assert calls["tracked"] == []
