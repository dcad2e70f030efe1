from __future__ import annotations

from types import SimpleNamespace
from typing import Any

from fastapi.testclient import TestClient

from app.api.routes import orders
from app.economy.purchases.errors import PurchaseValidationError
from app.economy.purchases.types import ExternalOrderResult
from app.main import app
from app.services.tracking.types import TrackingResult
from tests.services.purchase_fixtures import PURCHASE_ID, FakeSessionFactory, make_purchase

ORIGIN = "https://app.example.test"


def _payload(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "billing_details": {
            "first_name": "Ada",
            "last_name": "Lovelace King",
            "email": "Ada@Example.com",
            "country": "GB",
        },
        "product_id": 5521,
        "account_id": "ACC-7781",
    }
    payload.update(overrides)
    return payload


class _FakeKlaviyo:
    def __init__(self, tracked: list[int]) -> None:
        self._tracked = tracked

    async def track_started_order(self, purchase, *, now_utc) -> TrackingResult:
        self._tracked.append(purchase.order_number)
        return TrackingResult.ok()


def _patch_orders(monkeypatch) -> dict[str, list[Any]]:
    calls: dict[str, list[Any]] = {"created": [], "tracked": []}

    async def _fake_create(session, **kwargs):
        calls["created"].append(kwargs)
        return ExternalOrderResult(
            purchase_id=PURCHASE_ID,
            order_number=100042,
            total_price=79,
            external_product_id=kwargs["external_product_id"],
            customer_email=kwargs["customer"].email,
            purchase_type="reset",
        )

    async def _fake_get(session, purchase_id):
        return make_purchase(purchase_type="reset", reset_product_type="evaluation")

    monkeypatch.setattr(orders, "SessionLocal", FakeSessionFactory())
    monkeypatch.setattr(
        orders,
        "get_settings",
        lambda: SimpleNamespace(affiliate_cookie_name="affiliate_username", public_base_url="https://shop.example.test/"),
    )
    monkeypatch.setattr(orders, "get_coupon_resolver", lambda: None)
    monkeypatch.setattr(orders.PurchaseService, "create_external_pending_order", _fake_create)
    monkeypatch.setattr(orders.PurchaseService, "get_purchase", _fake_get)
    klaviyo = _FakeKlaviyo(calls["tracked"])
    monkeypatch.setattr(orders.KlaviyoClient, "from_settings", classmethod(lambda cls: klaviyo))
    return calls


def test_build_payment_url() -> None:
    url = orders.build_payment_url(
        base_url="https://shop.example.test/",
        order_number=100042,
        email="ada+test@example.com",
        product_id="5521",
    )
    assert url == (
        "https://shop.example.test/orders/100042/pay"
        "?checkout-login-token=1&email=ada%2Btest%40example.com&product_id=5521"
    )


def test_preflight_returns_cors_headers() -> None:
    client = TestClient(app)
    response = client.options("/api/orders/create-pending", headers={"Origin": ORIGIN})

    assert response.status_code == 204
    assert response.headers["access-control-allow-origin"] == ORIGIN
    assert response.headers["access-control-allow-methods"] == "POST, OPTIONS"
    assert response.headers["access-control-max-age"] == "86400"


def test_create_pending_requires_fields() -> None:
    client = TestClient(app)
    response = client.post("/api/orders/create-pending", json=_payload(account_id=None))

    assert response.status_code == 400
    assert response.json() == {"error": "Missing required fields: billing_details.email, product_id, account_id"}
    assert response.headers["access-control-allow-origin"] == "*"


def test_create_pending_order(monkeypatch) -> None:
    calls = _patch_orders(monkeypatch)

    client = TestClient(app)
    client.cookies.set("affiliate_username", "partner-7")
    response = client.post("/api/orders/create-pending", json=_payload(), headers={"Origin": ORIGIN})

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "order_id": str(PURCHASE_ID),
        "payment_url": (
            "https://shop.example.test/orders/100042/pay"
            "?checkout-login-token=1&email=ada%40example.com&product_id=5521"
        ),
    }
    assert response.headers["access-control-allow-origin"] == ORIGIN
    created = calls["created"][0]
    assert created["external_product_id"] == "5521"
    assert created["external_account_id"] == "ACC-7781"
    assert created["affiliate_cookie"] == "partner-7"
    assert created["customer"].email == "ada@example.com"
    assert calls["tracked"] == [100042]


def test_create_pending_order_unknown_product(monkeypatch) -> None:
    _patch_orders(monkeypatch)

    async def _fake_create(session, **kwargs):
        raise PurchaseValidationError("No mapping found for product_id. Product may not be configured.")

    monkeypatch.setattr(orders.PurchaseService, "create_external_pending_order", _fake_create)

    client = TestClient(app)
    response = client.post("/api/orders/create-pending", json=_payload(), headers={"Origin": ORIGIN})

    assert response.status_code == 400
    assert response.json() == {"error": "No mapping found for product_id. Product may not be configured."}
    assert response.headers["access-control-allow-origin"] == ORIGIN
