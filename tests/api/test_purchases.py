from __future__ import annotations

import json
from decimal import Decimal
from types import SimpleNamespace
from typing import Any

import httpx
from fastapi.testclient import TestClient

from app.api.routes import purchases
from app.economy.coupons.errors import CouponIneligibleError
from app.economy.pricing.types import PriceBreakdown, TierRef
from app.economy.purchases.errors import PurchaseNotFoundError
from app.economy.purchases.types import PurchaseUpdateResult
from app.main import app
from app.services.gateways.confirmo import ConfirmoGateway
from tests.services.purchase_fixtures import PURCHASE_ID, FakeSessionFactory, make_purchase


def _breakdown(*, add_on_value: int) -> PriceBreakdown:
    return PriceBreakdown(
        tier=TierRef(tier_id="tier-1-50000", position=1, account_size="$50,000", price=Decimal("299")),
        tier_price=299,
        original_price=299,
        applied_discount=0,
        final_purchase_price=299,
        add_on_value=add_on_value,
        total_price=299 + add_on_value,
    )


def test_update_purchase_requires_purchase_id() -> None:
    client = TestClient(app)
    response = client.post("/api/update-purchase", json={"selectedAddOns": []})

    assert response.status_code == 400
    assert response.json() == {"error": "Purchase ID is required"}


def test_update_purchase_reprices(monkeypatch) -> None:
    calls: list[dict[str, Any]] = []

    async def _fake_update(session, **kwargs):
        calls.append(kwargs)
        return PurchaseUpdateResult(purchase_id=PURCHASE_ID, status="pending", breakdown=_breakdown(add_on_value=60))

    monkeypatch.setattr(purchases, "SessionLocal", FakeSessionFactory())
    monkeypatch.setattr(purchases, "get_coupon_resolver", lambda: None)
    monkeypatch.setattr(purchases.PurchaseService, "update_pending_purchase", _fake_update)

    client = TestClient(app)
    response = client.post(
        "/api/update-purchase",
        json={
            "purchaseId": str(PURCHASE_ID),
            "selectedAddOns": [{"addOnId": "profit-split-90", "priceIncreasePercentage": 55}],
        },
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "purchase": {
            "id": str(PURCHASE_ID),
            "status": "pending",
            "totalPrice": 359,
            "purchasePrice": 299,
            "addOnValue": 60,
            "hasAddOn": True,
        },
    }
    assert calls[0]["add_ons"] == [("profit-split-90", {})]
    assert calls[0]["coupon_code_set"] is False
    assert calls[0]["coupon_code"] is None


def test_update_purchase_distinguishes_cleared_coupon(monkeypatch) -> None:
    calls: list[dict[str, Any]] = []

    async def _fake_update(session, **kwargs):
        calls.append(kwargs)
        return PurchaseUpdateResult(purchase_id=PURCHASE_ID, status="pending", breakdown=_breakdown(add_on_value=0))

    monkeypatch.setattr(purchases, "SessionLocal", FakeSessionFactory())
    monkeypatch.setattr(purchases, "get_coupon_resolver", lambda: None)
    monkeypatch.setattr(purchases.PurchaseService, "update_pending_purchase", _fake_update)

    client = TestClient(app)
    response = client.post("/api/update-purchase", json={"purchaseId": str(PURCHASE_ID), "couponCode": "  "})

    assert response.status_code == 200
    assert response.json()["purchase"]["hasAddOn"] is False
    assert calls[0]["coupon_code_set"] is True
    assert calls[0]["coupon_code"] is None


def test_update_purchase_surfaces_coupon_rejection(monkeypatch) -> None:
    async def _fake_update(session, **kwargs):
        raise CouponIneligibleError("Coupon has expired")

    monkeypatch.setattr(purchases, "SessionLocal", FakeSessionFactory())
    monkeypatch.setattr(purchases, "get_coupon_resolver", lambda: None)
    monkeypatch.setattr(purchases.PurchaseService, "update_pending_purchase", _fake_update)

    client = TestClient(app)
    response = client.post("/api/update-purchase", json={"purchaseId": str(PURCHASE_ID), "couponCode": "OLD"})

    assert response.status_code == 400
    assert response.json() == {"error": "Coupon has expired"}


def _patch_crypto_payment(monkeypatch, handler, *, purchase=None) -> list[dict[str, Any]]:
    recorded: list[dict[str, Any]] = []
    stored = purchase if purchase is not None else make_purchase()

    async def _fake_get(session, purchase_id):
        if purchase_id != stored.id:
            raise PurchaseNotFoundError
        return stored

    async def _fake_record_metadata(session, *, purchase_id, patch, now_utc):
        recorded.append(patch)
        return stored

    gateway = ConfirmoGateway(
        api_url="https://confirmo.test/api/v3",
        api_key="confirmo-key",
        callback_password="callback-secret",
        transport=httpx.MockTransport(handler),
    )
    monkeypatch.setattr(purchases, "SessionLocal", FakeSessionFactory())
    monkeypatch.setattr(purchases, "get_settings", lambda: SimpleNamespace(public_base_url="https://shop.example.test"))
    monkeypatch.setattr(purchases, "get_confirmo_gateway", lambda: gateway)
    monkeypatch.setattr(purchases.PurchaseService, "get_purchase", _fake_get)
    monkeypatch.setattr(purchases.PurchaseService, "record_metadata", _fake_record_metadata)
    return recorded


def test_create_crypto_payment_uses_stored_total(monkeypatch) -> None:
    invoice_requests: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        invoice_requests.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={"id": "inv_123", "url": "https://confirmo.test/pay/inv_123", "status": "prepared"},
        )

    recorded = _patch_crypto_payment(monkeypatch, handler)

    client = TestClient(app)
    response = client.post(
        "/api/create-confirmo-payment",
        json={"purchaseId": str(PURCHASE_ID), "amount": 10},
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "payment": {"id": "inv_123", "url": "https://confirmo.test/pay/inv_123", "status": "prepared"},
    }
    body = invoice_requests[0]
    assert body["invoice"] == {"amount": "323.00", "currencyFrom": "USD"}
    assert body["customerEmail"] == "ada@example.com"
    assert body["reference"].startswith(f"ftm-{PURCHASE_ID.hex}-3-$50,000-ada%40example.com-Ada-Lovelace King-")
    assert body["notifyUrl"] == "https://shop.example.test/api/webhooks/confirmo"
    assert recorded[0]["paymentGateway"] == "confirmo"
    assert recorded[0]["confirmoInvoiceId"] == "inv_123"
    assert recorded[0]["confirmoReference"] == body["reference"]


def test_create_crypto_payment_rejects_settled_purchase(monkeypatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        raise AssertionError("no invoice expected")

    _patch_crypto_payment(monkeypatch, handler, purchase=make_purchase(status="completed"))

    client = TestClient(app)
    response = client.post("/api/create-confirmo-payment", json={"purchaseId": str(PURCHASE_ID)})

    assert response.status_code == 400
    assert response.json() == {"error": "Can only pay for pending purchases"}


def test_create_crypto_payment_unknown_purchase(monkeypatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        raise AssertionError("no invoice expected")

    _patch_crypto_payment(monkeypatch, handler)

    client = TestClient(app)
    response = client.post(
        "/api/create-confirmo-payment",
        json={"purchaseId": "00000000-0000-0000-0000-000000000001"},
    )

    assert response.status_code == 404
    assert response.json() == {"error": "Purchase not found"}


def test_create_crypto_payment_reports_provider_failure(monkeypatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"message": "Amount below minimum"})

    recorded = _patch_crypto_payment(monkeypatch, handler)

    client = TestClient(app)
    response = client.post("/api/create-confirmo-payment", json={"purchaseId": str(PURCHASE_ID)})

    assert response.status_code == 502
    assert response.json() == {"error": "Failed to create Confirmo payment", "details": "Amount below minimum"}
    assert recorded == []
