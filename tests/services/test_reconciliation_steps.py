from __future__ import annotations

import pytest

from app.economy.mappings.errors import MappingUnresolvedError
from app.economy.mappings.types import ResolvedProduct
from app.services.reconciliation import steps
from app.services.reconciliation.effects import EffectContext
from app.services.tracking import hyros
from app.services.tracking.types import TrackingResult
from tests.services.purchase_fixtures import NOW, FakeSessionFactory, make_purchase


def _context(**purchase_overrides: object) -> EffectContext:
    return EffectContext(
        purchase=make_purchase(**{"status": "completed", **purchase_overrides}),
        gateway="bridgerpay",
        source="webhook:bridgerpay",
        now_utc=NOW,
    )


def test_effects_for_status() -> None:
    assert [name for name, _ in steps.effects_for_status("completed")] == [
        steps.PRICE_MISMATCH_REPAIR,
        steps.MAPPING_RESOLUTION,
        steps.FULFILLMENT_NOTIFICATION,
        steps.HYROS_PURCHASE,
        steps.KLAVIYO_PLACED_ORDER,
    ]
    assert [name for name, _ in steps.effects_for_status("failed")] == [
        steps.HYROS_PURCHASE,
        steps.KLAVIYO_ORDER_FAILED,
    ]
    assert steps.effects_for_status("cancelled") == steps.DECLINED_EFFECTS
    assert steps.effects_for_status("pending") == ()


@pytest.mark.asyncio
async def test_resolve_mapping_reuses_stored_ids() -> None:
    context = _context(product_id="9001", variation_id="9002")

    outcome = await steps.resolve_mapping(context)

    assert outcome.status == "ok"
    assert outcome.detail == {"stored": True}
    assert context.resolved == ResolvedProduct(
        product_id="9001",
        variation_id="9002",
        tier_id="tier-1-50000",
        platform_id="mt5",
    )


@pytest.mark.asyncio
async def test_resolve_mapping_alerts_when_unresolved(monkeypatch) -> None:
    alerts: list[tuple[str, dict[str, object]]] = []

    async def _fake_resolve(session, **kwargs):
        raise MappingUnresolvedError(
            program_id=kwargs["program_id"],
            tier_id=kwargs["tier_id"],
            platform_id=kwargs["platform_id"],
            purchase_type=kwargs["purchase_type"],
        )

    async def _fake_alert(*, event: str, payload: dict[str, object]) -> bool:
        alerts.append((event, payload))
        return True

    monkeypatch.setattr(steps, "SessionLocal", FakeSessionFactory())
    monkeypatch.setattr(steps, "resolve_product", _fake_resolve)
    monkeypatch.setattr(steps, "send_ops_alert", _fake_alert)
    context = _context()

    outcome = await steps.resolve_mapping(context)

    assert outcome.status == "failed"
    assert "program=3" in (outcome.error or "")
    assert context.resolved is None
    assert alerts == [
        (
            "fulfillment_mapping_unresolved",
            {
                "purchase_id": str(context.purchase_id),
                "order_number": 100042,
                "program_id": 3,
                "tier_id": "tier-1-50000",
                "platform_id": "mt5",
                "purchase_type": "original",
            },
        )
    ]


@pytest.mark.asyncio
async def test_resolve_mapping_stores_resolved_ids(monkeypatch) -> None:
    locked = make_purchase(status="completed")
    resolved = ResolvedProduct(product_id="9001", variation_id="9002", tier_id="tier-1-50000", platform_id="mt5")

    async def _fake_resolve(session, **kwargs):
        return resolved

    async def _fake_get_for_update(session, purchase_id):
        return locked

    monkeypatch.setattr(steps, "SessionLocal", FakeSessionFactory())
    monkeypatch.setattr(steps, "resolve_product", _fake_resolve)
    monkeypatch.setattr(steps.PurchaseService, "get_purchase_for_update", _fake_get_for_update)
    context = _context()

    outcome = await steps.resolve_mapping(context)

    assert outcome.detail == {"productId": "9001", "variationId": "9002"}
    assert (locked.product_id, locked.variation_id) == ("9001", "9002")
    assert locked.updated_at == NOW
    assert context.purchase.product_id == "9001"
    assert context.resolved is resolved


@pytest.mark.asyncio
async def test_resolve_mapping_refresh_replaces_stale_stored_ids(monkeypatch) -> None:
    locked = make_purchase(status="completed", product_id="1", variation_id="2")
    repaired = ResolvedProduct(product_id="9001", variation_id="9002", tier_id="tier-1-50000", platform_id="mt5")
    lookups: list[int] = []

    async def _fake_resolve(session, **kwargs):
        lookups.append(kwargs["program_id"])
        return repaired

    async def _fake_get_for_update(session, purchase_id):
        return locked

    monkeypatch.setattr(steps, "SessionLocal", FakeSessionFactory())
    monkeypatch.setattr(steps, "resolve_product", _fake_resolve)
    monkeypatch.setattr(steps.PurchaseService, "get_purchase_for_update", _fake_get_for_update)
    context = _context(product_id="1", variation_id="2")
    context.refresh_mapping = True

    outcome = await steps.resolve_mapping(context)

    assert lookups == [3]
    assert outcome.detail == {"productId": "9001", "variationId": "9002"}
    assert (locked.product_id, locked.variation_id) == ("9001", "9002")
    assert context.resolved is repaired


@pytest.mark.asyncio
async def test_notify_fulfillment_requires_resolved_mapping() -> None:
    outcome = await steps.notify_fulfillment(_context())
    assert outcome.status == "failed"
    assert outcome.error == "mapping_unresolved"


@pytest.mark.asyncio
async def test_notify_fulfillment_sends_payload(monkeypatch) -> None:
    sent: list[tuple[dict[str, object], str | None]] = []

    async def _fake_add_on_keys(session, add_on_ids):
        assert list(add_on_ids) == ["profit-split-90"]
        return ["profit_split_90"]

    async def _fake_send(payload, *, gateway=None, transport=None) -> int:
        sent.append((payload, gateway))
        return 201

    monkeypatch.setattr(steps, "SessionLocal", FakeSessionFactory())
    monkeypatch.setattr(steps.ProgramsRepo, "list_add_on_keys", _fake_add_on_keys)
    monkeypatch.setattr(steps, "send_fulfillment_notification", _fake_send)
    context = _context()
    context.resolved = ResolvedProduct(product_id="9001", variation_id="9002", tier_id="t", platform_id="mt5")

    outcome = await steps.notify_fulfillment(context)

    assert outcome.status == "ok"
    assert outcome.detail == {"statusCode": 201}
    payload, gateway = sent[0]
    assert gateway == "bridgerpay"
    assert payload["fee_lines"][0]["meta_data"][0]["value"] == ["profit_split_90"]


@pytest.mark.asyncio
async def test_hyros_effect_uses_declined_event_and_stored_ip(monkeypatch) -> None:
    calls: list[dict[str, object]] = []

    async def _fake_track(purchase, **kwargs) -> TrackingResult:
        calls.append(kwargs)
        return TrackingResult.ok(event_id="77")

    monkeypatch.setattr(hyros, "track_purchase", _fake_track)
    context = _context(status="failed", metadata_={"bridgerPayCustomerIp": "198.51.100.7"})

    outcome = await steps.track_hyros_purchase(context)

    assert outcome.name == steps.HYROS_PURCHASE
    assert outcome.detail == {"eventId": "77"}
    assert calls[0]["event_type"] == "declined"
    assert calls[0]["ip_address"] == "198.51.100.7"


@pytest.mark.asyncio
async def test_klaviyo_failed_order_effect_passes_reason(monkeypatch) -> None:
    reasons: list[str | None] = []

    class _FakeClient:
        async def track_order_failed(self, purchase, *, reason, now_utc) -> TrackingResult:
            reasons.append(reason)
            return TrackingResult.failed("Klaviyo /events/ failed: 500 - oops")

    monkeypatch.setattr(steps.KlaviyoClient, "from_settings", classmethod(lambda cls: _FakeClient()))
    context = _context(status="failed")
    context.reason = "Insufficient funds"

    outcome = await steps.track_klaviyo_order_failed(context)

    assert reasons == ["Insufficient funds"]
    assert outcome.status == "failed"
    assert outcome.error == "Klaviyo /events/ failed: 500 - oops"

