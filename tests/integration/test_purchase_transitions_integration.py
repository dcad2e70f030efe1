from __future__ import annotations

from datetime import datetime
from uuid import UUID

import pytest
from sqlalchemy import func, select

from app.db.models.coupon_usages import CouponUsage
from app.db.repo.purchases_repo import PurchasesRepo
from app.db.session import SessionLocal
from app.economy.coupons.service import build_coupon_resolver
from app.economy.purchases.errors import PurchaseInvalidStateError
from app.economy.purchases.service import PurchaseService
from app.services.gateways.types import GatewayOutcome
from app.services.reconciliation import ReconciliationService
from app.services.reconciliation import service as reconciliation_service
from tests.integration.checkout_fixtures import UTC, checkout_input, seed_catalog


async def _create_pending_purchase() -> UUID:
    await seed_catalog()
    async with SessionLocal.begin() as session:
        preparation = await PurchaseService.prepare_checkout(
            session,
            checkout_input(),
            now_utc=datetime.now(UTC),
            resolver=build_coupon_resolver(ttl_seconds=0),
        )
    return preparation.purchase_id


def _outcome(status: str, *, provider_status: str | None = None) -> GatewayOutcome:
    return GatewayOutcome(
        gateway="bridgerpay",
        provider_status=provider_status or status,
        status=status,
        order_reference="100000",
        transaction_id="txn_1",
        verified=True,
        metadata={"bridgerPayTransactionId": "txn_1"},
    )


def _capture_side_effects(monkeypatch: pytest.MonkeyPatch) -> tuple[list[list[str]], list[dict[str, object]]]:
    effect_batches: list[list[str]] = []
    alerts: list[dict[str, object]] = []

    async def _fake_run_effects(names, context):
        effect_batches.append(list(names))
        return []

    async def _fake_send_ops_alert(*, event: str, payload: dict[str, object]) -> bool:
        alerts.append({"event": event, **payload})
        return True

    monkeypatch.setattr(reconciliation_service, "run_effects", _fake_run_effects)
    monkeypatch.setattr(reconciliation_service, "send_ops_alert", _fake_send_ops_alert)
    return effect_batches, alerts


async def _count(model, **filters: object) -> int:
    async with SessionLocal() as session:
        stmt = select(func.count()).select_from(model).filter_by(**filters)
        return int((await session.execute(stmt)).scalar_one())


@pytest.mark.asyncio
async def test_completed_claim_is_applied_once_and_replays_are_noops(monkeypatch: pytest.MonkeyPatch) -> None:
    effect_batches, alerts = _capture_side_effects(monkeypatch)
    purchase_id = await _create_pending_purchase()

    first = await ReconciliationService.apply_gateway_outcome(
        purchase_id=purchase_id,
        outcome=_outcome("completed", provider_status="approved"),
        source="webhook:bridgerpay",
        now_utc=datetime.now(UTC),
    )
    replay = await ReconciliationService.apply_gateway_outcome(
        purchase_id=purchase_id,
        outcome=_outcome("completed", provider_status="approved"),
        source="webhook:bridgerpay",
        now_utc=datetime.now(UTC),
    )

    assert first.transitioned is True
    assert first.status == "completed"
    assert replay.transitioned is False
    assert replay.idempotent_replay is True
    assert len(effect_batches) == 1
    assert alerts == []

    async with SessionLocal() as session:
        purchase = await PurchasesRepo.get_by_id(session, purchase_id)
    assert purchase is not None
    assert purchase.status == "completed"
    assert purchase.completed_at is not None
    assert purchase.metadata_["paymentGateway"] == "bridgerpay"
    assert purchase.metadata_["bridgerPayTransactionId"] == "txn_1"

    assert await _count(CouponUsage, purchase_id=purchase_id) == 1


@pytest.mark.asyncio
async def test_conflicting_terminal_claim_is_recorded_as_anomaly(monkeypatch: pytest.MonkeyPatch) -> None:
    effect_batches, alerts = _capture_side_effects(monkeypatch)
    purchase_id = await _create_pending_purchase()

    await ReconciliationService.apply_gateway_outcome(
        purchase_id=purchase_id,
        outcome=_outcome("completed"),
        source="webhook:bridgerpay",
        now_utc=datetime.now(UTC),
    )
    conflict = await ReconciliationService.apply_gateway_outcome(
        purchase_id=purchase_id,
        outcome=_outcome("failed", provider_status="declined"),
        source="webhook:bridgerpay",
        now_utc=datetime.now(UTC),
    )

    assert conflict.status == "completed"
    assert conflict.transitioned is False
    assert conflict.anomaly == "terminal_state_conflict"
    assert len(effect_batches) == 1
    assert alerts[0]["event"] == "webhook_terminal_state_conflict"
    assert alerts[0]["claimed_status"] == "failed"

    async with SessionLocal() as session:
        purchase = await PurchasesRepo.get_by_id(session, purchase_id)
    assert purchase is not None
    assert purchase.status == "completed"
    anomalies = purchase.metadata_["anomalies"]
    assert anomalies[-1]["kind"] == "terminal_state_conflict"
    assert anomalies[-1]["claimedStatus"] == "failed"


@pytest.mark.asyncio
async def test_failed_claim_does_not_record_coupon_usage(monkeypatch: pytest.MonkeyPatch) -> None:
    _capture_side_effects(monkeypatch)
    purchase_id = await _create_pending_purchase()

    result = await ReconciliationService.apply_gateway_outcome(
        purchase_id=purchase_id,
        outcome=_outcome("failed", provider_status="declined"),
        source="webhook:bridgerpay",
        now_utc=datetime.now(UTC),
    )

    assert result.transitioned is True
    assert result.status == "failed"
    assert await _count(CouponUsage, purchase_id=purchase_id) == 0


@pytest.mark.asyncio
async def test_pending_claim_only_updates_bookkeeping(monkeypatch: pytest.MonkeyPatch) -> None:
    effect_batches, _ = _capture_side_effects(monkeypatch)
    purchase_id = await _create_pending_purchase()

    result = await ReconciliationService.apply_gateway_outcome(
        purchase_id=purchase_id,
        outcome=_outcome("pending", provider_status="in_process"),
        source="webhook:bridgerpay",
        now_utc=datetime.now(UTC),
    )

    assert result.status == "pending"
    assert result.transitioned is False
    assert effect_batches == []
    async with SessionLocal() as session:
        purchase = await PurchasesRepo.get_by_id(session, purchase_id)
    assert purchase is not None
    assert purchase.status == "pending"
    assert "webhookProcessedAt" in purchase.metadata_


@pytest.mark.asyncio
async def test_operator_cannot_complete_failed_purchase(monkeypatch: pytest.MonkeyPatch) -> None:
    _capture_side_effects(monkeypatch)
    purchase_id = await _create_pending_purchase()
    await ReconciliationService.apply_gateway_outcome(
        purchase_id=purchase_id,
        outcome=_outcome("failed"),
        source="webhook:bridgerpay",
        now_utc=datetime.now(UTC),
    )

    with pytest.raises(PurchaseInvalidStateError):
        await ReconciliationService.complete_pending_purchase(purchase_id=purchase_id, now_utc=datetime.now(UTC))

    async with SessionLocal() as session:
        purchase = await PurchasesRepo.get_by_id(session, purchase_id)
    assert purchase is not None
    assert purchase.status == "failed"


@pytest.mark.asyncio
async def test_webhook_lookup_accepts_order_number_and_purchase_id() -> None:
    purchase_id = await _create_pending_purchase()

    by_order_number = await ReconciliationService.find_purchase_id(order_reference="100000")
    by_uuid = await ReconciliationService.find_purchase_id(order_reference=str(purchase_id))

    assert by_order_number == purchase_id
    assert by_uuid == purchase_id
