from __future__ import annotations

from datetime import datetime

import pytest

from app.db.repo.purchases_repo import PurchasesRepo
from app.db.session import SessionLocal
from app.economy.coupons.errors import CouponIneligibleError
from app.economy.coupons.service import build_coupon_resolver
from app.economy.purchases.service import PurchaseService
from tests.integration.checkout_fixtures import UTC, checkout_input, seed_catalog


@pytest.mark.asyncio
async def test_prepare_checkout_prices_on_server_and_persists_pending_purchase() -> None:
    await seed_catalog()
    now_utc = datetime.now(UTC)

    async with SessionLocal.begin() as session:
        preparation = await PurchaseService.prepare_checkout(
            session,
            checkout_input(client_price_hints={"totalPrice": 1}),
            now_utc=now_utc,
            resolver=build_coupon_resolver(ttl_seconds=0),
        )

    assert preparation.order_number == 100000
    assert preparation.country_code == "GB"
    breakdown = preparation.breakdown
    assert breakdown.original_price == 299
    assert breakdown.final_purchase_price == 270
    assert breakdown.applied_discount == 29
    assert breakdown.add_on_value == 54
    assert breakdown.total_price == 324

    async with SessionLocal() as session:
        purchase = await PurchasesRepo.get_by_id(session, preparation.purchase_id)

    assert purchase is not None
    assert purchase.status == "pending"
    assert purchase.total_price == 324
    assert purchase.discount_code == "SPRING10"
    assert purchase.tier_id == "tier-1-50000"
    assert purchase.platform_name == "MetaTrader 5"
    assert purchase.customer_email == "ada@example.com"
    assert purchase.product_id == "9001"
    assert purchase.variation_id == "9002"
    assert purchase.selected_add_ons[0]["addOn"] == "profit-split-90"
    assert purchase.metadata_["totalPrice"] == 324


@pytest.mark.asyncio
async def test_prepare_checkout_reprices_existing_pending_purchase_in_place() -> None:
    await seed_catalog()
    now_utc = datetime.now(UTC)
    resolver = build_coupon_resolver(ttl_seconds=0)

    async with SessionLocal.begin() as session:
        first = await PurchaseService.prepare_checkout(session, checkout_input(), now_utc=now_utc, resolver=resolver)

    async with SessionLocal.begin() as session:
        second = await PurchaseService.prepare_checkout(
            session,
            checkout_input(existing_purchase_id=first.purchase_id, add_ons=[], coupon_code=None),
            now_utc=now_utc,
            resolver=resolver,
        )

    assert second.purchase_id == first.purchase_id
    assert second.order_number == first.order_number
    assert second.breakdown.total_price == 299

    async with SessionLocal() as session:
        purchase = await PurchasesRepo.get_by_id(session, first.purchase_id)
    assert purchase is not None
    assert purchase.total_price == 299
    assert purchase.discount_code is None
    assert purchase.selected_add_ons == []


@pytest.mark.asyncio
async def test_prepare_checkout_without_mapping_still_creates_purchase() -> None:
    await seed_catalog(with_mapping=False)

    async with SessionLocal.begin() as session:
        preparation = await PurchaseService.prepare_checkout(
            session,
            checkout_input(coupon_code=None),
            now_utc=datetime.now(UTC),
            resolver=build_coupon_resolver(ttl_seconds=0),
        )

    async with SessionLocal() as session:
        purchase = await PurchasesRepo.get_by_id(session, preparation.purchase_id)
    assert purchase is not None
    assert purchase.total_price == 299 + 60
    assert purchase.product_id is None
    assert purchase.variation_id is None


@pytest.mark.asyncio
async def test_prepare_checkout_rejects_unknown_coupon_without_persisting() -> None:
    await seed_catalog()

    with pytest.raises(CouponIneligibleError):
        async with SessionLocal.begin() as session:
            await PurchaseService.prepare_checkout(
                session,
                checkout_input(coupon_code="NOPE"),
                now_utc=datetime.now(UTC),
                resolver=build_coupon_resolver(ttl_seconds=0),
            )

    async with SessionLocal() as session:
        assert await PurchasesRepo.count_stale_pending(session, older_than_utc=datetime.now(UTC)) == 0
