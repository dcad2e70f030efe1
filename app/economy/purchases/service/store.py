from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.purchases import Purchase
from app.db.repo.purchases_repo import PurchasesRepo
from app.economy.purchases.errors import PurchaseNotFoundError

from .metadata import merge_metadata


async def get_purchase(session: AsyncSession, purchase_id: UUID) -> Purchase:
    purchase = await PurchasesRepo.get_by_id(session, purchase_id)
    if purchase is None:
        raise PurchaseNotFoundError
    return purchase


async def get_purchase_for_update(session: AsyncSession, purchase_id: UUID) -> Purchase:
    purchase = await PurchasesRepo.get_by_id_for_update(session, purchase_id)
    if purchase is None:
        raise PurchaseNotFoundError
    return purchase


async def find_by_order_number(session: AsyncSession, order_number: int) -> Purchase:
    purchase = await PurchasesRepo.get_by_order_number(session, order_number)
    if purchase is None:
        raise PurchaseNotFoundError
    return purchase


async def record_metadata(
    session: AsyncSession,
    *,
    purchase_id: UUID,
    patch: dict[str, object],
    now_utc: datetime,
) -> Purchase:
    """Bookkeeping-only update: never touches status or price columns."""
    purchase = await get_purchase_for_update(session, purchase_id)
    merge_metadata(purchase, patch)
    purchase.updated_at = now_utc
    await session.flush()
    return purchase
