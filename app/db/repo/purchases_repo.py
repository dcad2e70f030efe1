from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.purchases import ORDER_NUMBER_SEQUENCE, Purchase

TERMINAL_STATUSES = ("completed", "failed", "cancelled")
AFFILIATE_BINDING_STATUSES = ("pending", "completed")


class PurchasesRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, purchase_id: UUID) -> Purchase | None:
        return await session.get(Purchase, purchase_id)

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, purchase_id: UUID) -> Purchase | None:
        stmt = select(Purchase).where(Purchase.id == purchase_id).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_order_number(session: AsyncSession, order_number: int) -> Purchase | None:
        stmt = select(Purchase).where(Purchase.order_number == order_number)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_order_number_for_update(session: AsyncSession, order_number: int) -> Purchase | None:
        stmt = select(Purchase).where(Purchase.order_number == order_number).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_confirmo_invoice_id_for_update(
        session: AsyncSession,
        invoice_id: str,
    ) -> Purchase | None:
        stmt = (
            select(Purchase)
            .where(Purchase.metadata_["confirmoInvoiceId"].astext == invoice_id)
            .with_for_update()
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def next_order_number(session: AsyncSession) -> int:
        result = await session.execute(select(ORDER_NUMBER_SEQUENCE.next_value()))
        return int(result.scalar_one())

    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        purchase: Purchase,
        created_at: datetime,
    ) -> Purchase:
        purchase.created_at = created_at
        purchase.updated_at = created_at
        session.add(purchase)
        await session.flush()
        return purchase

    @staticmethod
    async def transition_from_pending(
        session: AsyncSession,
        *,
        purchase_id: UUID,
        to_status: str,
        now_utc: datetime,
    ) -> bool:
        values: dict[str, object] = {"status": to_status, "updated_at": now_utc}
        if to_status == "completed":
            values["completed_at"] = now_utc
        stmt = (
            update(Purchase)
            .where(Purchase.id == purchase_id, Purchase.status == "pending")
            .values(**values)
            .returning(Purchase.id)
            .execution_options(synchronize_session="fetch")
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def get_first_affiliated_for_email(session: AsyncSession, email: str) -> Purchase | None:
        stmt = (
            select(Purchase)
            .where(
                func.lower(Purchase.customer_email) == email.strip().lower(),
                Purchase.affiliate_id.is_not(None),
                Purchase.status.in_(AFFILIATE_BINDING_STATUSES),
            )
            .order_by(Purchase.created_at.asc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_stale_pending_crypto_invoices(
        session: AsyncSession,
        *,
        older_than_utc: datetime,
        limit: int = 100,
    ) -> list[Purchase]:
        stmt = (
            select(Purchase)
            .where(
                Purchase.status == "pending",
                Purchase.created_at <= older_than_utc,
                Purchase.metadata_.has_key("confirmoInvoiceId"),
            )
            .order_by(Purchase.created_at.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def count_stale_pending(session: AsyncSession, *, older_than_utc: datetime) -> int:
        stmt = select(func.count(Purchase.id)).where(
            Purchase.status == "pending",
            Purchase.created_at <= older_than_utc,
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def count_completed_needing_fulfillment(
        session: AsyncSession,
        *,
        since_utc: datetime,
    ) -> int:
        fulfillment_status = Purchase.metadata_[("effects", "fulfillment_notification", "status")].astext
        stmt = select(func.count(Purchase.id)).where(
            Purchase.status == "completed",
            Purchase.completed_at >= since_utc,
            or_(
                Purchase.product_id.is_(None),
                Purchase.variation_id.is_(None),
                fulfillment_status == "failed",
            ),
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def count_price_mirror_drift(session: AsyncSession, *, since_utc: datetime) -> int:
        mirrored_total = Purchase.metadata_["totalPrice"].as_float()
        stmt = select(func.count(Purchase.id)).where(
            Purchase.created_at >= since_utc,
            Purchase.metadata_.has_key("totalPrice"),
            func.abs(Purchase.total_price - mirrored_total) > 1,
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)
