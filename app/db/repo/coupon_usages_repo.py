from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.coupon_usages import CouponUsage


class CouponUsagesRepo:
    @staticmethod
    async def count_for_coupon(session: AsyncSession, *, coupon_id: int) -> int:
        stmt = select(func.count(CouponUsage.id)).where(CouponUsage.coupon_id == coupon_id)
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def count_for_coupon_and_email(
        session: AsyncSession,
        *,
        coupon_id: int,
        customer_email: str,
    ) -> int:
        stmt = select(func.count(CouponUsage.id)).where(
            CouponUsage.coupon_id == coupon_id,
            CouponUsage.customer_email == customer_email.strip().lower(),
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def record_once(
        session: AsyncSession,
        *,
        coupon_id: int,
        purchase_id: UUID,
        customer_email: str,
        program_id: int,
        account_size: str,
        original_price: int,
        discount_amount: int,
        final_price: int,
        payment_method: str | None,
        currency: str,
        used_at: datetime,
    ) -> bool:
        stmt = (
            insert(CouponUsage)
            .values(
                coupon_id=coupon_id,
                purchase_id=purchase_id,
                customer_email=customer_email.strip().lower(),
                program_id=program_id,
                account_size=account_size,
                original_price=original_price,
                discount_amount=discount_amount,
                final_price=final_price,
                payment_method=payment_method,
                currency=currency,
                used_at=used_at,
            )
            .on_conflict_do_nothing(constraint="uq_coupon_usages_coupon_purchase")
            .returning(CouponUsage.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None
