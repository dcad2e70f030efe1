from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.coupons import Coupon


class CouponsRepo:
    @staticmethod
    async def get_by_code(session: AsyncSession, code: str) -> Coupon | None:
        stmt = select(Coupon).where(Coupon.code == code.strip().upper())
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_auto_apply_candidates(
        session: AsyncSession,
        *,
        now_utc: datetime,
        limit: int = 100,
    ) -> list[Coupon]:
        stmt = (
            select(Coupon)
            .where(
                Coupon.status == "active",
                Coupon.auto_apply.is_(True),
                Coupon.valid_from <= now_utc,
                or_(Coupon.valid_to.is_(None), Coupon.valid_to >= now_utc),
            )
            .order_by(Coupon.auto_apply_priority.desc(), Coupon.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
