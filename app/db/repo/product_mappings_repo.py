from __future__ import annotations

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.product_mappings import ProductMapping


class ProductMappingsRepo:
    @staticmethod
    async def get_by_key(
        session: AsyncSession,
        *,
        program_id: int,
        tier_id: str,
        platform_id: str,
    ) -> ProductMapping | None:
        stmt = select(ProductMapping).where(
            ProductMapping.program_id == program_id,
            ProductMapping.tier_id == tier_id,
            ProductMapping.platform_id == platform_id,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_for_program_platform(
        session: AsyncSession,
        *,
        program_id: int,
        platform_id: str,
    ) -> list[ProductMapping]:
        stmt = (
            select(ProductMapping)
            .where(
                ProductMapping.program_id == program_id,
                ProductMapping.platform_id == platform_id,
            )
            .order_by(ProductMapping.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def find_by_external_product_id(
        session: AsyncSession,
        external_product_id: str,
    ) -> list[ProductMapping]:
        stmt = (
            select(ProductMapping)
            .where(
                or_(
                    ProductMapping.variation_id == external_product_id,
                    ProductMapping.reset_fee_product_id == external_product_id,
                    ProductMapping.reset_fee_funded_product_id == external_product_id,
                    ProductMapping.activation_product_id == external_product_id,
                )
            )
            .order_by(ProductMapping.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
