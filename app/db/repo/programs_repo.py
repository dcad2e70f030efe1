from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.add_ons import AddOn
from app.db.models.programs import Platform, Program


class ProgramsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, program_id: int) -> Program | None:
        return await session.get(Program, program_id)

    @staticmethod
    async def get_platform(session: AsyncSession, slug: str) -> Platform | None:
        return await session.get(Platform, slug)

    @staticmethod
    async def list_active_add_ons(session: AsyncSession, add_on_ids: list[str]) -> list[AddOn]:
        if not add_on_ids:
            return []
        stmt = select(AddOn).where(AddOn.id.in_(add_on_ids), AddOn.status == "active")
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_add_on_keys(session: AsyncSession, add_on_ids: list[str]) -> list[str]:
        if not add_on_ids:
            return []
        stmt = select(AddOn.id, AddOn.key).where(AddOn.id.in_(add_on_ids))
        result = await session.execute(stmt)
        keys_by_id = {str(add_on_id): str(key) for add_on_id, key in result.all()}
        return [keys_by_id[add_on_id] for add_on_id in add_on_ids if add_on_id in keys_by_id]
