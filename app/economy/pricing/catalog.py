from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.programs import Program
from app.db.repo.programs_repo import ProgramsRepo
from app.economy.money import to_decimal

from .errors import AddOnUnavailableError, ProgramNotFoundError
from .tiers import generated_tier_id
from .types import ProgramRef, SelectedAddOn, TierRef


def program_ref_from_row(program: Program) -> ProgramRef:
    tiers = tuple(
        TierRef(
            tier_id=tier.tier_key or generated_tier_id(position=tier.position, account_size=tier.account_size),
            position=tier.position,
            account_size=tier.account_size,
            price=to_decimal(tier.price) if tier.price is not None else None,
            reset_fee=to_decimal(tier.reset_fee) if tier.reset_fee is not None else None,
            reset_fee_funded=(
                to_decimal(tier.reset_fee_funded) if tier.reset_fee_funded is not None else None
            ),
        )
        for tier in sorted(program.tiers, key=lambda row: row.position)
    )
    return ProgramRef(
        id=program.id,
        name=program.name,
        category=program.category,
        activation_fee_value=(
            to_decimal(program.activation_fee_value) if program.activation_fee_value is not None else None
        ),
        tiers=tiers,
    )


async def load_program(session: AsyncSession, program_id: int) -> ProgramRef:
    program = await ProgramsRepo.get_by_id(session, program_id)
    if program is None:
        raise ProgramNotFoundError(f"Program {program_id} not found")
    return program_ref_from_row(program)


async def load_selected_add_ons(
    session: AsyncSession,
    requested: Sequence[tuple[str, dict[str, object]]],
) -> tuple[SelectedAddOn, ...]:
    """Attach server-side surcharge percentages to the requested add-on ids."""
    if not requested:
        return ()

    requested_ids = [add_on_id for add_on_id, _ in requested]
    rows = await ProgramsRepo.list_active_add_ons(session, requested_ids)
    by_id = {row.id: row for row in rows}
    missing = [add_on_id for add_on_id in requested_ids if add_on_id not in by_id]
    if missing:
        raise AddOnUnavailableError(f"Unknown or inactive add-ons: {', '.join(missing)}")

    return tuple(
        SelectedAddOn(
            add_on_id=add_on_id,
            percentage=to_decimal(by_id[add_on_id].price_increase_percentage),
            metadata=dict(metadata),
        )
        for add_on_id, metadata in requested
    )
