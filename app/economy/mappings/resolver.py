from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.product_mappings import ProductMapping
from app.db.repo.product_mappings_repo import ProductMappingsRepo
from app.economy.pricing.catalog import load_program
from app.economy.pricing.errors import ProgramNotFoundError
from app.economy.pricing.tiers import find_tier, sanitize_account_size
from app.economy.pricing.types import ProgramRef

from .errors import MappingUnresolvedError
from .types import ExternalProductMatch, ResolvedProduct

logger = structlog.get_logger(__name__)


def is_usable(mapping: ProductMapping | None) -> bool:
    return mapping is not None and bool(mapping.product_id) and bool(mapping.variation_id)


def select_variant_ids(
    mapping: ProductMapping,
    *,
    purchase_type: str,
    reset_product_type: str | None,
) -> tuple[str, str] | None:
    if purchase_type == "reset":
        if (
            reset_product_type == "funded"
            and mapping.reset_fee_funded_product_id
            and mapping.reset_fee_funded_variation_id
        ):
            return mapping.reset_fee_funded_product_id, mapping.reset_fee_funded_variation_id
        if mapping.reset_fee_product_id:
            variation_id = mapping.reset_fee_variation_id or mapping.variation_id
            return (mapping.reset_fee_product_id, variation_id) if variation_id else None
        return None

    if purchase_type == "activation":
        if mapping.activation_product_id and mapping.variation_id:
            return mapping.activation_product_id, mapping.variation_id
        return None

    if mapping.product_id and mapping.variation_id:
        return mapping.product_id, mapping.variation_id
    return None


async def _derive_tier_id(
    session: AsyncSession,
    *,
    program_id: int,
    account_size: str,
    program: ProgramRef | None,
) -> str | None:
    if program is None:
        try:
            program = await load_program(session, program_id)
        except ProgramNotFoundError:
            return None
    tier = find_tier(program, account_size=account_size)
    return tier.tier_id if tier is not None else None


async def _legacy_suffix_match(
    session: AsyncSession,
    *,
    program_id: int,
    platform_id: str,
    account_size: str,
) -> ProductMapping | None:
    suffix = sanitize_account_size(account_size)
    if not suffix:
        return None
    candidates = await ProductMappingsRepo.list_for_program_platform(
        session,
        program_id=program_id,
        platform_id=platform_id,
    )
    for candidate in candidates:
        if candidate.tier_id.lower().endswith(suffix) and is_usable(candidate):
            return candidate
    return None


async def resolve_product(
    session: AsyncSession,
    *,
    program_id: int,
    platform_id: str | None,
    purchase_type: str,
    reset_product_type: str | None = None,
    tier_id: str | None = None,
    account_size: str | None = None,
    program: ProgramRef | None = None,
) -> ResolvedProduct:
    """Translate an internal order into downstream product/variation ids.

    Raises MappingUnresolvedError when the mapping table has no usable row;
    callers on the order-creation path treat that as a flag, not a failure.
    """
    unresolved = MappingUnresolvedError(
        program_id=program_id,
        tier_id=tier_id,
        platform_id=platform_id,
        purchase_type=purchase_type,
    )
    if not platform_id:
        raise unresolved

    resolved_tier_id = tier_id
    if not resolved_tier_id and account_size:
        resolved_tier_id = await _derive_tier_id(
            session,
            program_id=program_id,
            account_size=account_size,
            program=program,
        )

    mapping: ProductMapping | None = None
    if resolved_tier_id:
        mapping = await ProductMappingsRepo.get_by_key(
            session,
            program_id=program_id,
            tier_id=resolved_tier_id,
            platform_id=platform_id,
        )
    if not is_usable(mapping) and account_size:
        mapping = await _legacy_suffix_match(
            session,
            program_id=program_id,
            platform_id=platform_id,
            account_size=account_size,
        )
    if mapping is None or not is_usable(mapping):
        logger.warning(
            "product_mapping_unresolved",
            program_id=program_id,
            tier_id=resolved_tier_id,
            platform_id=platform_id,
            purchase_type=purchase_type,
        )
        raise unresolved

    ids = select_variant_ids(
        mapping,
        purchase_type=purchase_type,
        reset_product_type=reset_product_type,
    )
    if ids is None:
        logger.warning(
            "product_mapping_variant_missing",
            program_id=program_id,
            tier_id=mapping.tier_id,
            platform_id=platform_id,
            purchase_type=purchase_type,
            reset_product_type=reset_product_type,
        )
        raise unresolved

    product_id, variation_id = ids
    return ResolvedProduct(
        product_id=product_id,
        variation_id=variation_id,
        tier_id=mapping.tier_id,
        platform_id=mapping.platform_id,
    )


async def find_by_external_product_id(
    session: AsyncSession,
    external_product_id: str,
) -> ExternalProductMatch | None:
    """Detect which mapping row and purchase variant an external product id refers to."""
    candidates = await ProductMappingsRepo.find_by_external_product_id(session, external_product_id)
    for mapping in candidates:
        if mapping.variation_id == external_product_id:
            return ExternalProductMatch(mapping=mapping, purchase_type="original")
        if mapping.reset_fee_product_id == external_product_id:
            return ExternalProductMatch(
                mapping=mapping,
                purchase_type="reset",
                reset_product_type="evaluation",
            )
        if mapping.reset_fee_funded_product_id == external_product_id:
            return ExternalProductMatch(
                mapping=mapping,
                purchase_type="reset",
                reset_product_type="funded",
            )
        if mapping.activation_product_id == external_product_id:
            return ExternalProductMatch(mapping=mapping, purchase_type="activation")
    return None
