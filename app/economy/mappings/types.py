from __future__ import annotations

from dataclasses import dataclass

from app.db.models.product_mappings import ProductMapping


@dataclass(frozen=True, slots=True)
class ResolvedProduct:
    product_id: str
    variation_id: str
    tier_id: str
    platform_id: str


@dataclass(frozen=True, slots=True)
class ExternalProductMatch:
    mapping: ProductMapping
    purchase_type: str
    reset_product_type: str | None = None
