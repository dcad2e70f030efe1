from __future__ import annotations

from datetime import datetime

import structlog

from app.db.models.purchases import Purchase
from app.economy.pricing.types import PriceBreakdown
from app.economy.purchases.types import PriceMismatch

logger = structlog.get_logger(__name__)
PRICE_MISMATCH_TOLERANCE = 1


def merge_metadata(purchase: Purchase, patch: dict[str, object]) -> dict[str, object]:
    # JSONB columns only notice reassignment, never in-place mutation.
    merged = dict(purchase.metadata_ or {})
    merged.update(patch)
    purchase.metadata_ = merged
    return merged


def price_mirror(breakdown: PriceBreakdown) -> dict[str, object]:
    return {
        "totalPrice": breakdown.total_price,
        "originalPrice": breakdown.original_price,
        "appliedDiscount": breakdown.applied_discount,
        "addOnValue": breakdown.add_on_value,
    }


def root_price_mirror(purchase: Purchase) -> dict[str, object]:
    return {
        "totalPrice": purchase.total_price,
        "originalPrice": purchase.base_price,
        "appliedDiscount": purchase.applied_discount,
        "addOnValue": purchase.add_on_value,
    }


def detect_price_mismatch(purchase: Purchase) -> PriceMismatch | None:
    raw_mirrored = (purchase.metadata_ or {}).get("totalPrice")
    if isinstance(raw_mirrored, bool) or not isinstance(raw_mirrored, (int, float, str)):
        return None
    try:
        mirrored = float(raw_mirrored)
    except ValueError:
        return None

    if mirrored <= 0:
        return None
    difference = abs(purchase.total_price - mirrored)
    if difference <= PRICE_MISMATCH_TOLERANCE:
        return None
    return PriceMismatch(
        root_total=purchase.total_price,
        mirrored_total=mirrored,
        difference=difference,
    )


def repair_price_mirror(purchase: Purchase, *, now_utc: datetime, source: str) -> PriceMismatch | None:
    """Overwrite the metadata price mirror from the root columns when they drift apart."""
    mismatch = detect_price_mismatch(purchase)
    if mismatch is None:
        return None

    logger.warning(
        "purchase_price_mismatch_repaired",
        purchase_id=str(purchase.id),
        order_number=purchase.order_number,
        root_total=mismatch.root_total,
        mirrored_total=mismatch.mirrored_total,
        difference=mismatch.difference,
        source=source,
    )
    merge_metadata(
        purchase,
        {
            **root_price_mirror(purchase),
            "priceFixedAt": now_utc.isoformat(),
            "priceFixedBy": source,
            "priceMismatchPrevious": mismatch.mirrored_total,
        },
    )
    return mismatch
