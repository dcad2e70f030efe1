from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

import structlog

from app.db.models.purchases import Purchase
from app.db.session import SessionLocal
from app.economy.mappings.types import ResolvedProduct
from app.economy.purchases.errors import PurchaseNotFoundError
from app.economy.purchases.service import PurchaseService
from app.services.tracking.types import TrackingResult

logger = structlog.get_logger(__name__)
EFFECT_OK = "ok"
EFFECT_SKIPPED = "skipped"
EFFECT_FAILED = "failed"


@dataclass(frozen=True, slots=True)
class EffectOutcome:
    name: str
    status: str
    error: str | None = None
    detail: dict[str, object] = field(default_factory=dict)

    @classmethod
    def from_tracking(cls, name: str, result: TrackingResult) -> EffectOutcome:
        detail = {"eventId": result.event_id} if result.event_id else {}
        return cls(name=name, status=result.status, error=result.error, detail=detail)

    def as_metadata(self, *, at: datetime) -> dict[str, object]:
        entry: dict[str, object] = {"status": self.status, "at": at.isoformat()}
        if self.error:
            entry["error"] = self.error
        entry.update(self.detail)
        return entry


@dataclass(slots=True)
class EffectContext:
    """State shared by the effects of one transition.

    ``purchase`` is the snapshot taken when the transition committed; effects
    that write open their own transaction and reload the row.
    ``refresh_mapping`` ignores stored product ids so an operator retry picks
    up a repaired mapping.
    """

    purchase: Purchase
    gateway: str
    source: str
    now_utc: datetime
    reason: str | None = None
    resolved: ResolvedProduct | None = None
    refresh_mapping: bool = False

    @property
    def purchase_id(self) -> UUID:
        return self.purchase.id


Effect = Callable[[EffectContext], Awaitable[EffectOutcome]]


async def run_effects(
    effects: Sequence[tuple[str, Effect]],
    context: EffectContext,
) -> list[EffectOutcome]:
    """Run each effect in order; one failure never stops the rest."""
    outcomes: list[EffectOutcome] = []
    for name, effect in effects:
        try:
            outcome = await effect(context)
        except Exception as exc:
            logger.exception(
                "reconciliation_effect_failed",
                effect=name,
                purchase_id=str(context.purchase_id),
                order_number=context.purchase.order_number,
                source=context.source,
            )
            outcome = EffectOutcome(name=name, status=EFFECT_FAILED, error=str(exc) or exc.__class__.__name__)
        outcomes.append(outcome)

    if outcomes:
        await record_effect_outcomes(
            purchase_id=context.purchase_id,
            outcomes=outcomes,
            now_utc=context.now_utc,
        )
    return outcomes


async def record_effect_outcomes(
    *,
    purchase_id: UUID,
    outcomes: Sequence[EffectOutcome],
    now_utc: datetime,
) -> None:
    try:
        async with SessionLocal.begin() as session:
            purchase = await PurchaseService.get_purchase_for_update(session, purchase_id)
            effects = dict((purchase.metadata_ or {}).get("effects") or {})
            for outcome in outcomes:
                effects[outcome.name] = outcome.as_metadata(at=now_utc)
            PurchaseService.merge_metadata(purchase, {"effects": effects})
            purchase.updated_at = now_utc
    except PurchaseNotFoundError:
        logger.warning("reconciliation_effects_purchase_missing", purchase_id=str(purchase_id))
    except Exception:
        logger.exception(
            "reconciliation_effects_record_failed",
            purchase_id=str(purchase_id),
            effects=[outcome.name for outcome in outcomes],
        )
