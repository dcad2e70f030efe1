from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from .effects import EffectOutcome


@dataclass(slots=True)
class ReconciliationResult:
    purchase_id: UUID
    order_number: int
    status: str
    transitioned: bool
    idempotent_replay: bool = False
    anomaly: str | None = None
    effects: list[EffectOutcome] = field(default_factory=list)
