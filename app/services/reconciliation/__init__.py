from __future__ import annotations

from .effects import EffectContext, EffectOutcome, run_effects
from .service import (
    apply_gateway_outcome,
    complete_pending_purchase,
    find_purchase_id,
    poll_crypto_invoice,
    retry_fulfillment,
)
from .types import ReconciliationResult


class ReconciliationService:
    apply_gateway_outcome = staticmethod(apply_gateway_outcome)
    complete_pending_purchase = staticmethod(complete_pending_purchase)
    retry_fulfillment = staticmethod(retry_fulfillment)
    poll_crypto_invoice = staticmethod(poll_crypto_invoice)
    find_purchase_id = staticmethod(find_purchase_id)


__all__ = [
    "EffectContext",
    "EffectOutcome",
    "ReconciliationResult",
    "ReconciliationService",
    "run_effects",
]
