from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CheckoutReconciliationCounts:
    stale_pending_count: int
    fulfillment_backlog_count: int
    price_drift_count: int

    def as_details(self) -> dict[str, int]:
        return {
            "stale_pending_count": self.stale_pending_count,
            "fulfillment_backlog_count": self.fulfillment_backlog_count,
            "price_drift_count": self.price_drift_count,
        }


def compute_reconciliation_diff(counts: CheckoutReconciliationCounts) -> int:
    return (
        max(0, counts.stale_pending_count)
        + max(0, counts.fulfillment_backlog_count)
        + max(0, counts.price_drift_count)
    )


def reconciliation_status(diff_count: int) -> str:
    return "OK" if diff_count == 0 else "DIFF"
