from app.services.payments_reliability import (
    CheckoutReconciliationCounts,
    compute_reconciliation_diff,
    reconciliation_status,
)


def test_compute_reconciliation_diff_sums_all_counters() -> None:
    counts = CheckoutReconciliationCounts(
        stale_pending_count=4,
        fulfillment_backlog_count=2,
        price_drift_count=1,
    )
    assert compute_reconciliation_diff(counts) == 7


def test_compute_reconciliation_diff_clamps_negative_counts() -> None:
    counts = CheckoutReconciliationCounts(
        stale_pending_count=-1,
        fulfillment_backlog_count=0,
        price_drift_count=0,
    )
    assert compute_reconciliation_diff(counts) == 0


def test_counts_as_details() -> None:
    counts = CheckoutReconciliationCounts(
        stale_pending_count=3,
        fulfillment_backlog_count=0,
        price_drift_count=5,
    )
    assert counts.as_details() == {
        "stale_pending_count": 3,
        "fulfillment_backlog_count": 0,
        "price_drift_count": 5,
    }


def test_reconciliation_status() -> None:
    assert reconciliation_status(0) == "OK"
    assert reconciliation_status(1) == "DIFF"
