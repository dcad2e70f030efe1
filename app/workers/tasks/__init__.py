from app.workers.tasks.payments_reconciliation import (
    reconcile_stale_crypto_invoices,
    run_checkout_reconciliation,
)

__all__ = [
    "reconcile_stale_crypto_invoices",
    "run_checkout_reconciliation",
]
