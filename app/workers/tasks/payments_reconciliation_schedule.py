from __future__ import annotations

from celery.schedules import crontab


def configure_payments_reconciliation_schedule(celery_app) -> None:
    celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
    celery_app.conf.beat_schedule.update(
        {
            "reconcile-stale-crypto-invoices-every-10-minutes": {
                "task": "app.workers.tasks.payments_reconciliation.reconcile_stale_crypto_invoices",
                "schedule": 600.0,
                "options": {"queue": "q_normal"},
            },
            "checkout-reconciliation-every-30-minutes": {
                "task": "app.workers.tasks.payments_reconciliation.run_checkout_reconciliation",
                "schedule": 1800.0,
                "options": {"queue": "q_normal"},
            },
            "checkout-reconciliation-daily-0330": {
                "task": "app.workers.tasks.payments_reconciliation.run_checkout_reconciliation",
                "schedule": crontab(hour=3, minute=30),
                "options": {"queue": "q_normal"},
            },
        }
    )
