from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog

from app.core.config import get_settings
from app.db.repo.purchases_repo import PurchasesRepo
from app.db.repo.reconciliation_runs_repo import ReconciliationRunsRepo
from app.db.session import SessionLocal
from app.services.alerts import send_ops_alert
from app.services.gateways.confirmo import ConfirmoGateway
from app.services.gateways.errors import GatewayError
from app.services.payments_reliability import (
    CheckoutReconciliationCounts,
    compute_reconciliation_diff,
    reconciliation_status,
)
from app.services.reconciliation import ReconciliationService
from app.workers.asyncio_runner import run_async_job
from app.workers.celery_app import celery_app
from app.workers.tasks.payments_reconciliation_schedule import configure_payments_reconciliation_schedule

logger = structlog.get_logger(__name__)
CHECKOUT_RECONCILIATION_WINDOW_HOURS = 24
CHECKOUT_RECONCILIATION_RUN_TYPE = "checkout"


def _stale_minutes(stale_minutes: int | None) -> int:
    if stale_minutes is not None:
        return max(1, stale_minutes)
    return max(1, int(get_settings().stale_pending_minutes))


async def reconcile_stale_crypto_invoices_async(
    *,
    batch_size: int = 100,
    stale_minutes: int | None = None,
) -> dict[str, int]:
    now_utc = datetime.now(timezone.utc)
    stale_cutoff = now_utc - timedelta(minutes=_stale_minutes(stale_minutes))

    async with SessionLocal.begin() as session:
        candidates = await PurchasesRepo.list_stale_pending_crypto_invoices(
            session,
            older_than_utc=stale_cutoff,
            limit=batch_size,
        )
        pending = [
            (purchase.id, str((purchase.metadata_ or {}).get("confirmoInvoiceId") or ""))
            for purchase in candidates
        ]

    summary: dict[str, int] = {
        "examined": len(pending),
        "completed": 0,
        "failed": 0,
        "still_pending": 0,
        "gateway_errors": 0,
        "errors": 0,
    }
    gateway = ConfirmoGateway.from_settings()
    for purchase_id, invoice_id in pending:
        if not invoice_id:
            summary["errors"] += 1
            continue
        try:
            result = await ReconciliationService.poll_crypto_invoice(
                purchase_id=purchase_id,
                invoice_id=invoice_id,
                now_utc=now_utc,
                gateway=gateway,
            )
        except GatewayError as exc:
            summary["gateway_errors"] += 1
            logger.warning(
                "crypto_invoice_poll_gateway_error",
                purchase_id=str(purchase_id),
                invoice_id=invoice_id,
                status_code=exc.status_code,
            )
            continue
        except Exception:
            summary["errors"] += 1
            logger.exception("crypto_invoice_poll_error", purchase_id=str(purchase_id), invoice_id=invoice_id)
            continue

        if result.status == "completed":
            summary["completed"] += 1
        elif result.status in ("failed", "cancelled"):
            summary["failed"] += 1
        else:
            summary["still_pending"] += 1

    logger.info("stale_crypto_invoices_reconciled", **summary)
    return summary


async def run_checkout_reconciliation_async(*, stale_minutes: int | None = None) -> dict[str, int | str]:
    started_at = datetime.now(timezone.utc)
    stale_cutoff = started_at - timedelta(minutes=_stale_minutes(stale_minutes))
    window_start = started_at - timedelta(hours=CHECKOUT_RECONCILIATION_WINDOW_HOURS)

    async with SessionLocal.begin() as session:
        counts = CheckoutReconciliationCounts(
            stale_pending_count=await PurchasesRepo.count_stale_pending(session, older_than_utc=stale_cutoff),
            fulfillment_backlog_count=await PurchasesRepo.count_completed_needing_fulfillment(
                session,
                since_utc=window_start,
            ),
            price_drift_count=await PurchasesRepo.count_price_mirror_drift(session, since_utc=window_start),
        )
        diff_count = compute_reconciliation_diff(counts)
        status = reconciliation_status(diff_count)

        await ReconciliationRunsRepo.create(
            session,
            run_type=CHECKOUT_RECONCILIATION_RUN_TYPE,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            status=status,
            diff_count=diff_count,
            details=counts.as_details(),
        )

    result: dict[str, int | str] = {**counts.as_details(), "diff_count": diff_count, "status": status}
    if diff_count > 0:
        await send_ops_alert(
            event="checkout_reconciliation_diff_detected",
            payload=result,
        )
        logger.warning("checkout_reconciliation_diff_detected", **result)
    else:
        logger.info("checkout_reconciliation_finished", **result)
    return result


@celery_app.task(name="app.workers.tasks.payments_reconciliation.reconcile_stale_crypto_invoices")
def reconcile_stale_crypto_invoices(batch_size: int = 100, stale_minutes: int | None = None) -> dict[str, int]:
    return run_async_job(
        reconcile_stale_crypto_invoices_async(
            batch_size=batch_size,
            stale_minutes=stale_minutes,
        )
    )


@celery_app.task(name="app.workers.tasks.payments_reconciliation.run_checkout_reconciliation")
def run_checkout_reconciliation(stale_minutes: int | None = None) -> dict[str, int | str]:
    return run_async_job(run_checkout_reconciliation_async(stale_minutes=stale_minutes))


configure_payments_reconciliation_schedule(celery_app)
