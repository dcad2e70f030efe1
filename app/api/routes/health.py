from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy import text

from app.core.config import get_settings
from app.db.session import SessionLocal
from app.workers.celery_app import celery_app

router = APIRouter(tags=["health"])
logger = structlog.get_logger(__name__)


def _ok_check(**extra: Any) -> dict[str, Any]:
    return {"status": "ok", **extra}


def _failed_check(error: str) -> dict[str, str]:
    return {"status": "failed", "error": error}


async def _check_database() -> dict[str, Any]:
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return _ok_check()
    except Exception:
        logger.warning("health_check_failed", dependency="database", exc_info=True)
        return _failed_check("database_unavailable")


async def _check_redis() -> dict[str, Any]:
    redis_client: Redis | None = None
    try:
        redis_client = Redis.from_url(get_settings().redis_url)
        pong = await redis_client.ping()
        if pong is not True:
            return _failed_check(f"unexpected redis ping response: {pong!r}")
        return _ok_check()
    except Exception:
        logger.warning("health_check_failed", dependency="redis", exc_info=True)
        return _failed_check("redis_unavailable")
    finally:
        if redis_client is not None:
            await redis_client.aclose()


def _check_celery_worker_sync() -> dict[str, Any]:
    try:
        inspector = celery_app.control.inspect(timeout=1.0)
        if inspector is None:
            return _failed_check("celery inspector is unavailable")

        replies = inspector.ping() or {}
        if not replies:
            return _failed_check("no celery workers responded to ping")

        return _ok_check(workers=len(replies))
    except Exception:
        logger.warning("health_check_failed", dependency="celery", exc_info=True)
        return _failed_check("celery_unavailable")


async def _check_celery_worker() -> dict[str, Any]:
    return await asyncio.to_thread(_check_celery_worker_sync)


async def _run_checks(*, include_workers: bool) -> tuple[bool, dict[str, dict[str, Any]]]:
    """Webhooks and checkout need the database and redis; reconciliation workers only matter to /health."""
    checks: dict[str, Callable[[], Awaitable[dict[str, Any]]]] = {
        "database": _check_database,
        "redis": _check_redis,
    }
    if include_workers:
        checks["celery"] = _check_celery_worker

    results = await asyncio.gather(*(check() for check in checks.values()))
    by_name = dict(zip(checks, results, strict=True))
    return all(result.get("status") == "ok" for result in results), by_name


def _checks_response(*, healthy: bool, ok_status: str, failed_status: str, checks: dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": ok_status if healthy else failed_status, "checks": checks},
    )


@router.get("/health")
async def health() -> JSONResponse:
    healthy, checks = await _run_checks(include_workers=True)
    return _checks_response(healthy=healthy, ok_status="ok", failed_status="degraded", checks=checks)


@router.get("/ready")
async def ready() -> JSONResponse:
    healthy, checks = await _run_checks(include_workers=False)
    return _checks_response(healthy=healthy, ok_status="ready", failed_status="not_ready", checks=checks)


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}
