from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from time import monotonic
from typing import Any, TypeVar

import structlog

from app.db.session import dispose_engine

T = TypeVar("T")
logger = structlog.get_logger(__name__)


async def _run_on_fresh_pool(job: Coroutine[Any, Any, T]) -> T:
    # asyncpg connections are bound to the loop that opened them.
    await dispose_engine()
    started = monotonic()
    try:
        return await job
    finally:
        await dispose_engine()
        logger.debug(
            "async_job_finished",
            job=getattr(job, "__qualname__", type(job).__name__),
            duration_ms=int((monotonic() - started) * 1000),
        )


def run_async_job(job: Coroutine[Any, Any, T]) -> T:
    """Run a reconciliation coroutine to completion from a synchronous celery task."""
    return asyncio.run(_run_on_fresh_pool(job))
