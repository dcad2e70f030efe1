from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy import text

from app.core.integration_db_safety import assert_safe_integration_db
from app.db.session import engine

TRUNCATE_TABLES = (
    "coupon_usages",
    "reconciliation_runs",
    "purchases",
    "product_mappings",
    "coupons",
    "add_ons",
    "pricing_tiers",
    "platforms",
    "programs",
)

TRUNCATE_SQL = f"TRUNCATE TABLE {', '.join(TRUNCATE_TABLES)} RESTART IDENTITY CASCADE"
RESET_ORDER_NUMBER_SQL = "ALTER SEQUENCE purchase_order_number_seq RESTART WITH 100000"


@pytest.fixture(scope="session", autouse=True)
def guard_integration_db_target() -> None:
    assert_safe_integration_db(str(engine.url))


@pytest_asyncio.fixture(autouse=True)
async def cleanup_db() -> None:
    # Dispose pooled connections between tests to avoid cross-event-loop asyncpg reuse.
    await engine.dispose()

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover - environment-dependent
        pytest.skip(f"Postgres is required for integration tests: {exc}")

    async with engine.begin() as conn:
        await conn.execute(text(TRUNCATE_SQL))
        await conn.execute(text(RESET_ORDER_NUMBER_SQL))

    yield

    await engine.dispose()
