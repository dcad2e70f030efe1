import pytest
from fastapi.testclient import TestClient

from app.api.routes import health as health_routes
from app.main import app

OK = {"status": "ok"}


def _check(result: dict[str, str]):
    async def _run() -> dict[str, str]:
        return result

    return _run


def _patch_checks(monkeypatch, *, database=OK, redis=OK, celery=OK) -> None:
    monkeypatch.setattr(health_routes, "_check_database", _check(database))
    monkeypatch.setattr(health_routes, "_check_redis", _check(redis))
    monkeypatch.setattr(health_routes, "_check_celery_worker", _check(celery))


def test_health_reports_every_dependency(monkeypatch) -> None:
    _patch_checks(monkeypatch)

    response = TestClient(app).get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "checks": {"database": OK, "redis": OK, "celery": OK},
    }


def test_health_is_degraded_when_workers_are_down(monkeypatch) -> None:
    _patch_checks(monkeypatch, celery={"status": "failed", "error": "celery_unavailable"})

    response = TestClient(app).get("/health")

    assert response.status_code == 503
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["checks"]["celery"] == {"status": "failed", "error": "celery_unavailable"}


def test_live_needs_no_dependencies() -> None:
    response = TestClient(app).get("/live")

    assert response.status_code == 200
    assert response.json() == {"status": "live"}


@pytest.mark.parametrize(
    ("overrides", "expected_status", "expected_code"),
    [
        ({}, "ready", 200),
        ({"celery": {"status": "failed", "error": "celery_unavailable"}}, "ready", 200),
        ({"database": {"status": "failed", "error": "database_unavailable"}}, "not_ready", 503),
        ({"redis": {"status": "failed", "error": "redis_unavailable"}}, "not_ready", 503),
    ],
)
def test_ready_ignores_workers_but_not_storage(monkeypatch, overrides, expected_status, expected_code) -> None:
    _patch_checks(monkeypatch, **overrides)

    response = TestClient(app).get("/ready")

    assert response.status_code == expected_code
    payload = response.json()
    assert payload["status"] == expected_status
    assert set(payload["checks"]) == {"database", "redis"}


@pytest.mark.asyncio
async def test_database_check_hides_driver_error(monkeypatch) -> None:
    class _BrokenSession:
        async def __aenter__(self):
            raise RuntimeError("password=secret")

        async def __aexit__(self, exc_type, exc, tb) -> bool:
            return False

    monkeypatch.setattr(health_routes, "SessionLocal", lambda: _BrokenSession())

    assert await health_routes._check_database() == {"status": "failed", "error": "database_unavailable"}


@pytest.mark.asyncio
async def test_redis_check_hides_connection_url(monkeypatch) -> None:
    class _BrokenRedis:
        @staticmethod
        def from_url(url: str):
            raise RuntimeError(f"cannot connect to {url}")

    monkeypatch.setattr(health_routes, "Redis", _BrokenRedis)
    monkeypatch.setattr(
        health_routes,
        "get_settings",
        lambda: type("_Settings", (), {"redis_url": "redis://:secret@redis:6379/0"})(),
    )

    assert await health_routes._check_redis() == {"status": "failed", "error": "redis_unavailable"}


def test_celery_check_hides_broker_url(monkeypatch) -> None:
    class _BrokenControl:
        def inspect(self, timeout: float):
            raise RuntimeError("broker-url=redis://secret")

    monkeypatch.setattr(health_routes.celery_app, "control", _BrokenControl())

    assert health_routes._check_celery_worker_sync() == {"status": "failed", "error": "celery_unavailable"}
