from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from app import main as app_main

DOC_PATHS = ("/docs", "/redoc", "/openapi.json")


def _client(monkeypatch, *, enable_openapi_docs: bool) -> TestClient:
    settings = SimpleNamespace(log_level="INFO", enable_openapi_docs=enable_openapi_docs)
    monkeypatch.setattr(app_main, "get_settings", lambda: settings)
    return TestClient(app_main.create_app())


@pytest.mark.parametrize("path", DOC_PATHS)
def test_openapi_docs_served_when_enabled(monkeypatch, path: str) -> None:
    client = _client(monkeypatch, enable_openapi_docs=True)

    assert client.get(path).status_code == 200


@pytest.mark.parametrize("path", DOC_PATHS)
def test_openapi_docs_hidden_when_disabled(monkeypatch, path: str) -> None:
    client = _client(monkeypatch, enable_openapi_docs=False)

    assert client.get(path).status_code == 404


def test_openapi_schema_lists_checkout_and_webhook_routes(monkeypatch) -> None:
    client = _client(monkeypatch, enable_openapi_docs=True)

    paths = client.get("/openapi.json").json()["paths"]

    assert "/api/bridgerpay/checkout" in paths
    assert "/api/create-confirmo-payment" in paths
    assert "/api/webhooks/bridgerpay" in paths
    assert "/api/webhooks/confirmo" in paths
    assert "/internal/purchases/{purchase_id}/complete" in paths
