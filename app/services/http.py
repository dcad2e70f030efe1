from __future__ import annotations

import httpx

from app.core.config import get_settings


def outbound_timeout_seconds() -> float:
    return float(get_settings().outbound_http_timeout_seconds)


def async_client(
    *,
    timeout: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    resolved_timeout = timeout if timeout is not None else outbound_timeout_seconds()
    return httpx.AsyncClient(timeout=resolved_timeout, transport=transport)


def response_error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        for key in ("message", "error"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return response.text or f"HTTP {response.status_code}"
