"""Operator alerts for checkout anomalies: generic JSON webhook and Slack."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from app.core.config import get_settings
from app.services.http import async_client

logger = structlog.get_logger(__name__)
ALERT_TIMEOUT_SECONDS = 5.0
SEVERITY_COLOR = {
    "critical": "#B42318",
    "error": "#F04438",
    "warning": "#F79009",
    "info": "#1570EF",
}
# Payload keys promoted to their own Slack fields, in display order.
HIGHLIGHT_FIELDS = (
    ("order_number", "Order"),
    ("purchase_id", "Purchase"),
    ("gateway", "Gateway"),
    ("diff_count", "Diff"),
)
GENERIC_CHANNEL = "generic"
SLACK_CHANNEL = "slack"


@dataclass(frozen=True, slots=True)
class AlertRoute:
    channels: tuple[str, ...]
    severity: str


@dataclass(frozen=True, slots=True)
class AlertTarget:
    channel: str
    url: str


DEFAULT_ALERT_ROUTE = AlertRoute(channels=(GENERIC_CHANNEL,), severity="warning")
_PAGE_OPERATOR = (SLACK_CHANNEL, GENERIC_CHANNEL)
EVENT_ALERT_ROUTES = {
    "checkout_reconciliation_diff_detected": AlertRoute(channels=_PAGE_OPERATOR, severity="critical"),
    "fulfillment_mapping_unresolved": AlertRoute(channels=_PAGE_OPERATOR, severity="error"),
    "webhook_terminal_state_conflict": AlertRoute(channels=_PAGE_OPERATOR, severity="error"),
}


def _channel_urls(settings: object) -> dict[str, str]:
    def _read(attr: str) -> str:
        value = getattr(settings, attr, "")
        return value.strip() if isinstance(value, str) else ""

    return {
        GENERIC_CHANNEL: _read("ops_alert_webhook_url"),
        SLACK_CHANNEL: _read("ops_alert_slack_webhook_url"),
    }


def resolve_targets(route: AlertRoute, settings: object) -> list[AlertTarget]:
    """Configured channels of the route; an unconfigured route falls back to the generic hook."""
    urls = _channel_urls(settings)
    targets = [AlertTarget(channel=channel, url=urls[channel]) for channel in route.channels if urls.get(channel)]
    if not targets and urls[GENERIC_CHANNEL]:
        targets.append(AlertTarget(channel=GENERIC_CHANNEL, url=urls[GENERIC_CHANNEL]))
    return targets


def _compact_json(payload: dict[str, object]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def generic_body(
    *,
    event: str,
    payload: dict[str, object],
    route: AlertRoute,
    sent_at: datetime,
    env: str,
) -> dict[str, Any]:
    return {
        "event": event,
        "payload": payload,
        "sent_at": sent_at.isoformat(),
        "severity": route.severity,
        "environment": env,
    }


def slack_body(
    *,
    event: str,
    payload: dict[str, object],
    route: AlertRoute,
    sent_at: datetime,
    env: str,
) -> dict[str, Any]:
    fields = [
        {"title": "Environment", "value": env, "short": True},
        {"title": "Sent At", "value": sent_at.isoformat(), "short": True},
    ]
    fields.extend(
        {"title": title, "value": str(payload[key]), "short": True}
        for key, title in HIGHLIGHT_FIELDS
        if payload.get(key) is not None
    )
    fields.append({"title": "Event", "value": event, "short": False})
    fields.append({"title": "Payload", "value": _compact_json(payload), "short": False})
    return {
        "text": f"[{route.severity.upper()}] {event}",
        "attachments": [
            {
                "color": SEVERITY_COLOR.get(route.severity, SEVERITY_COLOR["warning"]),
                "fields": fields,
            }
        ],
    }


BODY_BUILDERS = {GENERIC_CHANNEL: generic_body, SLACK_CHANNEL: slack_body}


async def _deliver(client: httpx.AsyncClient, target: AlertTarget, body: dict[str, Any], *, event: str) -> bool:
    try:
        response = await client.post(target.url, json=body)
        response.raise_for_status()
    except httpx.HTTPError:
        logger.exception("ops_alert_delivery_failed", alert_event=event, provider=target.channel)
        return False
    return True


async def send_ops_alert(
    *,
    event: str,
    payload: dict[str, object],
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """Fan an alert out to every configured channel; True when at least one accepted it."""
    settings = get_settings()
    route = EVENT_ALERT_ROUTES.get(event, DEFAULT_ALERT_ROUTE)
    targets = resolve_targets(route, settings)
    if not targets:
        logger.warning("ops_alert_not_configured", alert_event=event)
        return False

    sent_at = datetime.now(timezone.utc)
    env = str(getattr(settings, "app_env", "") or "dev")
    delivered_to: list[str] = []
    failed_to: list[str] = []
    async with async_client(timeout=ALERT_TIMEOUT_SECONDS, transport=transport) as client:
        for target in targets:
            body = BODY_BUILDERS[target.channel](
                event=event,
                payload=payload,
                route=route,
                sent_at=sent_at,
                env=env,
            )
            if await _deliver(client, target, body, event=event):
                delivered_to.append(target.channel)
            else:
                failed_to.append(target.channel)

    if not delivered_to:
        logger.error(
            "ops_alert_delivery_exhausted",
            alert_event=event,
            severity=route.severity,
            failed_to=failed_to,
        )
        return False

    logger.info(
        "ops_alert_delivered",
        alert_event=event,
        severity=route.severity,
        delivered_to=delivered_to,
        failed_to=failed_to,
    )
    return True
