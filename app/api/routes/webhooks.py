from __future__ import annotations

import json
from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from app.economy.purchases.errors import PurchaseNotFoundError
from app.services.gateways import bridgerpay, confirmo
from app.services.gateways.bridgerpay import BridgerPayGateway
from app.services.gateways.confirmo import ConfirmoGateway
from app.services.gateways.errors import GatewayError
from app.services.gateways.types import GatewayOutcome
from app.services.reconciliation import ReconciliationService

from .errors import error_response

router = APIRouter(tags=["webhooks"])
logger = structlog.get_logger(__name__)


def get_bridgerpay_gateway() -> BridgerPayGateway:
    return BridgerPayGateway.from_settings()


def get_confirmo_gateway() -> ConfirmoGateway:
    return ConfirmoGateway.from_settings()


def _received(**extra: object) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_200_OK, content={"received": True, **extra})


def _parse_json_object(raw_body: bytes) -> dict[str, object] | None:
    try:
        payload = json.loads(raw_body)
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


async def _apply(outcome: GatewayOutcome, *, purchase_id, source: str) -> JSONResponse:
    result = await ReconciliationService.apply_gateway_outcome(
        purchase_id=purchase_id,
        outcome=outcome,
        source=source,
        now_utc=datetime.now(timezone.utc),
    )
    return _received(
        status=result.status,
        transitioned=result.transitioned,
        idempotentReplay=result.idempotent_replay,
    )


@router.post("/api/webhooks/bridgerpay")
async def bridgerpay_webhook(request: Request) -> JSONResponse:
    raw_body = await request.body()
    gateway = get_bridgerpay_gateway()
    if not gateway.verify_webhook(raw_body=raw_body, signature=request.headers.get(bridgerpay.SIGNATURE_HEADER)):
        logger.warning("webhook_signature_invalid", gateway=gateway.name)
        return error_response(status.HTTP_401_UNAUTHORIZED, "Invalid signature")

    payload = _parse_json_object(raw_body)
    if payload is None:
        logger.warning("webhook_payload_invalid", gateway=gateway.name)
        return error_response(status.HTTP_400_BAD_REQUEST, "Invalid JSON body")

    outcome = bridgerpay.parse_webhook(payload)
    if (outcome.event_type or "").lower() not in bridgerpay.PROCESSED_WEBHOOK_TYPES:
        logger.info("webhook_type_ignored", gateway=gateway.name, event_type=outcome.event_type)
        return _received(note=f"Webhook type {outcome.event_type} not processed")
    if not outcome.order_reference:
        logger.warning("webhook_order_reference_missing", gateway=gateway.name, event_type=outcome.event_type)
        return error_response(status.HTTP_400_BAD_REQUEST, "Missing order reference")

    try:
        purchase_id = await ReconciliationService.find_purchase_id(order_reference=outcome.order_reference)
    except PurchaseNotFoundError:
        logger.warning("webhook_purchase_not_found", gateway=gateway.name, order_reference=outcome.order_reference)
        return _received(note="Purchase not found")

    return await _apply(outcome, purchase_id=purchase_id, source=f"webhook:{gateway.name}")


@router.post("/api/webhooks/confirmo")
async def confirmo_webhook(request: Request) -> JSONResponse:
    raw_body = await request.body()
    gateway = get_confirmo_gateway()
    if not gateway.verify_webhook(raw_body=raw_body, signature=request.headers.get(confirmo.SIGNATURE_HEADER)):
        logger.warning("webhook_signature_invalid", gateway=gateway.name)
        return error_response(status.HTTP_401_UNAUTHORIZED, "Invalid signature")

    payload = _parse_json_object(raw_body)
    if payload is None:
        logger.warning("webhook_payload_invalid", gateway=gateway.name)
        return error_response(status.HTTP_400_BAD_REQUEST, "Invalid JSON body")

    outcome = confirmo.outcome_from_invoice(payload, verified=False)
    try:
        purchase_id = await ReconciliationService.find_purchase_id(
            invoice_reference=outcome.order_reference,
            invoice_id=outcome.transaction_id,
        )
    except PurchaseNotFoundError:
        logger.warning(
            "webhook_purchase_not_found",
            gateway=gateway.name,
            invoice_id=outcome.transaction_id,
        )
        return _received(note="Purchase not found")

    if outcome.status == "completed":
        if not outcome.transaction_id:
            return error_response(status.HTTP_400_BAD_REQUEST, "Missing invoice id")
        try:
            outcome = await gateway.fetch_authoritative(outcome.transaction_id)
        except GatewayError as exc:
            logger.warning(
                "webhook_status_verification_failed",
                gateway=gateway.name,
                invoice_id=outcome.transaction_id,
                status_code=exc.status_code,
            )
            return error_response(status.HTTP_502_BAD_GATEWAY, "Could not verify invoice status")

    return await _apply(outcome, purchase_id=purchase_id, source=f"webhook:{gateway.name}")
