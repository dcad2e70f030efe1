from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

import structlog
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.economy.purchases.errors import PurchaseInvalidStateError, PurchaseNotFoundError
from app.services.internal_auth import check_internal_access, resolve_client_ip
from app.services.reconciliation import ReconciliationResult, ReconciliationService

router = APIRouter(tags=["internal", "purchases"])
logger = structlog.get_logger(__name__)


class CompletePurchaseRequest(BaseModel):
    note: str | None = Field(default=None, max_length=512)


class EffectOutcomeResponse(BaseModel):
    name: str
    status: str
    error: str | None = None


class ReconciliationResponse(BaseModel):
    purchase_id: UUID
    order_number: int
    status: str
    transitioned: bool
    idempotent_replay: bool
    effects: list[EffectOutcomeResponse]


def _as_response(result: ReconciliationResult) -> ReconciliationResponse:
    return ReconciliationResponse(
        purchase_id=result.purchase_id,
        order_number=result.order_number,
        status=result.status,
        transitioned=result.transitioned,
        idempotent_replay=result.idempotent_replay,
        effects=[
            EffectOutcomeResponse(name=effect.name, status=effect.status, error=effect.error)
            for effect in result.effects
        ],
    )


def _assert_internal_access(request: Request) -> None:
    settings = get_settings()
    client_ip = resolve_client_ip(
        request,
        trusted_proxies=getattr(settings, "internal_api_trusted_proxies", ""),
    )
    decision = check_internal_access(
        request,
        client_ip=client_ip,
        expected_token=settings.internal_api_token,
        allowlist=settings.internal_api_allowlist,
    )
    if not decision.allowed:
        logger.warning("internal_purchases_auth_failed", reason=decision.reason, client_ip=decision.client_ip)
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})


@router.post("/internal/purchases/{purchase_id}/complete", response_model=ReconciliationResponse)
async def complete_purchase(
    purchase_id: UUID,
    request: Request,
    payload: CompletePurchaseRequest | None = None,
) -> ReconciliationResponse:
    _assert_internal_access(request)
    try:
        result = await ReconciliationService.complete_pending_purchase(
            purchase_id=purchase_id,
            now_utc=datetime.now(timezone.utc),
            note=payload.note if payload is not None else None,
        )
    except PurchaseNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "E_PURCHASE_NOT_FOUND"}) from exc
    except PurchaseInvalidStateError as exc:
        raise HTTPException(status_code=409, detail={"code": "E_PURCHASE_STATE_CONFLICT"}) from exc

    logger.info(
        "internal_purchase_completed",
        purchase_id=str(purchase_id),
        transitioned=result.transitioned,
        idempotent_replay=result.idempotent_replay,
    )
    return _as_response(result)


@router.post("/internal/purchases/{purchase_id}/fulfillment/retry", response_model=ReconciliationResponse)
async def retry_fulfillment(purchase_id: UUID, request: Request) -> ReconciliationResponse:
    _assert_internal_access(request)
    try:
        result = await ReconciliationService.retry_fulfillment(
            purchase_id=purchase_id,
            now_utc=datetime.now(timezone.utc),
        )
    except PurchaseNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "E_PURCHASE_NOT_FOUND"}) from exc
    except PurchaseInvalidStateError as exc:
        raise HTTPException(status_code=409, detail={"code": "E_PURCHASE_STATE_CONFLICT"}) from exc

    return _as_response(result)
