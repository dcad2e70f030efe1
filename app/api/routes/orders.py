from __future__ import annotations

from datetime import datetime, timezone
from urllib.parse import urlencode

import structlog
from fastapi import APIRouter, Request, Response, status
from fastapi.responses import JSONResponse

from app.core.config import get_settings
from app.db.session import SessionLocal
from app.economy.coupons.service import get_coupon_resolver
from app.economy.purchases.service import PurchaseService
from app.services.tracking.klaviyo import KlaviyoClient

from .errors import DOMAIN_ERRORS, domain_error_response, error_response
from .purchases_models import CreatePendingOrderRequest

router = APIRouter(tags=["orders"])
logger = structlog.get_logger(__name__)


def cors_headers(origin: str | None) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": origin or "*",
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Requested-With, Accept, Origin",
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Max-Age": "86400",
    }


def build_payment_url(*, base_url: str, order_number: int, email: str, product_id: str) -> str:
    query = urlencode({"checkout-login-token": "1", "email": email, "product_id": product_id})
    return f"{base_url.rstrip('/')}/orders/{order_number}/pay?{query}"


@router.options("/api/orders/create-pending")
async def create_pending_order_preflight(request: Request) -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT, headers=cors_headers(request.headers.get("origin")))


@router.post("/api/orders/create-pending")
async def create_pending_order(payload: CreatePendingOrderRequest, request: Request) -> JSONResponse:
    headers = cors_headers(request.headers.get("origin"))
    billing = payload.billing_details
    product_id = str(payload.product_id).strip() if payload.product_id is not None else ""
    if billing is None or not billing.email.strip() or not product_id or not payload.account_id:
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            "Missing required fields: billing_details.email, product_id, account_id",
            headers=headers,
        )

    settings = get_settings()
    now_utc = datetime.now(timezone.utc)
    customer = billing.to_customer()
    try:
        async with SessionLocal.begin() as session:
            result = await PurchaseService.create_external_pending_order(
                session,
                external_product_id=product_id,
                external_account_id=payload.account_id,
                customer=customer,
                affiliate_cookie=request.cookies.get(settings.affiliate_cookie_name),
                now_utc=now_utc,
                resolver=get_coupon_resolver(),
            )
            purchase = await PurchaseService.get_purchase(session, result.purchase_id)
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc, headers=headers)

    try:
        await KlaviyoClient.from_settings().track_started_order(purchase, now_utc=now_utc)
    except Exception:
        logger.exception("started_order_tracking_failed", purchase_id=str(result.purchase_id))

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "success": True,
            "order_id": str(result.purchase_id),
            "payment_url": build_payment_url(
                base_url=settings.public_base_url,
                order_number=result.order_number,
                email=result.customer_email,
                product_id=product_id,
            ),
        },
        headers=headers,
    )
