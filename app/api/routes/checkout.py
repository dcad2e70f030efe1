from __future__ import annotations

import re
from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from app.core.config import get_settings
from app.core.logging import email_hash
from app.db.models.purchases import Purchase
from app.db.session import SessionLocal
from app.economy.coupons.service import get_coupon_resolver
from app.economy.purchases.service import PurchaseService
from app.economy.purchases.types import CheckoutInput
from app.services.gateways.bridgerpay import BridgerPayGateway, build_session_request
from app.services.gateways.errors import GatewayConfigError, GatewayError
from app.services.internal_auth import resolve_client_ip
from app.services.tracking import hyros
from app.services.tracking.klaviyo import KlaviyoClient

from .errors import DOMAIN_ERRORS, domain_error_response, error_response
from .purchases_models import (
    CheckoutPurchaseSummary,
    CheckoutRequest,
    CheckoutResponse,
    add_on_selection,
    normalize_purchase_type,
)

router = APIRouter(tags=["checkout"])
logger = structlog.get_logger(__name__)
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
CHECKOUT_FAILED_ERROR = "Failed to initialize BridgerPay checkout"


def get_bridgerpay_gateway() -> BridgerPayGateway:
    return BridgerPayGateway.from_settings()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email.strip()))


def _missing_required_fields(payload: CheckoutRequest) -> bool:
    customer = payload.customer_data
    return (
        payload.program_id is None
        or not payload.account_size.strip()
        or customer is None
        or not customer.email.strip()
        or not customer.first_name.strip()
        or not customer.last_name.strip()
        or not customer.phone.strip()
    )


async def track_started_order(purchase: Purchase, *, request: Request, now_utc: datetime) -> None:
    """Marketing calls for a freshly priced order; failures are logged only."""
    try:
        await hyros.track_purchase(
            purchase,
            event_type="pending",
            now_utc=now_utc,
            ip_address=resolve_client_ip(
                request,
                trusted_proxies=getattr(get_settings(), "internal_api_trusted_proxies", ""),
            ),
            user_agent=request.headers.get("user-agent"),
        )
        await KlaviyoClient.from_settings().track_started_order(purchase, now_utc=now_utc)
    except Exception:
        logger.exception(
            "started_order_tracking_failed",
            purchase_id=str(purchase.id),
            order_number=purchase.order_number,
        )


@router.post("/api/bridgerpay/checkout")
async def create_checkout_session(payload: CheckoutRequest, request: Request) -> JSONResponse:
    if _missing_required_fields(payload):
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            "Missing required fields",
            details="Required: programId, accountSize, customer first/last name, email, phone.",
        )
    customer = payload.customer_data.to_customer()
    if not is_valid_email(customer.email):
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            "Invalid email",
            details="Please provide a valid email address.",
        )

    gateway = get_bridgerpay_gateway()
    try:
        gateway.ensure_configured()
    except GatewayConfigError as exc:
        logger.error("bridgerpay_not_configured")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, CHECKOUT_FAILED_ERROR, details=str(exc))

    settings = get_settings()
    now_utc = datetime.now(timezone.utc)
    checkout_input = CheckoutInput(
        program_id=payload.program_id,
        account_size=payload.account_size.strip(),
        customer=customer,
        purchase_type=normalize_purchase_type(payload.purchase_type),
        reset_product_type=payload.reset_product_type,
        tier_id=payload.tier_id,
        platform_slug=payload.platform_id,
        program_details=payload.program_details,
        add_ons=add_on_selection(payload.selected_add_ons),
        coupon_code=(payload.coupon_code or "").strip() or None,
        client_price_hints=payload.client_price_hints(),
        existing_purchase_id=payload.existing_purchase_id,
        affiliate_cookie=request.cookies.get(settings.affiliate_cookie_name),
        external_account_id=payload.account_id,
        is_in_app_purchase=payload.is_in_app_purchase,
        currency=payload.currency.upper(),
    )
    try:
        async with SessionLocal.begin() as session:
            preparation = await PurchaseService.prepare_checkout(
                session,
                checkout_input,
                now_utc=now_utc,
                resolver=get_coupon_resolver(),
            )
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc)

    session_request = build_session_request(
        cashier_key=gateway.cashier_key,
        order_number=preparation.order_number,
        purchase_id=str(preparation.purchase_id),
        amount=preparation.breakdown.total_price,
        currency=preparation.currency,
        country_code=preparation.country_code,
        customer=customer,
        platform_id=payload.platform_id,
    )
    try:
        checkout_session = await gateway.create_session(session_request)
    except GatewayError as exc:
        async with SessionLocal.begin() as session:
            purchase = await PurchaseService.get_purchase_for_update(session, preparation.purchase_id)
            await PurchaseService.mark_checkout_failed(
                session,
                purchase=purchase,
                error_message=str(exc),
                status_code=exc.status_code,
                now_utc=datetime.now(timezone.utc),
            )
        return error_response(status.HTTP_502_BAD_GATEWAY, CHECKOUT_FAILED_ERROR, details=str(exc))

    async with SessionLocal.begin() as session:
        purchase = await PurchaseService.get_purchase_for_update(session, preparation.purchase_id)
        await PurchaseService.record_checkout_session(
            session,
            purchase=purchase,
            gateway=checkout_session.gateway,
            session_token=checkout_session.session_token,
            now_utc=now_utc,
        )
    await track_started_order(purchase, request=request, now_utc=now_utc)

    logger.info(
        "checkout_session_created",
        purchase_id=str(preparation.purchase_id),
        order_number=preparation.order_number,
        total_price=preparation.breakdown.total_price,
        email_hash=email_hash(customer.email),
    )
    response = CheckoutResponse(
        session_token=checkout_session.session_token,
        cashier_key=checkout_session.cashier_key,
        order_id=str(preparation.order_number),
        purchase=CheckoutPurchaseSummary(
            id=preparation.purchase_id,
            status=preparation.status,
            order_number=preparation.order_number,
        ),
        prices=preparation.breakdown.as_response(),
    )
    return JSONResponse(status_code=status.HTTP_200_OK, content=response.model_dump(mode="json", by_alias=True))
