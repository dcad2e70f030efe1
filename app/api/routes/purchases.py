from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from app.core.config import get_settings
from app.core.logging import email_hash
from app.db.session import SessionLocal
from app.economy.coupons.service import get_coupon_resolver
from app.economy.purchases.errors import PurchaseInvalidStateError
from app.economy.purchases.service import PurchaseService
from app.economy.purchases.types import CustomerDetails
from app.services.fulfillment import split_customer_name
from app.services.gateways.confirmo import ConfirmoGateway, build_invoice_request, build_reference
from app.services.gateways.errors import GatewayError

from .errors import DOMAIN_ERRORS, domain_error_response, error_response
from .purchases_models import CreateCryptoPaymentRequest, UpdatePurchaseRequest, add_on_selection

router = APIRouter(tags=["purchases"])
logger = structlog.get_logger(__name__)


def get_confirmo_gateway() -> ConfirmoGateway:
    return ConfirmoGateway.from_settings()


@router.post("/api/update-purchase")
async def update_purchase(payload: UpdatePurchaseRequest) -> JSONResponse:
    if payload.purchase_id is None:
        return error_response(status.HTTP_400_BAD_REQUEST, "Purchase ID is required")

    coupon_code_set = "coupon_code" in payload.model_fields_set
    coupon_code = (payload.coupon_code or "").strip() or None
    try:
        async with SessionLocal.begin() as session:
            result = await PurchaseService.update_pending_purchase(
                session,
                purchase_id=payload.purchase_id,
                add_ons=add_on_selection(payload.selected_add_ons),
                coupon_code=coupon_code,
                coupon_code_set=coupon_code_set,
                now_utc=datetime.now(timezone.utc),
                resolver=get_coupon_resolver(),
            )
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc)

    breakdown = result.breakdown
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "success": True,
            "purchase": {
                "id": str(result.purchase_id),
                "status": result.status,
                "totalPrice": breakdown.total_price,
                "purchasePrice": breakdown.final_purchase_price,
                "addOnValue": breakdown.add_on_value,
                "hasAddOn": result.has_add_on,
            },
        },
    )


def _invoice_customer(payload: CreateCryptoPaymentRequest, *, stored_name: str, stored_email: str) -> CustomerDetails:
    if payload.customer_data is not None and payload.customer_data.email.strip():
        return payload.customer_data.to_customer()
    first_name, last_name = split_customer_name(stored_name)
    return CustomerDetails(first_name=first_name, last_name=last_name, email=stored_email)


@router.post("/api/create-confirmo-payment")
async def create_crypto_payment(payload: CreateCryptoPaymentRequest) -> JSONResponse:
    if payload.purchase_id is None:
        return error_response(status.HTTP_400_BAD_REQUEST, "Missing required fields: purchaseId")

    try:
        async with SessionLocal() as session:
            purchase = await PurchaseService.get_purchase(session, payload.purchase_id)
        if purchase.status != "pending":
            raise PurchaseInvalidStateError("Can only pay for pending purchases")
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc)

    customer = _invoice_customer(payload, stored_name=purchase.customer_name, stored_email=purchase.customer_email)
    if not customer.email:
        return error_response(status.HTTP_400_BAD_REQUEST, "Customer email is required for Confirmo payments")
    if payload.amount is not None and abs(payload.amount - purchase.total_price) > 1:
        logger.warning(
            "crypto_payment_client_amount_ignored",
            purchase_id=str(purchase.id),
            client_amount=payload.amount,
            server_total=purchase.total_price,
        )

    gateway = get_confirmo_gateway()
    reference = build_reference(
        purchase_id=purchase.id,
        program_id=purchase.program_id,
        account_size=purchase.account_size,
        customer=customer,
    )
    body = build_invoice_request(
        amount=purchase.total_price,
        currency=purchase.currency,
        reference=reference,
        product_name=payload.program_name or purchase.program_name or "Trading Program",
        account_size=purchase.account_size,
        customer_email=customer.email,
        purchase_id=purchase.id,
        public_base_url=get_settings().public_base_url,
    )
    try:
        invoice = await gateway.create_invoice(body)
    except GatewayError as exc:
        logger.error(
            "crypto_payment_create_failed",
            purchase_id=str(purchase.id),
            status_code=exc.status_code,
        )
        return error_response(status.HTTP_502_BAD_GATEWAY, "Failed to create Confirmo payment", details=str(exc))

    now_utc = datetime.now(timezone.utc)
    async with SessionLocal.begin() as session:
        await PurchaseService.record_metadata(
            session,
            purchase_id=purchase.id,
            patch={
                "paymentGateway": gateway.name,
                "confirmoInvoiceId": invoice.invoice_id,
                "confirmoStatus": invoice.status,
                "confirmoReference": reference,
                "invoiceCreatedAt": now_utc.isoformat(),
            },
            now_utc=now_utc,
        )

    logger.info(
        "crypto_payment_created",
        purchase_id=str(purchase.id),
        order_number=purchase.order_number,
        invoice_id=invoice.invoice_id,
        total_price=purchase.total_price,
        email_hash=email_hash(customer.email),
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "success": True,
            "payment": {"id": invoice.invoice_id, "url": invoice.url, "status": invoice.status},
        },
    )
