from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import email_hash
from app.db.models.purchases import Purchase
from app.db.repo.programs_repo import ProgramsRepo
from app.db.repo.purchases_repo import PurchasesRepo
from app.economy.coupons.service import CouponResolver
from app.economy.mappings.errors import MappingUnresolvedError
from app.economy.mappings.resolver import resolve_product
from app.economy.money import to_decimal
from app.economy.pricing.calculator import quote_price
from app.economy.pricing.catalog import load_program, load_selected_add_ons
from app.economy.pricing.types import (
    PURCHASE_TYPES,
    RESET_PRODUCT_TYPES,
    PriceBreakdown,
    PriceContext,
)
from app.economy.purchases.errors import PurchaseInvalidStateError, PurchaseValidationError
from app.economy.purchases.regions import region_for_country, to_country_code
from app.economy.purchases.types import CheckoutInput, CheckoutPreparation

from .builder import apply_breakdown, build_pending_purchase, customer_metadata
from .metadata import merge_metadata
from .store import get_purchase_for_update

logger = structlog.get_logger(__name__)
CLIENT_PRICE_TOLERANCE = 1
CLIENT_PRICE_FIELDS = ("totalPrice", "amount", "purchasePrice", "addOnValue")


def _client_hint_expected(field: str, breakdown: PriceBreakdown) -> int:
    if field == "purchasePrice":
        return breakdown.final_purchase_price
    if field == "addOnValue":
        return breakdown.add_on_value
    return breakdown.total_price


def log_client_price_hints(
    hints: dict[str, object],
    breakdown: PriceBreakdown,
    *,
    program_id: int,
    account_size: str,
    customer_email: str | None,
) -> list[str]:
    """Compare client-sent prices with the server breakdown; never alters the price."""
    mismatched: list[str] = []
    for field in CLIENT_PRICE_FIELDS:
        raw = hints.get(field)
        if raw is None or isinstance(raw, bool):
            continue
        try:
            client_value = to_decimal(raw)
        except (ArithmeticError, TypeError, ValueError):
            mismatched.append(field)
            continue
        expected = _client_hint_expected(field, breakdown)
        if abs(client_value - expected) > CLIENT_PRICE_TOLERANCE:
            mismatched.append(field)

    if mismatched:
        logger.warning(
            "checkout_price_manipulation_detected",
            program_id=program_id,
            account_size=account_size,
            fields=mismatched,
            client_prices={field: str(hints.get(field)) for field in mismatched},
            server_total=breakdown.total_price,
            email_hash=email_hash(customer_email),
        )
    return mismatched


def validate_purchase_variant(purchase_type: str, reset_product_type: str | None) -> None:
    if purchase_type not in PURCHASE_TYPES:
        raise PurchaseValidationError(
            "Invalid purchase type",
            details=f"purchaseType must be one of: {', '.join(PURCHASE_TYPES)}.",
        )
    if purchase_type == "reset" and reset_product_type not in RESET_PRODUCT_TYPES:
        raise PurchaseValidationError(
            "Invalid reset product type",
            details=f"resetProductType must be one of: {', '.join(RESET_PRODUCT_TYPES)}.",
        )


def require_country_code(country: str | None) -> str:
    country_code = to_country_code(country)
    if country_code is None:
        raise PurchaseValidationError(
            "Invalid country",
            details="A valid 2-letter country code or recognizable country name is required.",
        )
    return country_code


def _apply_attribution(purchase: Purchase, breakdown: PriceBreakdown, affiliate_cookie: str | None) -> None:
    discount = breakdown.discount
    if discount is not None and (discount.affiliate_id or discount.affiliate_username):
        purchase.affiliate_id = discount.affiliate_id
        purchase.affiliate_email = discount.affiliate_email
        purchase.affiliate_username = discount.affiliate_username
        return
    cookie = (affiliate_cookie or "").strip()
    if cookie and not purchase.affiliate_username:
        purchase.affiliate_username = cookie


async def _attach_product_mapping(session: AsyncSession, purchase: Purchase) -> None:
    try:
        resolved = await resolve_product(
            session,
            program_id=purchase.program_id,
            platform_id=purchase.platform_slug,
            purchase_type=purchase.purchase_type,
            reset_product_type=purchase.reset_product_type,
            tier_id=purchase.tier_id,
            account_size=purchase.account_size,
        )
    except MappingUnresolvedError:
        # Completion retries the lookup and alerts when it is still missing.
        purchase.product_id = None
        purchase.variation_id = None
        return
    purchase.product_id = resolved.product_id
    purchase.variation_id = resolved.variation_id


async def prepare_checkout(
    session: AsyncSession,
    data: CheckoutInput,
    *,
    now_utc: datetime,
    resolver: CouponResolver | None = None,
) -> CheckoutPreparation:
    """Price the order on the server and persist it as a pending purchase.

    Client prices are hints only. When ``existing_purchase_id`` is set the
    pending purchase is re-priced in place and keeps its order number.
    """
    validate_purchase_variant(data.purchase_type, data.reset_product_type)
    country_code = require_country_code(data.customer.country)

    program = await load_program(session, data.program_id)
    add_ons = ()
    if data.purchase_type == "original":
        add_ons = await load_selected_add_ons(session, data.add_ons)

    context = PriceContext(
        program_id=data.program_id,
        account_size=data.account_size,
        purchase_type=data.purchase_type,
        tier_id=data.tier_id,
        reset_product_type=data.reset_product_type,
        add_ons=add_ons,
        coupon_code=data.coupon_code,
        customer_email=data.customer.email,
    )
    breakdown = await quote_price(session, context, program=program, resolver=resolver)
    log_client_price_hints(
        data.client_price_hints,
        breakdown,
        program_id=data.program_id,
        account_size=data.account_size,
        customer_email=data.customer.email,
    )

    platform = None
    if data.platform_slug:
        platform = await ProgramsRepo.get_platform(session, data.platform_slug)

    if data.existing_purchase_id is not None:
        purchase = await get_purchase_for_update(session, data.existing_purchase_id)
        if purchase.status != "pending":
            raise PurchaseInvalidStateError("Can only update pending purchases")
        # The stored program, tier and mapping must describe what was charged.
        purchase.program_id = program.id
        purchase.account_size = data.account_size
        purchase.purchase_type = data.purchase_type
        purchase.reset_product_type = data.reset_product_type if data.purchase_type == "reset" else None
        purchase.customer_name = data.customer.full_name
        purchase.customer_email = data.customer.email.strip().lower()
        purchase.customer_phone = data.customer.phone
        purchase.billing_address = data.customer.billing_address(country_code=country_code)
        purchase.region = region_for_country(country_code)
        purchase.updated_at = now_utc
        merge_metadata(purchase, {"customerDetails": customer_metadata(data.customer)})
        is_new = False
    else:
        order_number = await PurchasesRepo.next_order_number(session)
        purchase = build_pending_purchase(
            order_number=order_number,
            program_id=program.id,
            program_name=program.name,
            account_size=data.account_size,
            purchase_type=data.purchase_type,
            reset_product_type=data.reset_product_type,
            customer=data.customer,
            country_code=country_code,
            currency=data.currency,
            now_utc=now_utc,
        )
        is_new = True

    purchase.program_name = program.name
    purchase.program_type = program.category
    purchase.program_details = data.program_details
    purchase.platform_slug = platform.slug if platform is not None else data.platform_slug
    purchase.platform_name = platform.name if platform is not None else None
    purchase.payment_method = data.payment_method
    purchase.is_in_app_purchase = data.is_in_app_purchase
    if data.external_account_id:
        purchase.external_account_id = data.external_account_id
    _apply_attribution(purchase, breakdown, data.affiliate_cookie)
    apply_breakdown(purchase, breakdown, add_ons=add_ons)
    await _attach_product_mapping(session, purchase)

    if is_new:
        await PurchasesRepo.create(session, purchase=purchase, created_at=now_utc)
    else:
        await session.flush()

    logger.info(
        "checkout_purchase_prepared",
        purchase_id=str(purchase.id),
        order_number=purchase.order_number,
        program_id=purchase.program_id,
        purchase_type=purchase.purchase_type,
        total_price=purchase.total_price,
        coupon_code=purchase.discount_code,
        reused=not is_new,
    )
    return CheckoutPreparation(
        purchase_id=purchase.id,
        order_number=purchase.order_number,
        status=purchase.status,
        breakdown=breakdown,
        customer=data.customer,
        country_code=country_code,
        program_name=program.name,
        currency=purchase.currency,
    )


async def record_checkout_session(
    session: AsyncSession,
    *,
    purchase: Purchase,
    gateway: str,
    session_token: str,
    now_utc: datetime,
) -> None:
    merge_metadata(
        purchase,
        {
            "paymentGateway": gateway,
            "checkoutSessionCreatedAt": now_utc.isoformat(),
            "checkoutSessionTokenSuffix": session_token[-6:],
        },
    )
    purchase.updated_at = now_utc
    await session.flush()


async def mark_checkout_failed(
    session: AsyncSession,
    *,
    purchase: Purchase,
    error_message: str,
    status_code: int | None,
    now_utc: datetime,
) -> bool:
    """Fail a pending purchase whose hosted session could not be created."""
    moved = await PurchasesRepo.transition_from_pending(
        session,
        purchase_id=purchase.id,
        to_status="failed",
        now_utc=now_utc,
    )
    await session.refresh(purchase)
    purchase.notes = f"BridgerPay session failed: {error_message}"
    merge_metadata(
        purchase,
        {
            "bridgerPayCheckoutError": error_message,
            "bridgerPayStatusCode": status_code,
            "failedAt": now_utc.isoformat(),
        },
    )
    await session.flush()
    logger.warning(
        "checkout_session_failed",
        purchase_id=str(purchase.id),
        order_number=purchase.order_number,
        status_code=status_code,
        transitioned=moved,
    )
    return moved
