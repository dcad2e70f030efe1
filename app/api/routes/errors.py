from __future__ import annotations

from fastapi import status
from fastapi.responses import JSONResponse

from app.economy.coupons.errors import CouponIneligibleError
from app.economy.pricing.errors import (
    AddOnUnavailableError,
    PriceUnavailableError,
    ProgramNotFoundError,
    TierNotFoundError,
)
from app.economy.purchases.errors import (
    PurchaseInvalidStateError,
    PurchaseNotFoundError,
    PurchaseValidationError,
)

DOMAIN_ERRORS = (
    CouponIneligibleError,
    AddOnUnavailableError,
    PriceUnavailableError,
    ProgramNotFoundError,
    TierNotFoundError,
    PurchaseInvalidStateError,
    PurchaseNotFoundError,
    PurchaseValidationError,
)


def error_response(
    status_code: int,
    error: str,
    *,
    details: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    content: dict[str, object] = {"error": error}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def domain_error_response(exc: Exception, *, headers: dict[str, str] | None = None) -> JSONResponse:
    if isinstance(exc, PurchaseValidationError):
        return error_response(status.HTTP_400_BAD_REQUEST, exc.message, details=exc.details, headers=headers)
    if isinstance(exc, CouponIneligibleError):
        return error_response(status.HTTP_400_BAD_REQUEST, exc.reason, headers=headers)
    if isinstance(exc, PurchaseNotFoundError):
        return error_response(status.HTTP_404_NOT_FOUND, "Purchase not found", headers=headers)
    if isinstance(exc, PurchaseInvalidStateError):
        return error_response(status.HTTP_400_BAD_REQUEST, str(exc), headers=headers)
    if isinstance(exc, ProgramNotFoundError):
        return error_response(status.HTTP_400_BAD_REQUEST, "Program not found", details=str(exc), headers=headers)
    if isinstance(exc, TierNotFoundError):
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            "Could not find pricing tier for this purchase",
            details=str(exc),
            headers=headers,
        )
    if isinstance(exc, (PriceUnavailableError, AddOnUnavailableError)):
        return error_response(status.HTTP_400_BAD_REQUEST, "Price unavailable", details=str(exc), headers=headers)
    raise exc
