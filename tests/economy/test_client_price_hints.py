from __future__ import annotations

from decimal import Decimal

import pytest

from app.economy.pricing.types import PriceBreakdown, TierRef
from app.economy.purchases.errors import PurchaseValidationError
from app.economy.purchases.service.checkout import (
    log_client_price_hints,
    require_country_code,
    validate_purchase_variant,
)

BREAKDOWN = PriceBreakdown(
    tier=TierRef(tier_id="tier-0-25k", position=0, account_size="$25,000", price=Decimal("199")),
    tier_price=199,
    original_price=199,
    applied_discount=19,
    final_purchase_price=180,
    add_on_value=36,
    total_price=216,
)


def _hints(**hints: object) -> list[str]:
    return log_client_price_hints(
        hints,
        BREAKDOWN,
        program_id=3,
        account_size="$25,000",
        customer_email="trader@example.com",
    )


def test_matching_hints_are_accepted() -> None:
    assert _hints(totalPrice=216, purchasePrice="180", addOnValue=36.4) == []


def test_manipulated_hints_are_reported_but_not_applied() -> None:
    assert _hints(totalPrice=1, amount=216, purchasePrice=100) == ["totalPrice", "purchasePrice"]
    assert BREAKDOWN.total_price == 216


def test_missing_and_boolean_hints_are_skipped() -> None:
    assert _hints(totalPrice=None, amount=True) == []


def test_validate_purchase_variant() -> None:
    validate_purchase_variant("original", None)
    validate_purchase_variant("reset", "funded")
    with pytest.raises(PurchaseValidationError):
        validate_purchase_variant("upgrade", None)
    with pytest.raises(PurchaseValidationError):
        validate_purchase_variant("reset", None)


def test_require_country_code() -> None:
    assert require_country_code("germany") == "DE"
    with pytest.raises(PurchaseValidationError):
        require_country_code("Atlantis")
