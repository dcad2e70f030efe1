from __future__ import annotations

from decimal import Decimal

import pytest

from app.economy.coupons.types import EligibleDiscount
from app.economy.pricing.calculator import compute_add_on_value, compute_price, select_base_price
from app.economy.pricing.errors import PriceUnavailableError, TierNotFoundError
from app.economy.pricing.types import PriceContext, ProgramRef, SelectedAddOn, TierRef

TIER = TierRef(
    tier_id="tier-0-25k",
    position=0,
    account_size="$25,000",
    price=Decimal("199"),
    reset_fee=Decimal("49.5"),
    reset_fee_funded=Decimal("79"),
)
PROGRAM = ProgramRef(
    id=3,
    name="Instant",
    category="instant_funding",
    activation_fee_value=Decimal("129.99"),
    tiers=(TIER,),
)


def _discount(discount_type: str = "percentage", value: str = "10") -> EligibleDiscount:
    return EligibleDiscount(
        coupon_id=1,
        code="SAVE10",
        discount_type=discount_type,
        discount_value=Decimal(value),
        auto_applied=False,
    )


def test_original_price_with_coupon_and_add_ons() -> None:
    context = PriceContext(
        program_id=3,
        account_size="$25,000",
        add_ons=(
            SelectedAddOn(add_on_id="profit-split", percentage=Decimal("20")),
            SelectedAddOn(add_on_id="no-time-limit", percentage=Decimal("15")),
        ),
    )

    breakdown = compute_price(context, PROGRAM, discount=_discount())

    assert breakdown.original_price == 199
    assert breakdown.final_purchase_price == 180
    assert breakdown.applied_discount == 19
    assert breakdown.add_on_value == 36 + 27
    assert breakdown.total_price == 243
    assert breakdown.coupon_code == "SAVE10"


def test_fixed_discount_never_goes_below_zero() -> None:
    context = PriceContext(program_id=3, account_size="$25,000")
    breakdown = compute_price(context, PROGRAM, discount=_discount("fixed", "250"))

    assert breakdown.final_purchase_price == 0
    assert breakdown.applied_discount == 199
    assert breakdown.total_price == 0


def test_no_discount_keeps_base_price() -> None:
    breakdown = compute_price(PriceContext(program_id=3, account_size="25K"), PROGRAM)
    assert breakdown.total_price == 199
    assert breakdown.applied_discount == 0
    assert breakdown.as_response()["couponCode"] is None


def test_reset_fee_ignores_discount_and_add_ons() -> None:
    context = PriceContext(
        program_id=3,
        account_size="$25,000",
        purchase_type="reset",
        reset_product_type="evaluation",
        add_ons=(SelectedAddOn(add_on_id="profit-split", percentage=Decimal("20")),),
    )
    breakdown = compute_price(context, PROGRAM, discount=_discount())

    assert breakdown.total_price == 50
    assert breakdown.applied_discount == 0
    assert breakdown.add_on_value == 0
    assert breakdown.discount is None


def test_funded_reset_uses_funded_fee() -> None:
    base = select_base_price(PROGRAM, TIER, purchase_type="reset", reset_product_type="funded")
    assert base == 79


def test_funded_reset_falls_back_to_evaluation_fee() -> None:
    tier = TierRef(tier_id="t", position=0, account_size="$25,000", price=Decimal("199"), reset_fee=Decimal("60"))
    base = select_base_price(PROGRAM, tier, purchase_type="reset", reset_product_type="funded")
    assert base == 60


def test_activation_fee_is_rounded_up() -> None:
    breakdown = compute_price(
        PriceContext(program_id=3, account_size="$25,000", purchase_type="activation"),
        PROGRAM,
    )
    assert breakdown.total_price == 130


def test_activation_without_fee_is_unavailable() -> None:
    program = ProgramRef(id=4, name="Two Step", category="evaluation", tiers=(TIER,))
    with pytest.raises(PriceUnavailableError):
        select_base_price(program, TIER, purchase_type="activation", reset_product_type=None)


def test_reset_without_fee_is_unavailable() -> None:
    tier = TierRef(tier_id="t", position=0, account_size="$25,000", price=Decimal("199"))
    with pytest.raises(PriceUnavailableError):
        select_base_price(PROGRAM, tier, purchase_type="reset", reset_product_type="evaluation")


def test_unknown_account_size_raises_tier_not_found() -> None:
    with pytest.raises(TierNotFoundError):
        compute_price(PriceContext(program_id=3, account_size="$1,000,000"), PROGRAM)


def test_add_on_value_is_rounded_up_per_add_on() -> None:
    add_ons = (
        SelectedAddOn(add_on_id="a", percentage=Decimal("10")),
        SelectedAddOn(add_on_id="b", percentage=Decimal("10")),
    )
    assert compute_add_on_value(199, add_ons) == 40
