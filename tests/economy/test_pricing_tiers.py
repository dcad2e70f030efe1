from __future__ import annotations

from decimal import Decimal

import pytest

from app.economy.pricing.tiers import (
    find_tier,
    generated_tier_id,
    normalize_account_size,
    sanitize_account_size,
)
from app.economy.pricing.types import ProgramRef, TierRef


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("$100,000", "100000"),
        ("100 000", "100000"),
        ("100K", "100000"),
        ("50k", "50000"),
        ("1.5M", "1500000"),
        ("2.5K", "2500"),
        ("", ""),
    ],
)
def test_normalize_account_size(raw: str, expected: str) -> None:
    assert normalize_account_size(raw) == expected


def test_generated_tier_id_uses_position_and_sanitized_size() -> None:
    assert sanitize_account_size("$100,000") == "-100-000"
    assert generated_tier_id(position=2, account_size="$100,000") == "tier-2--100-000"


def _program() -> ProgramRef:
    return ProgramRef(
        id=7,
        name="Two Step",
        category="evaluation",
        tiers=(
            TierRef(tier_id="tier-0-25k", position=0, account_size="$25,000", price=Decimal("149")),
            TierRef(tier_id="custom-100", position=1, account_size="$100,000", price=Decimal("499")),
        ),
    )


def test_find_tier_prefers_explicit_tier_id() -> None:
    tier = find_tier(_program(), account_size="$25,000", tier_id="custom-100")
    assert tier is not None
    assert tier.tier_id == "custom-100"


def test_find_tier_falls_back_to_normalized_account_size() -> None:
    tier = find_tier(_program(), account_size="100K", tier_id="unknown")
    assert tier is not None
    assert tier.price == Decimal("499")


def test_find_tier_returns_none_for_unknown_size() -> None:
    assert find_tier(_program(), account_size="$5,000") is None
    assert find_tier(_program(), account_size="") is None
