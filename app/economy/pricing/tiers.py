from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

from .types import ProgramRef, TierRef

_STRIP_RE = re.compile(r"[\s$,]")
_SUFFIX_RE = re.compile(r"^(\d+(?:\.\d+)?)([KM])$")
_SANITIZE_RE = re.compile(r"[^a-zA-Z0-9]")
_SUFFIX_MULTIPLIERS = {"K": Decimal(1_000), "M": Decimal(1_000_000)}


def normalize_account_size(account_size: str) -> str:
    """Canonical form used to compare account-size labels.

    "$100,000", "100 000" and "100K" all normalize to "100000".
    """
    stripped = _STRIP_RE.sub("", account_size or "").upper()
    match = _SUFFIX_RE.match(stripped)
    if match is None:
        return stripped
    try:
        value = Decimal(match.group(1)) * _SUFFIX_MULTIPLIERS[match.group(2)]
    except InvalidOperation:
        return stripped
    return str(int(value)) if value == value.to_integral_value() else str(value.normalize())


def sanitize_account_size(account_size: str) -> str:
    return _SANITIZE_RE.sub("-", account_size or "").lower()


def generated_tier_id(*, position: int, account_size: str) -> str:
    return f"tier-{position}-{sanitize_account_size(account_size)}"


def find_tier(program: ProgramRef, *, account_size: str, tier_id: str | None = None) -> TierRef | None:
    if tier_id:
        for tier in program.tiers:
            if tier.tier_id == tier_id:
                return tier

    target = normalize_account_size(account_size)
    if not target:
        return None
    for tier in program.tiers:
        if normalize_account_size(tier.account_size) == target:
            return tier
    return None
