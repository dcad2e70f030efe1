from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

INTERNAL_STATUSES = ("pending", "completed", "failed", "cancelled")


@dataclass(frozen=True, slots=True)
class CheckoutSession:
    gateway: str
    session_token: str
    cashier_key: str | None = None


@dataclass(frozen=True, slots=True)
class CryptoInvoice:
    invoice_id: str
    url: str
    status: str
    raw: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class GatewayOutcome:
    """Provider claim about a payment, mapped onto the internal status set."""

    gateway: str
    provider_status: str
    status: str
    order_reference: str | None = None
    transaction_id: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    event_type: str | None = None
    verified: bool = False
    metadata: dict[str, object] = field(default_factory=dict)
    notes: str | None = None
