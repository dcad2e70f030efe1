from __future__ import annotations

from .bridgerpay import BridgerPayGateway
from .confirmo import ConfirmoGateway
from .errors import GatewayAuthError, GatewayConfigError, GatewayError, SignatureInvalidError
from .types import CheckoutSession, CryptoInvoice, GatewayOutcome

__all__ = [
    "BridgerPayGateway",
    "CheckoutSession",
    "ConfirmoGateway",
    "CryptoInvoice",
    "GatewayAuthError",
    "GatewayConfigError",
    "GatewayError",
    "GatewayOutcome",
    "SignatureInvalidError",
]
