"""Caller identification for operator endpoints and customer IP capture."""

from __future__ import annotations

import ipaddress
import secrets
from dataclasses import dataclass
from functools import lru_cache

from fastapi import Request

INTERNAL_TOKEN_HEADER = "X-Internal-Token"
FORWARDED_FOR_HEADER = "X-Forwarded-For"

Network = ipaddress.IPv4Network | ipaddress.IPv6Network


@dataclass(frozen=True, slots=True)
class AccessDecision:
    allowed: bool
    client_ip: str | None
    reason: str | None = None


def tokens_match(*, expected: str, received: str | None) -> bool:
    if not expected or not received:
        return False
    return secrets.compare_digest(expected, received)


@lru_cache(maxsize=32)
def parse_networks(raw: str) -> tuple[Network, ...]:
    """Comma-separated hosts and CIDR blocks; unparseable entries are dropped."""
    networks: list[Network] = []
    for entry in (part.strip() for part in raw.split(",")):
        if not entry:
            continue
        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            continue
    return tuple(networks)


def normalize_ip(value: str | None) -> str | None:
    candidate = (value or "").strip()
    if not candidate:
        return None
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


def ip_in_networks(*, ip: str | None, networks: str) -> bool:
    normalized = normalize_ip(ip)
    if normalized is None:
        return False
    address = ipaddress.ip_address(normalized)
    return any(address in network for network in parse_networks(networks))


def resolve_client_ip(request: Request, *, trusted_proxies: str = "") -> str | None:
    """Peer address, or the first X-Forwarded-For hop when the peer is a trusted proxy."""
    peer = normalize_ip(request.client.host if request.client is not None else None)
    forwarded_for = request.headers.get(FORWARDED_FOR_HEADER)
    if not forwarded_for or not ip_in_networks(ip=peer, networks=trusted_proxies):
        return peer
    # A trusted proxy that forwards garbage gets no fallback to its own address.
    return normalize_ip(forwarded_for.split(",", maxsplit=1)[0])


def check_internal_access(
    request: Request,
    *,
    client_ip: str | None,
    expected_token: str,
    allowlist: str,
) -> AccessDecision:
    if not ip_in_networks(ip=client_ip, networks=allowlist):
        return AccessDecision(allowed=False, client_ip=client_ip, reason="ip_not_allowed")
    if not tokens_match(expected=expected_token, received=request.headers.get(INTERNAL_TOKEN_HEADER)):
        return AccessDecision(allowed=False, client_ip=client_ip, reason="invalid_credentials")
    return AccessDecision(allowed=True, client_ip=client_ip)
