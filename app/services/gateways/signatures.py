from __future__ import annotations

import hashlib
import hmac


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def is_valid_signature(*, raw_body: bytes, received_signature: str | None, secret: str) -> bool:
    if not secret or not received_signature:
        return False
    expected = compute_signature(raw_body, secret)
    return hmac.compare_digest(expected, received_signature.strip().lower())
