# app/webhooks/signature.py
from __future__ import annotations

import hashlib
import hmac
import time
from typing import Optional


class SignatureError(Exception):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def compute_signature(secret: str, timestamp: int, raw: bytes) -> str:
    signed = f"{timestamp}.".encode("utf-8") + raw
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def parse_signature_header(header: str) -> tuple[Optional[int], list[str]]:
    """
    `t=<unix ts>,v1=<hex>[,v1=<hex>...]`. Unknown schemes (v0) are ignored.
    """
    timestamp: Optional[int] = None
    signatures: list[str] = []
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None, []
        elif key == "v1" and value:
            signatures.append(value.strip())
    return timestamp, signatures


def verify_stripe_signature(
    *,
    raw: bytes,
    signature_header: Optional[str],
    secret: str,
    tolerance_s: int = 300,
    now: Optional[float] = None,
) -> int:
    """
    Returns the signed timestamp, or raises SignatureError with a stable reason code.
    """
    if not signature_header or not signature_header.strip():
        raise SignatureError("MISSING_SIGNATURE")

    timestamp, signatures = parse_signature_header(signature_header)
    if timestamp is None or not signatures:
        raise SignatureError("MALFORMED_SIGNATURE")

    expected = compute_signature(secret, timestamp, raw)
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        raise SignatureError("INVALID_SIGNATURE")

    current = time.time() if now is None else now
    if tolerance_s > 0 and abs(current - timestamp) > tolerance_s:
        raise SignatureError("TIMESTAMP_OUT_OF_TOLERANCE")

    return timestamp
