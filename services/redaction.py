from __future__ import annotations

import re
from typing import Any, Mapping


_EMAIL_RE = re.compile(r"\b([A-Za-z0-9._%+-])([A-Za-z0-9._%+-]*)(@[A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")

# (pattern, replacement) applied in order after email masking
_SECRET_PATTERNS: tuple[tuple[re.Pattern, str], ...] = (
    # Stripe API keys and webhook secrets
    (re.compile(r"\b(?:sk|rk)_(?:live|test)_[A-Za-z0-9]+\b"), "[REDACTED]"),
    (re.compile(r"\bwhsec_[A-Za-z0-9]+\b"), "[REDACTED]"),
    # PaymentIntent client secrets; the bare intent id stays readable
    (re.compile(r"\b(pi_[A-Za-z0-9]+)_secret_[A-Za-z0-9]+\b"), r"\1_secret_[REDACTED]"),
    (re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/=-]+"), "Bearer [REDACTED]"),
    # bare JWTs (header.payload.signature)
    (re.compile(r"\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\b"), "[REDACTED_JWT]"),
    # signed download links
    (re.compile(r"([?&]sig=)[0-9a-f]+"), r"\1[REDACTED]"),
)

_SENSITIVE_KEY_MARKERS = (
    "token",
    "authorization",
    "secret",
    "signature",
    "password",
    "cookie",
)

# headers that are safe to log verbatim
_SAFE_HEADERS = frozenset({"content-type", "content-length", "user-agent", "x-request-id", "x-correlation-id"})


def _mask_email(match: re.Match) -> str:
    return f"{match.group(1)}***{match.group(3)}"


def redact_text(value: str) -> str:
    masked = _EMAIL_RE.sub(_mask_email, value)
    for pattern, replacement in _SECRET_PATTERNS:
        masked = pattern.sub(replacement, masked)

    lowered = masked.lower()
    if "access_token" in lowered or "refresh_token" in lowered:
        return "[REDACTED]"
    return masked


def _is_sensitive_key(key: str) -> bool:
    key_l = (key or "").lower()
    return any(marker in key_l for marker in _SENSITIVE_KEY_MARKERS)


def redact_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, Mapping):
        return redact_dict(value)
    if isinstance(value, (list, tuple)):
        return [redact_value(v) for v in value]
    return value


def redact_dict(payload: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for k, v in payload.items():
        out[k] = "[REDACTED]" if _is_sensitive_key(k) else redact_value(v)
    return out


def redact_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """
    Allow-list view of request headers for diagnostics; everything else is masked.
    """
    return {k: (v if k.lower() in _SAFE_HEADERS else "[REDACTED]") for k, v in headers.items()}
