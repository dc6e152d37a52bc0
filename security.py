from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt

from settings import settings

logger = logging.getLogger("portal.auth")

# Accounts and sign-in live with the external identity provider. The portal
# verifies its bearer tokens; `create_access_token` mints the same shape for
# local tooling and tests.


def _claims_options() -> Dict[str, Any]:
    return {
        "verify_aud": bool(settings.JWT_AUDIENCE),
        "require_aud": bool(settings.JWT_AUDIENCE),
        "require_iss": bool(settings.JWT_ISSUER),
        "require_sub": True,
        "require_exp": True,
    }


def create_access_token(sub: str, email: Optional[str] = None, minutes: Optional[int] = None) -> str:
    exp_minutes = minutes or settings.JWT_ACCESS_MINUTES
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=exp_minutes)).timestamp()),
    }
    if email:
        payload["email"] = email
    if settings.JWT_AUDIENCE:
        payload["aud"] = settings.JWT_AUDIENCE
    if settings.JWT_ISSUER:
        payload["iss"] = settings.JWT_ISSUER
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_token(token: str) -> Dict[str, Any]:
    """
    Verified claims, or an empty dict for anything that does not check out.
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALG],
            audience=settings.JWT_AUDIENCE or None,
            issuer=settings.JWT_ISSUER or None,
            options=_claims_options(),
        )
    except ExpiredSignatureError:
        logger.info("token_rejected reason=expired")
        return {}
    except JWTError as e:
        logger.info("token_rejected reason=%s", type(e).__name__)
        return {}
