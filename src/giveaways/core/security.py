"""Security utilities: admin JWT issue/verify and claim-token comparison."""

from __future__ import annotations

import hmac
import logging
import time
from typing import Any

from jose import JWTError, jwt

logger = logging.getLogger(__name__)


def _get_jwt_secret() -> str:
    from giveaways.core.config import get_settings

    return get_settings().jwt_secret_key


def _get_algorithm() -> str:
    from giveaways.core.config import get_settings

    return get_settings().jwt_algorithm


def create_access_token(
    subject: str,
    role: str = "admin",
    expires_minutes: int | None = None,
    extra_claims: dict[str, Any] | None = None,
) -> str:
    """Create a signed JWT access token."""
    if expires_minutes is None:
        from giveaways.core.config import get_settings

        expires_minutes = get_settings().jwt_access_token_expire_minutes
    now = int(time.time())
    payload: dict[str, Any] = {
        "sub": subject,
        "role": role,
        "type": "access",
        "iat": now,
        "exp": now + (expires_minutes * 60),
    }
    if extra_claims:
        payload.update(extra_claims)
    return str(jwt.encode(payload, _get_jwt_secret(), algorithm=_get_algorithm()))


def decode_token(token: str) -> dict[str, Any]:
    """Decode and verify a JWT token. Raises JWTError on failure."""
    payload: dict[str, Any] = jwt.decode(
        token, _get_jwt_secret(), algorithms=[_get_algorithm()]
    )
    return payload


def decode_token_safe(token: str) -> dict[str, Any] | None:
    """Decode a JWT token, returning None if it is invalid or expired."""
    try:
        return decode_token(token)
    except JWTError:
        logger.debug("Rejected JWT", exc_info=True)
        return None


def tokens_match(expected: str | None, supplied: str | None) -> bool:
    """Constant-time comparison for claim tokens."""
    if not expected or not supplied:
        return False
    return hmac.compare_digest(expected.encode(), supplied.encode())
