"""Session tokens for users of the chat API.

The backend signs these itself with ``AUTH_SECRET_KEY`` (HMAC). They are
unrelated to the RSA credentials sent to the agents, which app.ai.credentials
mints per request.

An unset key never signs or verifies anything and every token is refused.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from loguru import logger

from app.config.settings import settings

_DECODE_OPTIONS = {"require_exp": True, "require_sub": True, "require_iss": True}


class SessionTokenError(ValueError):
    """A session token could not be issued or was not accepted."""


def _secret_key() -> str:
    key = settings.auth_secret_key
    if not key:
        logger.error("AUTH_SECRET_KEY is not configured, session tokens are disabled")
        raise SessionTokenError("Session signing key is not configured")
    return key


def create_access_token(user_id: str, expires_in: timedelta | None = None) -> str:
    """Issue a session token whose ``sub`` is ``user_id``.

    Raises:
        SessionTokenError: Empty user ID or no signing key configured
    """
    subject = "" if user_id is None else str(user_id)
    if not subject:
        raise SessionTokenError("user_id cannot be None or empty")

    issued_at = datetime.now(timezone.utc)
    lifetime = expires_in if expires_in is not None else timedelta(days=settings.auth_token_expire_days)
    claims = {
        "iss": settings.agent_issuer,
        "sub": subject,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(claims, _secret_key(), algorithm=settings.auth_algorithm)


def decode_access_token(token: str) -> str:
    """Verify a session token and return its user ID.

    Signature, expiry and issuer are all checked.

    Raises:
        SessionTokenError: Token invalid, expired, from another issuer, or no key configured
    """
    key = _secret_key()
    try:
        claims = jwt.decode(
            token,
            key,
            algorithms=[settings.auth_algorithm],
            issuer=settings.agent_issuer,
            options=_DECODE_OPTIONS,
        )
    except JWTError as e:
        logger.warning("Session token rejected", error=str(e))
        raise SessionTokenError("Invalid or expired token") from e

    subject = claims.get("sub")
    if not subject:
        raise SessionTokenError("Token missing user ID")
    return str(subject)
