"""Signed credentials for outbound agent calls.

Each HTTP attempt to an agent carries its own short-lived JWT, signed with
the backend's private key, scoped to one agent audience and one user.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from jose import jwt
from jose.exceptions import JOSEError
from loguru import logger

from app.ai.errors import CredentialError
from app.config.settings import Settings

# Asymmetric algorithms python-jose can sign with
SUPPORTED_ALGORITHMS = frozenset({"RS256", "RS384", "RS512", "ES256", "ES384", "ES512"})


@dataclass(frozen=True)
class SignedCredential:
    token: str
    issuer: str
    subject: str
    audience: str
    issued_at: datetime
    expires_at: datetime
    token_id: str

    @property
    def authorization_header(self) -> str:
        return f"Bearer {self.token}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialMinter:
    """Mint per-call agent credentials.

    Pure function of (clock, key, audience, user). No I/O after construction.
    """

    def __init__(
        self,
        private_key: str,
        issuer: str,
        algorithm: str = "RS512",
        lifetime_seconds: int = 1800,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise CredentialError(f"Unsupported agent credential algorithm: {algorithm}")
        if lifetime_seconds <= 0:
            raise CredentialError(f"Credential lifetime must be positive, got {lifetime_seconds}")
        self._private_key = private_key
        self._issuer = issuer
        self._algorithm = algorithm
        self._lifetime = timedelta(seconds=lifetime_seconds)
        self._clock = clock

    @property
    def algorithm(self) -> str:
        return self._algorithm

    def mint(self, user_id: str, audience: str) -> SignedCredential:
        """Sign a credential for one call to one agent.

        Args:
            user_id: Subject of the credential
            audience: Agent audience (e.g. "data-agent")

        Returns:
            SignedCredential with the encoded token and its claims

        Raises:
            CredentialError: If the key is missing or signing fails
        """
        if not self._private_key:
            raise CredentialError("Agent private key is not configured (AGENT_PRIVATE_KEY or AGENT_PRIVATE_KEY_PATH)")
        subject = str(user_id) if user_id is not None else ""
        if not subject:
            raise CredentialError("Cannot mint an agent credential without a user id")

        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + self._lifetime
        token_id = uuid.uuid4().hex
        claims = {
            "iss": self._issuer,
            "sub": subject,
            "aud": audience,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "jti": token_id,
        }
        try:
            token = jwt.encode(claims, self._private_key, algorithm=self._algorithm)
        except (JOSEError, ValueError, TypeError) as e:
            logger.error("[AGENT_CREDENTIALS] Failed to sign credential", error=str(e), audience=audience, algorithm=self._algorithm)
            raise CredentialError(f"Failed to sign agent credential: {e}") from e

        return SignedCredential(
            token=token,
            issuer=self._issuer,
            subject=subject,
            audience=audience,
            issued_at=issued_at,
            expires_at=expires_at,
            token_id=token_id,
        )


def load_private_key(settings: Settings) -> str:
    """Resolve the agent signing key from inline PEM or a key file.

    Returns an empty string when neither is configured; minting will then fail
    with CredentialError on first use.
    """
    if settings.agent_private_key:
        return settings.agent_private_key
    if settings.agent_private_key_path:
        key_path = Path(settings.agent_private_key_path)
        try:
            return key_path.read_text(encoding="utf-8")
        except OSError as e:
            raise CredentialError(f"Cannot read agent private key from {key_path}: {e}") from e
    logger.warning("[AGENT_CREDENTIALS] No agent private key configured; agent calls will fail")
    return ""


def build_minter(settings: Settings) -> CredentialMinter:
    return CredentialMinter(
        private_key=load_private_key(settings),
        issuer=settings.agent_issuer,
        algorithm=settings.agent_jwt_algorithm,
        lifetime_seconds=settings.agent_jwt_expiration_seconds,
    )
