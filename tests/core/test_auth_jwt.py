import base64
import hashlib
import hmac
import json
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt
from loguru import logger

from app.config.settings import Settings, settings
from app.core.auth_jwt import SessionTokenError, create_access_token, decode_access_token

SECRET = "s" * 40


@pytest.fixture
def secret(monkeypatch):
    monkeypatch.setattr(settings, "auth_secret_key", SECRET)
    return SECRET


def _forge(key, **claims):
    now = datetime.now(timezone.utc)
    payload = {"iss": settings.agent_issuer, "sub": "user-1", "iat": now, "exp": now + timedelta(hours=1)}
    payload.update(claims)
    return jwt.encode(payload, key, algorithm="HS256")


def _forge_with_empty_key():
    def segment(data):
        return base64.urlsafe_b64encode(json.dumps(data).encode()).rstrip(b"=")

    now = int(datetime.now(timezone.utc).timestamp())
    signing_input = segment({"alg": "HS256", "typ": "JWT"}) + b"." + segment(
        {"iss": settings.agent_issuer, "sub": "user-2", "iat": now, "exp": now + 3600}
    )
    signature = base64.urlsafe_b64encode(hmac.new(b"", signing_input, hashlib.sha256).digest()).rstrip(b"=")
    return (signing_input + b"." + signature).decode()


def test_token_round_trip(secret):
    assert decode_access_token(create_access_token("user-1")) == "user-1"


def test_expired_token_is_rejected(secret):
    token = create_access_token("user-1", expires_in=timedelta(seconds=-5))

    with pytest.raises(SessionTokenError, match="Invalid or expired"):
        decode_access_token(token)


def test_token_from_another_issuer_is_rejected(secret):
    with pytest.raises(SessionTokenError):
        decode_access_token(_forge(secret, iss="someone-else"))


def test_token_signed_with_other_key_is_rejected(secret):
    with pytest.raises(SessionTokenError):
        decode_access_token(_forge("another-key-that-is-long-enough-000"))


def test_token_without_subject_is_rejected(secret):
    with pytest.raises(SessionTokenError):
        decode_access_token(_forge(secret, sub=""))


def test_empty_user_id_cannot_get_a_token(secret):
    with pytest.raises(SessionTokenError):
        create_access_token("")


def test_unset_key_refuses_to_issue(monkeypatch):
    monkeypatch.setattr(settings, "auth_secret_key", "")

    with pytest.raises(SessionTokenError, match="not configured"):
        create_access_token("user-1")


def test_unset_key_refuses_token_forged_with_empty_key(monkeypatch):
    monkeypatch.setattr(settings, "auth_secret_key", "")

    with pytest.raises(SessionTokenError, match="not configured"):
        decode_access_token(_forge_with_empty_key())


def test_settings_warn_about_missing_and_short_keys():
    messages = []
    sink_id = logger.add(lambda message: messages.append(message.record["message"]), level="WARNING")
    try:
        Settings(AUTH_SECRET_KEY="")
        Settings(AUTH_SECRET_KEY="short")
        Settings(AUTH_SECRET_KEY=SECRET)
    finally:
        logger.remove(sink_id)

    key_warnings = [m for m in messages if "AUTH_SECRET_KEY" in m]
    assert len(key_warnings) == 2
    assert "not set" in key_warnings[0]
    assert "shorter than" in key_warnings[1]


def test_settings_reject_non_hmac_algorithm():
    assert Settings(AUTH_ALGORITHM="RS256").auth_algorithm == "HS256"
    assert Settings(AUTH_ALGORITHM="hs512").auth_algorithm == "HS512"
