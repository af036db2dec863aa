"""Root conftest for all tests.

This file makes shared fixtures available across all test modules.
"""

from collections.abc import Callable

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from app.ai.credentials import CredentialMinter
from app.ai.types import AgentEndpoints, RetryPolicy
from app.ai.webhook_client import AgentWebhookClient


# Enable foreign key constraints for SQLite
@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key) -> str:
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope="session")
def public_key_pem(rsa_private_key) -> str:
    return (
        rsa_private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode()
    )


@pytest.fixture
def minter(private_key_pem) -> CredentialMinter:
    return CredentialMinter(private_key=private_key_pem, issuer="gympal-backend")


@pytest.fixture
def endpoints() -> AgentEndpoints:
    return AgentEndpoints(
        reception="http://agents.test/webhook/receptionAgent",
        data="http://agents.test/webhook/dataAgent",
        recommend_exercises="http://agents.test/webhook/recommend-exercises",
    )


@pytest.fixture
def fast_retry_policy() -> RetryPolicy:
    return RetryPolicy(timeout_ms=1000, max_attempts=3, base_delay_ms=500)


@pytest.fixture
def sleeps() -> list[float]:
    """Backoff delays recorded by the fake sleep of ``make_webhook_client``."""
    return []


@pytest.fixture
def make_webhook_client(sleeps) -> Callable[[Callable[[httpx.Request], httpx.Response]], AgentWebhookClient]:
    """Build an AgentWebhookClient whose agents are answered by ``handler``."""

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    def factory(handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return AgentWebhookClient(client=client, sleep=fake_sleep)

    return factory


@pytest.fixture
def db_engine(monkeypatch):
    """Isolated in-memory SQLite database behind app.db.session.get_session()."""
    import app.db.session as session_module
    from app.db.models import Base

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    monkeypatch.setattr(session_module, "_engine", engine)
    monkeypatch.setattr(session_module, "_SessionLocal", None)

    try:
        yield engine
    finally:
        engine.dispose()
