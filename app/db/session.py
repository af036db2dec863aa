from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from fastapi import HTTPException
from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config.settings import settings
from app.db.models import Base

# Lazy initialization to avoid import-time database connections
_engine: Engine | None = None
_SessionLocal: sessionmaker[Session] | None = None


def _create_engine(database_url: str) -> Engine:
    is_sqlite = "sqlite" in database_url.lower()
    if is_sqlite:
        logger.warning("Using SQLite database (local development only)")
        connect_args = {"check_same_thread": False}
        if database_url.rstrip("/").endswith(":memory:") or database_url == "sqlite://":
            # One shared connection, otherwise every session sees an empty database
            return create_engine(database_url, connect_args=connect_args, poolclass=StaticPool, echo=False)
        return create_engine(database_url, connect_args=connect_args, echo=False)

    return create_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,  # Verify connections before using (important for cloud DBs)
        pool_recycle=3600,
    )


def get_engine() -> Engine:
    """Get or create the database engine (lazy initialization)."""
    global _engine
    if _engine is None:
        logger.info(f"Initializing database engine: {settings.database_url}")
        _engine = _create_engine(settings.database_url)
        logger.info("Database engine initialized")
    return _engine


def _get_session_local() -> sessionmaker[Session]:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine(), expire_on_commit=False)
        logger.info("Database session factory initialized")
    return _SessionLocal


def init_db() -> None:
    """Create missing tables."""
    Base.metadata.create_all(bind=get_engine())
    logger.info("Database tables ensured")


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get database session context manager.

    Commits on success. HTTPException and LookupError (expected API responses
    and not-found lookups) are rolled back without logging; any other
    exception is logged and rolled back.
    """
    session = _get_session_local()()
    try:
        yield session
        session.commit()
    except (HTTPException, LookupError):
        session.rollback()
        raise
    except Exception as e:
        logger.error(f"Database session error, rolling back: {e}. Error type: {type(e).__name__}")
        session.rollback()
        raise
    finally:
        session.close()
