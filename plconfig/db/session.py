"""Database session management.

The engine and session factory are built on first use from
plconfig.core.config settings, so importing this module opens nothing.
"""

from __future__ import annotations

from collections.abc import Iterator
from functools import lru_cache

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from plconfig.core.config import get_settings


@lru_cache
def get_engine() -> Engine:
    """Get the engine for DATABASE_URL (cached)."""
    return create_engine(
        get_settings().database_url,
        pool_pre_ping=True,  # Verify connections before using
        echo=False,  # Set to True for SQL debug logging
    )


@lru_cache
def get_sessionmaker() -> sessionmaker[Session]:
    """Get the session factory bound to the cached engine."""
    return sessionmaker(bind=get_engine(), autoflush=False, autocommit=False)


def get_db() -> Iterator[Session]:
    """Yield a session and close it when the caller is done."""
    db = get_sessionmaker()()
    try:
        yield db
    finally:
        db.close()


def reset_engine() -> None:
    """Dispose the cached engine so the next use re-reads settings."""
    if get_engine.cache_info().currsize:
        get_engine().dispose()
    get_sessionmaker.cache_clear()
    get_engine.cache_clear()


__all__ = ["get_engine", "get_sessionmaker", "get_db", "reset_engine"]
