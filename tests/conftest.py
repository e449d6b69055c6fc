"""Shared pytest fixtures and configuration."""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from plconfig.core.config import get_settings
from plconfig.db.models import Base
from plconfig.services.audit_log import AuditContext


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Re-read settings for every test so monkeypatched env vars apply."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def db() -> Session:
    """Create in-memory SQLite database for testing."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    session = Session(engine)
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def ctx() -> AuditContext:
    """Audit attribution for service calls."""
    return AuditContext(actor_id="user_1", ip_address="203.0.113.7", user_agent="pytest")
