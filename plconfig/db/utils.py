"""Database utilities for tenant-scoped queries."""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from sqlalchemy import Select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from plconfig.core.config import get_settings
from plconfig.core.errors import TenantScopeError
from plconfig.core.metrics import tenant_unscoped_query_total

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=Select)


def require_tenant(tenant_id: str | None) -> str:
    """Return tenant_id or refuse to continue without one.

    Raises:
        TenantScopeError: If tenant_id is None or blank

    """
    if tenant_id is None or not str(tenant_id).strip():
        tenant_unscoped_query_total.labels(error_type="missing_tenant_id").inc()
        logger.error("Tenant-scoped operation called without tenant_id")
        raise TenantScopeError("tenant_id is required for scoped queries")
    return tenant_id


def scoped(stmt: S, model: Any, tenant_id: str | None) -> S:
    """Add ``model.tenant_id == tenant_id`` to a SELECT.

    Args:
        stmt: Select statement
        model: ORM model class the statement reads
        tenant_id: Tenant to scope to

    Returns:
        The statement filtered by tenant

    Raises:
        TenantScopeError: If tenant_id is missing or model has no tenant_id column

    Usage:
        >>> rows = db.scalars(scoped(select(ProductCOGSRecord), ProductCOGSRecord, "t1"))

    """
    tenant_id = require_tenant(tenant_id)

    column = getattr(model, "tenant_id", None)
    if column is None:
        tenant_unscoped_query_total.labels(error_type="missing_column").inc()
        logger.error(f"Model {model!r} has no tenant_id column")
        raise TenantScopeError(f"{getattr(model, '__name__', model)} is not tenant-scoped")

    return stmt.where(column == tenant_id)


def page_bounds(page: int | None, limit: int | None) -> tuple[int, int, int]:
    """Clamp listing pagination to settings.

    Returns:
        (page, limit, offset) with page >= 1 and 1 <= limit <= pl_page_size_max

    """
    settings = get_settings()
    page = max(1, page or 1)
    limit = settings.pl_page_size_default if limit is None else limit
    limit = min(max(1, limit), settings.pl_page_size_max)
    return page, limit, (page - 1) * limit


def upsert_insert(db: Session, model: Any) -> Any:
    """Dialect-specific INSERT supporting ON CONFLICT for the bound database.

    Returns a PostgreSQL or SQLite ``insert(model)`` construct; both expose
    ``on_conflict_do_update`` and ``on_conflict_do_nothing``.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Upsert is not supported for dialect {dialect!r}")
