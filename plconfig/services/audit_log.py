"""P&L configuration audit trail.

Entries are append-only: they are written once and never updated or
deleted. Old and new values are stored as camelCase JSON snapshots.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from plconfig.core.metrics import pl_audit_entries_total
from plconfig.db.models import PLConfigAuditLogRecord, utcnow
from plconfig.db.utils import page_bounds, require_tenant, scoped
from plconfig.domain.finance.types import (
    Page,
    PLConfigAction,
    PLConfigAuditLog,
    PLConfigAuditLogFilters,
    PLConfigType,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditContext:
    """Who made a change and from where."""

    actor_id: str
    ip_address: str | None = None
    user_agent: str | None = None


def _jsonable(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def _to_audit_entry(row: PLConfigAuditLogRecord) -> PLConfigAuditLog:
    return PLConfigAuditLog(
        id=row.id,
        tenant_id=row.tenant_id,
        config_type=row.config_type,
        action=row.action,
        field_changed=row.field_changed,
        old_value=row.old_value,
        new_value=row.new_value,
        changed_by=row.changed_by,
        changed_at=row.changed_at,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
    )


def record_config_change(
    db: Session,
    tenant_id: str,
    config_type: PLConfigType,
    action: PLConfigAction,
    changed_by: str,
    *,
    field_changed: str | None = None,
    old_value: Any = None,
    new_value: Any = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> PLConfigAuditLog:
    """Append one audit entry and commit it.

    Args:
        db: Database session
        tenant_id: Tenant ID
        config_type: Which config changed
        action: create, update, delete, bulk_update or import
        changed_by: Actor ID
        field_changed: Comma-separated names of the changed top-level fields
        old_value: Snapshot before the change (pydantic models are dumped)
        new_value: Snapshot after the change
        ip_address: Client IP, if known
        user_agent: Client user agent, if known

    Returns:
        Stored entry

    """
    tenant_id = require_tenant(tenant_id)
    row = PLConfigAuditLogRecord(
        tenant_id=tenant_id,
        config_type=config_type,
        action=action,
        field_changed=field_changed,
        old_value=_jsonable(old_value),
        new_value=_jsonable(new_value),
        changed_by=changed_by,
        changed_at=utcnow(),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(row)
    db.commit()

    pl_audit_entries_total.labels(config_type=config_type, action=action).inc()
    logger.debug(
        f"Audit: {config_type} {action} by {changed_by} for tenant {tenant_id}",
        extra={"field_changed": field_changed},
    )
    return _to_audit_entry(row)


def query_audit_log(
    db: Session, tenant_id: str, filters: PLConfigAuditLogFilters | None = None
) -> Page[PLConfigAuditLog]:
    """Query a tenant's audit entries, newest first.

    Date bounds are inclusive. A ``date`` (rather than a ``datetime``) covers
    the whole calendar day. Aware datetimes are converted to UTC.

    Args:
        db: Database session
        tenant_id: Tenant ID
        filters: config_type, changed_by, start_date/end_date, page, limit

    Returns:
        Page of entries with the total number of matches

    """
    tenant_id = require_tenant(tenant_id)
    filters = filters or PLConfigAuditLogFilters()
    page, limit, offset = page_bounds(filters.page, filters.limit)

    conditions = []
    if filters.config_type:
        conditions.append(PLConfigAuditLogRecord.config_type == filters.config_type)
    if filters.changed_by:
        conditions.append(PLConfigAuditLogRecord.changed_by == filters.changed_by)

    start = filters.start_date
    if isinstance(start, datetime):
        conditions.append(PLConfigAuditLogRecord.changed_at >= _naive_utc(start))
    elif isinstance(start, date):
        conditions.append(PLConfigAuditLogRecord.changed_at >= datetime.combine(start, time.min))

    end = filters.end_date
    if isinstance(end, datetime):
        conditions.append(PLConfigAuditLogRecord.changed_at <= _naive_utc(end))
    elif isinstance(end, date):
        next_day = datetime.combine(end + timedelta(days=1), time.min)
        conditions.append(PLConfigAuditLogRecord.changed_at < next_day)

    rows_stmt = (
        scoped(select(PLConfigAuditLogRecord), PLConfigAuditLogRecord, tenant_id)
        .where(*conditions)
        .order_by(PLConfigAuditLogRecord.changed_at.desc(), PLConfigAuditLogRecord.id.desc())
        .limit(limit)
        .offset(offset)
    )
    count_stmt = scoped(
        select(func.count()).select_from(PLConfigAuditLogRecord),
        PLConfigAuditLogRecord,
        tenant_id,
    ).where(*conditions)

    rows = [_to_audit_entry(r) for r in db.scalars(rows_stmt)]
    total = db.scalar(count_stmt) or 0
    return Page[PLConfigAuditLog](rows=rows, total_count=total, page=page, limit=limit)


__all__ = ["AuditContext", "record_config_change", "query_audit_log"]
