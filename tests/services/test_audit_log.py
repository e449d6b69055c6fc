"""Tests for the P&L config audit trail."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, timezone

from sqlalchemy import update
from sqlalchemy.orm import Session

from plconfig.db.models import PLConfigAuditLogRecord
from plconfig.domain.finance.defaults import get_defaults
from plconfig.domain.finance.types import PLConfigAuditLogFilters
from plconfig.services.audit_log import query_audit_log, record_config_change

TENANT = "tenant_a"


def _entry_at(db: Session, changed_at: datetime, tenant_id: str = TENANT, **kwargs) -> int:
    params = {"config_type": "variable_costs", "action": "update", "changed_by": "user_1"}
    params.update(kwargs)
    entry = record_config_change(db, tenant_id, **params)
    db.execute(
        update(PLConfigAuditLogRecord)
        .where(PLConfigAuditLogRecord.id == entry.id)
        .values(changed_at=changed_at)
    )
    db.commit()
    return entry.id


def test_record_stores_camel_case_snapshots(db: Session):
    """Test model snapshots are stored as camelCase JSON."""
    old = get_defaults().shipping()
    new = old.model_copy(update={"tracking_method": "flat_rate", "flat_rate_cents": 500})

    entry = record_config_change(
        db,
        TENANT,
        "variable_costs",
        "update",
        "user_1",
        field_changed="shipping",
        old_value=old,
        new_value=new,
        ip_address="198.51.100.1",
        user_agent="curl/8",
    )

    assert entry.id is not None
    assert entry.old_value == {
        "trackingMethod": "actual_expense",
        "estimatedPercent": None,
        "flatRateCents": None,
    }
    assert entry.new_value["flatRateCents"] == 500
    assert entry.field_changed == "shipping"
    assert entry.ip_address == "198.51.100.1"
    assert entry.changed_at is not None


def test_query_newest_first_and_tenant_scoped(db: Session):
    """Test entries come back newest first and only for the tenant."""
    base = datetime(2026, 3, 1, 12, 0)
    first = _entry_at(db, base)
    second = _entry_at(db, base + timedelta(hours=1))
    _entry_at(db, base + timedelta(hours=2), tenant_id="tenant_b")

    page = query_audit_log(db, TENANT)

    assert [e.id for e in page.rows] == [second, first]
    assert page.total_count == 2


def test_query_filters_by_type_and_actor(db: Session):
    """Test config_type and changed_by filters."""
    base = datetime(2026, 3, 1, 12, 0)
    _entry_at(db, base, config_type="formula")
    _entry_at(db, base, config_type="categories", changed_by="user_2")
    _entry_at(db, base, config_type="categories", changed_by="user_1")

    by_type = query_audit_log(db, TENANT, PLConfigAuditLogFilters(config_type="categories"))
    assert by_type.total_count == 2

    by_both = query_audit_log(
        db, TENANT, PLConfigAuditLogFilters(config_type="categories", changed_by="user_2")
    )
    assert by_both.total_count == 1
    assert by_both.rows[0].changed_by == "user_2"


def test_date_bounds_cover_whole_days(db: Session):
    """Test a date end bound includes entries late on that day."""
    _entry_at(db, datetime(2026, 3, 1, 23, 59, 59))
    _entry_at(db, datetime(2026, 3, 2, 0, 0, 1))
    _entry_at(db, datetime(2026, 2, 28, 23, 0))

    page = query_audit_log(
        db, TENANT, PLConfigAuditLogFilters(start_date=date(2026, 3, 1), end_date=date(2026, 3, 1))
    )

    assert page.total_count == 1
    assert page.rows[0].changed_at == datetime(2026, 3, 1, 23, 59, 59)


def test_json_date_strings_cover_whole_days(db: Session):
    """Test camelCase JSON filters with bare dates include the whole day."""
    _entry_at(db, datetime(2026, 3, 1, 15, 0))
    _entry_at(db, datetime(2026, 3, 2, 9, 0))

    filters = PLConfigAuditLogFilters.model_validate(
        {"startDate": "2026-03-01", "endDate": "2026-03-01"}
    )
    page = query_audit_log(db, TENANT, filters)

    assert filters.end_date == date(2026, 3, 1)
    assert page.total_count == 1
    assert page.rows[0].changed_at == datetime(2026, 3, 1, 15, 0)


def test_json_datetime_strings_stay_exact(db: Session):
    """Test full timestamps in JSON filters are still exact bounds."""
    _entry_at(db, datetime(2026, 3, 1, 15, 0))

    filters = PLConfigAuditLogFilters.model_validate({"endDate": "2026-03-01T12:00:00"})

    assert filters.end_date == datetime(2026, 3, 1, 12, 0)
    assert query_audit_log(db, TENANT, filters).total_count == 0


def test_datetime_bounds_are_inclusive(db: Session):
    """Test datetime bounds include exact matches."""
    noon = datetime(2026, 3, 1, 12, 0)
    _entry_at(db, noon)
    _entry_at(db, noon + timedelta(minutes=1))

    page = query_audit_log(db, TENANT, PLConfigAuditLogFilters(start_date=noon, end_date=noon))

    assert page.total_count == 1


def test_aware_datetimes_converted_to_utc(db: Session):
    """Test an aware bound is compared in UTC."""
    _entry_at(db, datetime(2026, 3, 1, 12, 0))

    plus_two = timezone(timedelta(hours=2))
    hit = query_audit_log(
        db,
        TENANT,
        PLConfigAuditLogFilters(start_date=datetime(2026, 3, 1, 14, 0, tzinfo=plus_two)),
    )
    miss = query_audit_log(
        db,
        TENANT,
        PLConfigAuditLogFilters(start_date=datetime(2026, 3, 1, 12, 1, tzinfo=UTC)),
    )

    assert hit.total_count == 1
    assert miss.total_count == 0


def test_pagination(db: Session, monkeypatch):
    """Test page/limit and clamping to PL_PAGE_SIZE_MAX."""
    monkeypatch.setenv("PL_PAGE_SIZE_MAX", "3")
    base = datetime(2026, 3, 1)
    ids = [_entry_at(db, base + timedelta(minutes=i)) for i in range(5)]

    first = query_audit_log(db, TENANT, PLConfigAuditLogFilters(page=1, limit=100))
    assert first.limit == 3
    assert [e.id for e in first.rows] == ids[::-1][:3]

    second = query_audit_log(db, TENANT, PLConfigAuditLogFilters(page=2, limit=100))
    assert [e.id for e in second.rows] == ids[::-1][3:]
    assert second.total_count == 5
    assert second.total_pages == 2
