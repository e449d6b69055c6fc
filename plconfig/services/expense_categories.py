"""Expense category repository.

Handles:
- Listing a tenant's categories (optionally by expense type / active only)
- Custom category create, update, delete and reorder
- Idempotent seeding of the default taxonomy

System categories come from the default taxonomy. They can be renamed,
deactivated and reordered but never deleted.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from plconfig.core.config import get_settings
from plconfig.core.errors import ConfigConflictError
from plconfig.core.metrics import pl_config_conflicts_total, pl_config_writes_total
from plconfig.db.models import ExpenseCategoryRecord, utcnow
from plconfig.db.utils import require_tenant, scoped, upsert_insert
from plconfig.domain.finance.defaults import DefaultsProvider, get_defaults
from plconfig.domain.finance.types import (
    CategoryOrder,
    ExpenseCategory,
    ExpenseCategoryCreate,
    ExpenseCategoryUpdate,
    ExpenseType,
)

logger = logging.getLogger(__name__)


def _to_expense_category(row: ExpenseCategoryRecord) -> ExpenseCategory:
    return ExpenseCategory(
        id=row.id,
        tenant_id=row.tenant_id,
        category_id=row.category_id,
        name=row.name,
        expense_type=row.expense_type,
        is_system=row.is_system,
        is_active=row.is_active,
        display_order=row.display_order,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def list_expense_categories(
    db: Session,
    tenant_id: str,
    *,
    expense_type: ExpenseType | None = None,
    active_only: bool = False,
) -> list[ExpenseCategory]:
    """List categories ordered by display_order, then name."""
    tenant_id = require_tenant(tenant_id)
    stmt = scoped(select(ExpenseCategoryRecord), ExpenseCategoryRecord, tenant_id)
    if expense_type:
        stmt = stmt.where(ExpenseCategoryRecord.expense_type == expense_type)
    if active_only:
        stmt = stmt.where(ExpenseCategoryRecord.is_active.is_(True))
    stmt = stmt.order_by(ExpenseCategoryRecord.display_order, ExpenseCategoryRecord.name)
    return [_to_expense_category(r) for r in db.scalars(stmt)]


def get_expense_category(db: Session, tenant_id: str, category_id: str) -> ExpenseCategory | None:
    tenant_id = require_tenant(tenant_id)
    row = db.scalars(
        scoped(select(ExpenseCategoryRecord), ExpenseCategoryRecord, tenant_id).where(
            ExpenseCategoryRecord.category_id == category_id
        )
    ).first()
    return _to_expense_category(row) if row else None


def create_expense_category(
    db: Session,
    tenant_id: str,
    data: ExpenseCategoryCreate,
    *,
    defaults: DefaultsProvider | None = None,
) -> ExpenseCategory:
    """Create a custom (non-system) category.

    Args:
        db: Database session
        tenant_id: Tenant ID
        data: New category; display_order defaults to settings
            ``pl_default_category_order``
        defaults: Defaults provider whose taxonomy ids are reserved

    Returns:
        Created category

    Raises:
        ValueError: If category_id or name is blank
        ConfigConflictError: If category_id is reserved or already exists

    """
    tenant_id = require_tenant(tenant_id)
    defaults = defaults or get_defaults()

    if not data.category_id.strip() or not data.name.strip():
        raise ValueError("category_id and name are required")

    if data.category_id in defaults.reserved_category_ids():
        pl_config_conflicts_total.labels(config_type="categories").inc()
        logger.warning(f"Tenant {tenant_id} tried to create reserved category {data.category_id}")
        raise ConfigConflictError(
            "categories", f"Category id '{data.category_id}' is reserved for default categories"
        )

    if get_expense_category(db, tenant_id, data.category_id) is not None:
        pl_config_conflicts_total.labels(config_type="categories").inc()
        logger.warning(f"Tenant {tenant_id} tried to recreate category {data.category_id}")
        raise ConfigConflictError("categories", f"Category '{data.category_id}' already exists")

    display_order = data.display_order
    if display_order is None:
        display_order = get_settings().pl_default_category_order

    now = utcnow()
    db.add(
        ExpenseCategoryRecord(
            tenant_id=tenant_id,
            category_id=data.category_id,
            name=data.name,
            expense_type=data.expense_type,
            is_system=False,
            is_active=True,
            display_order=display_order,
            created_at=now,
            updated_at=now,
        )
    )
    db.commit()

    pl_config_writes_total.labels(config_type="categories", action="create").inc()
    logger.info(f"Created expense category {data.category_id} for tenant {tenant_id}")
    return get_expense_category(db, tenant_id, data.category_id)


def update_expense_category(
    db: Session, tenant_id: str, category_id: str, data: ExpenseCategoryUpdate
) -> ExpenseCategory | None:
    """Patch the fields set in ``data``.

    Returns:
        Updated category, or None if the tenant has no such category

    """
    tenant_id = require_tenant(tenant_id)
    values = data.model_dump(exclude_unset=True, exclude_none=True)
    if "name" in values and not values["name"].strip():
        raise ValueError("name must not be empty")

    result = db.execute(
        update(ExpenseCategoryRecord)
        .where(
            ExpenseCategoryRecord.tenant_id == tenant_id,
            ExpenseCategoryRecord.category_id == category_id,
        )
        .values(**values, updated_at=utcnow())
    )
    db.commit()

    if result.rowcount == 0:
        return None

    pl_config_writes_total.labels(config_type="categories", action="update").inc()
    logger.info(f"Updated expense category {category_id} for tenant {tenant_id}: {sorted(values)}")
    return get_expense_category(db, tenant_id, category_id)


def delete_expense_category(db: Session, tenant_id: str, category_id: str) -> bool:
    """Delete a custom category.

    System categories are left untouched and reported as not deleted.

    Returns:
        True if a row was deleted

    """
    tenant_id = require_tenant(tenant_id)
    result = db.execute(
        delete(ExpenseCategoryRecord).where(
            ExpenseCategoryRecord.tenant_id == tenant_id,
            ExpenseCategoryRecord.category_id == category_id,
            ExpenseCategoryRecord.is_system.is_(False),
        )
    )
    db.commit()

    if result.rowcount > 0:
        pl_config_writes_total.labels(config_type="categories", action="delete").inc()
        logger.info(f"Deleted expense category {category_id} for tenant {tenant_id}")
        return True

    existing = get_expense_category(db, tenant_id, category_id)
    if existing is not None and existing.is_system:
        logger.warning(f"Refused to delete system category {category_id} for tenant {tenant_id}")
    return False


def reorder_expense_categories(
    db: Session, tenant_id: str, orders: Iterable[CategoryOrder]
) -> int:
    """Rewrite display_order for the listed categories.

    Unknown category ids are skipped.

    Returns:
        Number of categories updated

    """
    tenant_id = require_tenant(tenant_id)
    now = utcnow()
    updated = 0
    for item in orders:
        result = db.execute(
            update(ExpenseCategoryRecord)
            .where(
                ExpenseCategoryRecord.tenant_id == tenant_id,
                ExpenseCategoryRecord.category_id == item.category_id,
            )
            .values(display_order=item.display_order, updated_at=now)
        )
        updated += result.rowcount
    db.commit()

    pl_config_writes_total.labels(config_type="categories", action="update").inc()
    logger.info(f"Reordered {updated} expense categories for tenant {tenant_id}")
    return updated


def seed_default_expense_categories(
    db: Session, tenant_id: str, *, defaults: DefaultsProvider | None = None
) -> int:
    """Install the default taxonomy for a tenant.

    Existing categories (including renamed or reordered defaults) are kept
    as they are, so running this again changes nothing.

    Returns:
        Number of categories inserted

    """
    tenant_id = require_tenant(tenant_id)
    defaults = defaults or get_defaults()
    now = utcnow()

    inserted = 0
    for category in defaults.expense_categories():
        stmt = upsert_insert(db, ExpenseCategoryRecord).values(
            tenant_id=tenant_id,
            **category.model_dump(),
            created_at=now,
            updated_at=now,
        )
        result = db.execute(
            stmt.on_conflict_do_nothing(index_elements=["tenant_id", "category_id"])
        )
        inserted += result.rowcount
    db.commit()

    if inserted:
        pl_config_writes_total.labels(config_type="categories", action="create").inc()
    logger.info(f"Seeded {inserted} default expense categories for tenant {tenant_id}")
    return inserted


__all__ = [
    "list_expense_categories",
    "get_expense_category",
    "create_expense_category",
    "update_expense_category",
    "delete_expense_category",
    "reorder_expense_categories",
    "seed_default_expense_categories",
]
