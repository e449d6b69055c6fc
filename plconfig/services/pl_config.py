"""P&L configuration service.

Orchestrates the repositories, the calculator and the audit trail:
- Previews: load config -> fill defaults -> calculate contribution margin
- Mutations: repository write -> exactly one audit entry per logical change

Audit writes are fire-and-forget. A failed audit write is logged and counted
but never undoes or fails the config change it describes.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from plconfig.core.logging import tenant_context
from plconfig.core.metrics import pl_audit_failures_total, pl_formula_previews_total
from plconfig.domain.finance.cogs import resolve_cogs_cents
from plconfig.domain.finance.defaults import DefaultsProvider, get_defaults
from plconfig.domain.finance.formula import calculate_formula_preview
from plconfig.domain.finance.merge import (
    COGS_FIELDS,
    PL_FORMULA_FIELDS,
    VARIABLE_COST_SECTIONS,
    MergeStrategy,
    changed_fields,
)
from plconfig.domain.finance.types import (
    CategoryOrder,
    COGSConfig,
    COGSConfigUpdate,
    COGSImportSource,
    COGSSettings,
    ExpenseCategory,
    ExpenseCategoryCreate,
    ExpenseCategoryUpdate,
    FormulaPreviewInput,
    FormulaPreviewResult,
    PLConfigAction,
    PLConfigType,
    PLFormulaConfig,
    PLFormulaConfigUpdate,
    PLFormulaSettings,
    ProductCOGS,
    ProductCOGSBulkItem,
    ProductCOGSBulkUpdate,
    ProductCOGSUpdate,
    VariableCostConfig,
    VariableCostConfigUpdate,
    VariableCostSections,
)
from plconfig.services import config_repository, expense_categories, product_cogs
from plconfig.services.audit_log import AuditContext, record_config_change

logger = logging.getLogger(__name__)

_PRODUCT_COGS_FIELDS = ("sku", "cogs_cents", "source")
_CATEGORY_FIELDS = ("name", "expense_type", "is_active", "display_order")


def _audit(
    db: Session,
    tenant_id: str,
    config_type: PLConfigType,
    action: PLConfigAction,
    ctx: AuditContext,
    *,
    fields: Iterable[str] | None = None,
    old_value: Any = None,
    new_value: Any = None,
) -> None:
    """Record one audit entry; storage failures are logged, never raised."""
    field_changed = ",".join(fields) if fields else None
    try:
        record_config_change(
            db,
            tenant_id,
            config_type,
            action,
            ctx.actor_id,
            field_changed=field_changed,
            old_value=old_value,
            new_value=new_value,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
        )
    except SQLAlchemyError as e:
        db.rollback()
        pl_audit_failures_total.labels(config_type=config_type).inc()
        logger.error(
            f"Audit write failed for {config_type} {action} (tenant {tenant_id}): {e}",
            exc_info=True,
        )


# =============================================================================
# Effective configs and previews
# =============================================================================


def load_effective_variable_costs(
    db: Session, tenant_id: str, defaults: DefaultsProvider | None = None
) -> VariableCostSections:
    """Stored variable cost config, or the defaults when the tenant has none."""
    stored = config_repository.get_variable_cost_config(db, tenant_id)
    if stored is not None:
        return stored
    return (defaults or get_defaults()).variable_costs()


def load_effective_cogs_config(
    db: Session, tenant_id: str, defaults: DefaultsProvider | None = None
) -> COGSSettings:
    """Stored COGS config, or the defaults when the tenant has none."""
    stored = config_repository.get_cogs_config(db, tenant_id)
    if stored is not None:
        return stored
    return (defaults or get_defaults()).cogs()


def load_effective_pl_formula(
    db: Session, tenant_id: str, defaults: DefaultsProvider | None = None
) -> PLFormulaSettings:
    """Stored P&L formula config, or the defaults when the tenant has none."""
    stored = config_repository.get_pl_formula_config(db, tenant_id)
    if stored is not None:
        return stored
    return (defaults or get_defaults()).pl_formula()


def preview_formula(
    db: Session,
    tenant_id: str,
    inp: FormulaPreviewInput,
    defaults: DefaultsProvider | None = None,
) -> FormulaPreviewResult:
    """Contribution-margin breakdown of one order under the tenant's config."""
    with tenant_context(tenant_id):
        config = load_effective_variable_costs(db, tenant_id, defaults)
        pl_formula_previews_total.labels(source="preview_formula").inc()
        return calculate_formula_preview(inp, config, defaults)


def preview_order_margin(
    db: Session,
    tenant_id: str,
    order_total: float,
    item_count: int,
    cogs_cents: int | None = None,
    defaults: DefaultsProvider | None = None,
) -> FormulaPreviewResult | None:
    """Contribution margin of one order, resolving unknown COGS first.

    Args:
        db: Database session
        tenant_id: Tenant ID
        order_total: Order total in dollars
        item_count: Number of items
        cogs_cents: Known COGS, or None to apply the tenant's fallback behavior
        defaults: Defaults provider

    Returns:
        Breakdown, or None when COGS is unknown and the tenant's fallback is
        ``skip_pnl`` (the order is excluded from P&L figures)

    """
    with tenant_context(tenant_id):
        cogs_settings = load_effective_cogs_config(db, tenant_id, defaults)
        resolved = resolve_cogs_cents(cogs_cents, order_total, cogs_settings)
        if resolved is None:
            logger.info(f"Order excluded from P&L: unknown COGS, tenant {tenant_id} uses skip_pnl")
            return None

        config = load_effective_variable_costs(db, tenant_id, defaults)
        pl_formula_previews_total.labels(source="order_margin").inc()
        inp = FormulaPreviewInput(order_total=order_total, item_count=item_count, cogs_cents=resolved)
        return calculate_formula_preview(inp, config, defaults)


# =============================================================================
# Per-tenant configs
# =============================================================================


def save_variable_cost_config(
    db: Session,
    tenant_id: str,
    data: VariableCostConfigUpdate,
    ctx: AuditContext,
    *,
    merge_strategy: MergeStrategy | str | None = None,
    expected_version: int | None = None,
    defaults: DefaultsProvider | None = None,
    validate: bool | None = None,
) -> VariableCostConfig:
    """Upsert the variable cost config and audit it.

    Raises:
        ConfigValidationError: If the merged config is inconsistent
        ConfigConflictError: If expected_version does not match

    """
    with tenant_context(tenant_id):
        old = config_repository.get_variable_cost_config(db, tenant_id)
        new = config_repository.upsert_variable_cost_config(
            db,
            tenant_id,
            data,
            ctx.actor_id,
            merge_strategy=merge_strategy,
            expected_version=expected_version,
            defaults=defaults,
            validate=validate,
        )
        _audit(
            db,
            tenant_id,
            "variable_costs",
            "create" if old is None else "update",
            ctx,
            fields=changed_fields(old, new, VARIABLE_COST_SECTIONS),
            old_value=old,
            new_value=new,
        )
        return new


def reset_variable_cost_config(db: Session, tenant_id: str, ctx: AuditContext) -> bool:
    """Revert the variable cost config to defaults. Returns True if a row was removed."""
    with tenant_context(tenant_id):
        old = config_repository.get_variable_cost_config(db, tenant_id)
        deleted = config_repository.reset_variable_cost_config(db, tenant_id)
        if deleted:
            _audit(db, tenant_id, "variable_costs", "delete", ctx, old_value=old)
        return deleted


def save_cogs_config(
    db: Session,
    tenant_id: str,
    data: COGSConfigUpdate,
    ctx: AuditContext,
    *,
    merge_strategy: MergeStrategy | str | None = None,
    expected_version: int | None = None,
    defaults: DefaultsProvider | None = None,
    validate: bool | None = None,
) -> COGSConfig:
    """Upsert the COGS source config and audit it."""
    with tenant_context(tenant_id):
        old = config_repository.get_cogs_config(db, tenant_id)
        new = config_repository.upsert_cogs_config(
            db,
            tenant_id,
            data,
            ctx.actor_id,
            merge_strategy=merge_strategy,
            expected_version=expected_version,
            defaults=defaults,
            validate=validate,
        )
        _audit(
            db,
            tenant_id,
            "cogs_source",
            "create" if old is None else "update",
            ctx,
            fields=changed_fields(old, new, COGS_FIELDS),
            old_value=old,
            new_value=new,
        )
        return new


def reset_cogs_config(db: Session, tenant_id: str, ctx: AuditContext) -> bool:
    with tenant_context(tenant_id):
        old = config_repository.get_cogs_config(db, tenant_id)
        deleted = config_repository.reset_cogs_config(db, tenant_id)
        if deleted:
            _audit(db, tenant_id, "cogs_source", "delete", ctx, old_value=old)
        return deleted


def record_cogs_import(
    db: Session, tenant_id: str, import_source: COGSImportSource, ctx: AuditContext
) -> bool:
    """Stamp a completed internal COGS import and audit it.

    Returns:
        False when the tenant has no COGS config (nothing stamped or audited)

    """
    with tenant_context(tenant_id):
        stamped = config_repository.mark_cogs_imported(db, tenant_id, import_source)
        if stamped:
            _audit(
                db,
                tenant_id,
                "cogs_source",
                "import",
                ctx,
                fields=["last_import_at", "import_source"],
                new_value={"importSource": import_source},
            )
        return stamped


def save_pl_formula_config(
    db: Session,
    tenant_id: str,
    data: PLFormulaConfigUpdate,
    ctx: AuditContext,
    *,
    merge_strategy: MergeStrategy | str | None = None,
    expected_version: int | None = None,
    defaults: DefaultsProvider | None = None,
    validate: bool | None = None,
) -> PLFormulaConfig:
    """Upsert the P&L formula config and audit it."""
    with tenant_context(tenant_id):
        old = config_repository.get_pl_formula_config(db, tenant_id)
        new = config_repository.upsert_pl_formula_config(
            db,
            tenant_id,
            data,
            ctx.actor_id,
            merge_strategy=merge_strategy,
            expected_version=expected_version,
            defaults=defaults,
            validate=validate,
        )
        _audit(
            db,
            tenant_id,
            "formula",
            "create" if old is None else "update",
            ctx,
            fields=changed_fields(old, new, PL_FORMULA_FIELDS),
            old_value=old,
            new_value=new,
        )
        return new


def reset_pl_formula_config(db: Session, tenant_id: str, ctx: AuditContext) -> bool:
    with tenant_context(tenant_id):
        old = config_repository.get_pl_formula_config(db, tenant_id)
        deleted = config_repository.reset_pl_formula_config(db, tenant_id)
        if deleted:
            _audit(db, tenant_id, "formula", "delete", ctx, old_value=old)
        return deleted


# =============================================================================
# Product COGS
# =============================================================================


def set_product_cogs(
    db: Session,
    tenant_id: str,
    product_id: str,
    data: ProductCOGSUpdate,
    ctx: AuditContext,
    *,
    variant_id: str | None = None,
    sku: str | None = None,
    validate: bool | None = None,
) -> ProductCOGS:
    """Upsert COGS of one product or variant and audit it."""
    with tenant_context(tenant_id):
        old = product_cogs.get_product_cogs_by_id(db, tenant_id, product_id, variant_id)
        new = product_cogs.upsert_product_cogs(
            db,
            tenant_id,
            product_id,
            data,
            ctx.actor_id,
            variant_id=variant_id,
            sku=sku,
            validate=validate,
        )
        _audit(
            db,
            tenant_id,
            "product_cogs",
            "create" if old is None else "update",
            ctx,
            fields=changed_fields(old, new, _PRODUCT_COGS_FIELDS),
            old_value=old,
            new_value=new,
        )
        return new


def bulk_set_product_cogs(
    db: Session,
    tenant_id: str,
    data: ProductCOGSBulkUpdate,
    ctx: AuditContext,
    *,
    validate: bool | None = None,
) -> int:
    """Bulk upsert product COGS and record a single bulk_update entry.

    Rows committed before a mid-batch failure are still audited before the
    error propagates.

    Returns:
        Number of rows written

    """
    with tenant_context(tenant_id):
        written: list[ProductCOGSBulkItem] = []
        try:
            for item in product_cogs.iter_upsert_product_cogs(
                db, tenant_id, data, ctx.actor_id, validate=validate
            ):
                written.append(item)
        finally:
            if written:
                _audit(
                    db,
                    tenant_id,
                    "product_cogs",
                    "bulk_update",
                    ctx,
                    new_value={
                        "count": len(written),
                        "source": data.source or "manual",
                        "products": written,
                    },
                )
        return len(written)


def remove_product_cogs(
    db: Session,
    tenant_id: str,
    product_id: str,
    ctx: AuditContext,
    *,
    variant_id: str | None = None,
) -> bool:
    with tenant_context(tenant_id):
        old = product_cogs.get_product_cogs_by_id(db, tenant_id, product_id, variant_id)
        deleted = product_cogs.delete_product_cogs(db, tenant_id, product_id, variant_id)
        if deleted:
            _audit(db, tenant_id, "product_cogs", "delete", ctx, old_value=old)
        return deleted


# =============================================================================
# Expense Categories
# =============================================================================


def add_expense_category(
    db: Session,
    tenant_id: str,
    data: ExpenseCategoryCreate,
    ctx: AuditContext,
    *,
    defaults: DefaultsProvider | None = None,
) -> ExpenseCategory:
    """Create a custom category and audit it.

    Raises:
        ConfigConflictError: If category_id is reserved or already exists

    """
    with tenant_context(tenant_id):
        new = expense_categories.create_expense_category(db, tenant_id, data, defaults=defaults)
        _audit(db, tenant_id, "categories", "create", ctx, new_value=new)
        return new


def edit_expense_category(
    db: Session,
    tenant_id: str,
    category_id: str,
    data: ExpenseCategoryUpdate,
    ctx: AuditContext,
) -> ExpenseCategory | None:
    """Patch a category and audit it. Returns None for unknown categories."""
    with tenant_context(tenant_id):
        old = expense_categories.get_expense_category(db, tenant_id, category_id)
        new = expense_categories.update_expense_category(db, tenant_id, category_id, data)
        if new is not None:
            _audit(
                db,
                tenant_id,
                "categories",
                "update",
                ctx,
                fields=changed_fields(old, new, _CATEGORY_FIELDS),
                old_value=old,
                new_value=new,
            )
        return new


def remove_expense_category(
    db: Session, tenant_id: str, category_id: str, ctx: AuditContext
) -> bool:
    """Delete a custom category. System categories are kept and False is returned."""
    with tenant_context(tenant_id):
        old = expense_categories.get_expense_category(db, tenant_id, category_id)
        deleted = expense_categories.delete_expense_category(db, tenant_id, category_id)
        if deleted:
            _audit(db, tenant_id, "categories", "delete", ctx, old_value=old)
        return deleted


def reorder_categories(
    db: Session, tenant_id: str, orders: list[CategoryOrder], ctx: AuditContext
) -> int:
    with tenant_context(tenant_id):
        before = {
            c.category_id: c.display_order
            for c in expense_categories.list_expense_categories(db, tenant_id)
        }
        updated = expense_categories.reorder_expense_categories(db, tenant_id, orders)
        if updated:
            _audit(
                db,
                tenant_id,
                "categories",
                "update",
                ctx,
                fields=["display_order"],
                old_value=[
                    {"categoryId": o.category_id, "displayOrder": before[o.category_id]}
                    for o in orders
                    if o.category_id in before
                ],
                new_value=orders,
            )
        return updated


def seed_categories(
    db: Session,
    tenant_id: str,
    ctx: AuditContext,
    *,
    defaults: DefaultsProvider | None = None,
) -> int:
    """Install the default taxonomy; audited only when something was inserted."""
    with tenant_context(tenant_id):
        inserted = expense_categories.seed_default_expense_categories(
            db, tenant_id, defaults=defaults
        )
        if inserted:
            _audit(
                db,
                tenant_id,
                "categories",
                "create",
                ctx,
                new_value={"seeded": inserted},
            )
        return inserted


__all__ = [
    "AuditContext",
    "load_effective_variable_costs",
    "load_effective_cogs_config",
    "load_effective_pl_formula",
    "preview_formula",
    "preview_order_margin",
    "save_variable_cost_config",
    "reset_variable_cost_config",
    "save_cogs_config",
    "reset_cogs_config",
    "record_cogs_import",
    "save_pl_formula_config",
    "reset_pl_formula_config",
    "set_product_cogs",
    "bulk_set_product_cogs",
    "remove_product_cogs",
    "add_expense_category",
    "edit_expense_category",
    "remove_expense_category",
    "reorder_categories",
    "seed_categories",
]
