"""Per-tenant P&L config repository.

Handles:
- Variable cost config (payment processing, fulfillment, shipping, other costs)
- COGS source config, including sync/import bookkeeping
- P&L formula (presentation) config

Each tenant has at most one row per config. A missing row is not an error:
getters return ``None`` and callers fall back to defaults.

Upserts merge a partial update onto a base chosen by ``merge_strategy``
(see ``plconfig.domain.finance.merge``), validate the result, and write it
with an atomic insert-or-update. ``version`` starts at 1 and increments on
every write. Without ``expected_version`` writes are last-write-wins; with it
the write is a compare-and-swap and a mismatch raises ConfigConflictError
(``expected_version=0`` means "no row may exist yet").

The repository does not write audit entries; PLConfigService does.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from plconfig.core.config import get_settings
from plconfig.core.errors import ConfigConflictError, ConfigValidationError
from plconfig.core.metrics import (
    pl_config_conflicts_total,
    pl_config_validation_errors_total,
    pl_config_writes_total,
)
from plconfig.db.models import (
    COGSConfigRecord,
    PLFormulaConfigRecord,
    VariableCostConfigRecord,
    utcnow,
)
from plconfig.db.utils import require_tenant, scoped, upsert_insert
from plconfig.domain.finance.defaults import DefaultsProvider, get_defaults
from plconfig.domain.finance.merge import (
    VARIABLE_COST_SECTIONS,
    MergeStrategy,
    merge_cogs_settings,
    merge_pl_formula,
    merge_variable_costs,
    parse_merge_strategy,
)
from plconfig.domain.finance.types import (
    COGSConfig,
    COGSConfigUpdate,
    COGSImportSource,
    COGSSettings,
    PLFormulaConfig,
    PLFormulaConfigUpdate,
    PLFormulaSettings,
    VariableCostConfig,
    VariableCostConfigUpdate,
    VariableCostSections,
)
from plconfig.domain.finance.validation import (
    ensure_valid_cogs_settings,
    ensure_valid_pl_formula,
    ensure_valid_variable_costs,
)

logger = logging.getLogger(__name__)


def _resolve_strategy(merge_strategy: MergeStrategy | str | None) -> MergeStrategy:
    if merge_strategy is None:
        merge_strategy = get_settings().pl_merge_strategy
    return parse_merge_strategy(merge_strategy)


def _should_validate(validate: bool | None) -> bool:
    return get_settings().pl_validate_on_write if validate is None else validate


def _run_validation(config_type: str, check: Any, value: Any, tenant_id: str) -> None:
    try:
        check(value)
    except ConfigValidationError as e:
        pl_config_validation_errors_total.labels(config_type=config_type).inc()
        logger.warning(
            f"Rejected {config_type} write for tenant {tenant_id}: {e}",
            extra={"problems": e.problems},
        )
        raise


def _conflict(config_type: str, tenant_id: str, message: str) -> ConfigConflictError:
    pl_config_conflicts_total.labels(config_type=config_type).inc()
    logger.warning(f"Version conflict on {config_type} for tenant {tenant_id}: {message}")
    return ConfigConflictError(config_type, message)


def _write_config(
    db: Session,
    model: Any,
    config_type: str,
    tenant_id: str,
    values: dict[str, Any],
    actor_id: str,
    expected_version: int | None,
) -> None:
    """Insert or update the tenant's single row of ``model``.

    Raises:
        ConfigConflictError: If expected_version does not match the stored row

    """
    current_version = db.scalar(scoped(select(model.version), model, tenant_id))
    now = utcnow()

    if expected_version is not None:
        if current_version is None:
            if expected_version != 0:
                raise _conflict(
                    config_type, tenant_id, f"expected version {expected_version}, found no row"
                )
            stmt = upsert_insert(db, model).values(
                tenant_id=tenant_id,
                **values,
                version=1,
                created_at=now,
                updated_at=now,
                updated_by=actor_id,
            )
            result = db.execute(stmt.on_conflict_do_nothing(index_elements=["tenant_id"]))
        else:
            result = db.execute(
                update(model)
                .where(model.tenant_id == tenant_id, model.version == expected_version)
                .values(**values, version=model.version + 1, updated_at=now, updated_by=actor_id)
            )

        if result.rowcount == 0:
            db.rollback()
            raise _conflict(
                config_type,
                tenant_id,
                f"expected version {expected_version}, found {current_version or 'an existing row'}",
            )
    else:
        stmt = upsert_insert(db, model).values(
            tenant_id=tenant_id,
            **values,
            version=1,
            created_at=now,
            updated_at=now,
            updated_by=actor_id,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["tenant_id"],
            set_=dict(
                **values,
                version=model.__table__.c.version + 1,
                updated_at=now,
                updated_by=actor_id,
            ),
        )
        db.execute(stmt)

    db.commit()

    action = "create" if current_version is None else "update"
    pl_config_writes_total.labels(config_type=config_type, action=action).inc()
    logger.info(f"Saved {config_type} config for tenant {tenant_id} ({action}) by {actor_id}")


def _delete_config(db: Session, model: Any, config_type: str, tenant_id: str) -> bool:
    tenant_id = require_tenant(tenant_id)
    result = db.execute(delete(model).where(model.tenant_id == tenant_id))
    db.commit()

    deleted = result.rowcount > 0
    if deleted:
        pl_config_writes_total.labels(config_type=config_type, action="delete").inc()
        logger.info(f"Reset {config_type} config for tenant {tenant_id} to defaults")
    return deleted


# =============================================================================
# Variable Cost Config
# =============================================================================


def _variable_cost_values(sections: VariableCostSections) -> dict[str, Any]:
    pp = sections.payment_processing
    ff = sections.fulfillment
    sh = sections.shipping
    return {
        "primary_processor": pp.primary_processor,
        "payment_percentage_rate": pp.percentage_rate,
        "payment_fixed_fee_cents": pp.fixed_fee_cents,
        "additional_processors": [p.model_dump() for p in pp.additional_processors],
        "fulfillment_cost_model": ff.cost_model,
        "pick_pack_fee_cents": ff.pick_pack_fee_cents,
        "pick_pack_per_item_cents": ff.pick_pack_per_item_cents,
        "packaging_cost_cents": ff.packaging_cost_cents,
        "handling_fee_cents": ff.handling_fee_cents,
        "weight_tiers": [t.model_dump() for t in ff.weight_tiers],
        "shipping_tracking_method": sh.tracking_method,
        "shipping_estimated_percent": sh.estimated_percent,
        "shipping_flat_rate_cents": sh.flat_rate_cents,
        "other_variable_costs": [c.model_dump() for c in sections.other_variable_costs or []],
    }


def _to_variable_cost_config(row: VariableCostConfigRecord) -> VariableCostConfig:
    return VariableCostConfig.model_validate(
        {
            "id": row.id,
            "tenant_id": row.tenant_id,
            "payment_processing": {
                "primary_processor": row.primary_processor,
                "percentage_rate": row.payment_percentage_rate,
                "fixed_fee_cents": row.payment_fixed_fee_cents,
                "additional_processors": row.additional_processors or [],
            },
            "fulfillment": {
                "cost_model": row.fulfillment_cost_model,
                "pick_pack_fee_cents": row.pick_pack_fee_cents,
                "pick_pack_per_item_cents": row.pick_pack_per_item_cents,
                "packaging_cost_cents": row.packaging_cost_cents,
                "handling_fee_cents": row.handling_fee_cents,
                "weight_tiers": row.weight_tiers or [],
            },
            "shipping": {
                "tracking_method": row.shipping_tracking_method,
                "estimated_percent": row.shipping_estimated_percent,
                "flat_rate_cents": row.shipping_flat_rate_cents,
            },
            "other_variable_costs": row.other_variable_costs or [],
            "version": row.version,
            "updated_at": row.updated_at,
            "updated_by": row.updated_by,
        }
    )


def get_variable_cost_config(db: Session, tenant_id: str) -> VariableCostConfig | None:
    """Get stored variable cost config, or None when the tenant has none."""
    tenant_id = require_tenant(tenant_id)
    row = db.scalars(
        scoped(select(VariableCostConfigRecord), VariableCostConfigRecord, tenant_id)
    ).first()
    return _to_variable_cost_config(row) if row else None


def upsert_variable_cost_config(
    db: Session,
    tenant_id: str,
    data: VariableCostConfigUpdate,
    actor_id: str,
    *,
    merge_strategy: MergeStrategy | str | None = None,
    expected_version: int | None = None,
    defaults: DefaultsProvider | None = None,
    validate: bool | None = None,
) -> VariableCostConfig:
    """Create or update the tenant's variable cost config.

    Args:
        db: Database session
        tenant_id: Tenant ID
        data: Partial update; omitted sections come from the merge base
        actor_id: User performing the change (stored as updated_by)
        merge_strategy: against_defaults or against_current (settings when None)
        expected_version: Version the caller last read (None = last write wins)
        defaults: Defaults provider (built-in defaults when None)
        validate: Validate before writing (settings when None)

    Returns:
        Stored config after the write

    Raises:
        ConfigValidationError: If the merged config is inconsistent
        ConfigConflictError: If expected_version does not match

    """
    tenant_id = require_tenant(tenant_id)
    defaults = defaults or get_defaults()

    base = defaults.variable_costs()
    if _resolve_strategy(merge_strategy) is MergeStrategy.AGAINST_CURRENT:
        current = get_variable_cost_config(db, tenant_id)
        if current is not None:
            base = VariableCostSections.model_validate(
                current.model_dump(include=set(VARIABLE_COST_SECTIONS))
            )

    merged = merge_variable_costs(base, data)
    if _should_validate(validate):
        _run_validation("variable_costs", ensure_valid_variable_costs, merged, tenant_id)

    _write_config(
        db,
        VariableCostConfigRecord,
        "variable_costs",
        tenant_id,
        _variable_cost_values(merged),
        actor_id,
        expected_version,
    )
    return get_variable_cost_config(db, tenant_id)


def reset_variable_cost_config(db: Session, tenant_id: str) -> bool:
    """Delete the tenant's variable cost config so reads fall back to defaults.

    Returns:
        True if a row was deleted

    """
    return _delete_config(db, VariableCostConfigRecord, "variable_costs", tenant_id)


# =============================================================================
# COGS Config
# =============================================================================


_COGS_SETTING_COLUMNS = tuple(COGSSettings.model_fields)


def _to_cogs_config(row: COGSConfigRecord) -> COGSConfig:
    return COGSConfig(
        id=row.id,
        tenant_id=row.tenant_id,
        **{name: getattr(row, name) for name in _COGS_SETTING_COLUMNS},
        shopify_last_sync_at=row.shopify_last_sync_at,
        last_import_at=row.last_import_at,
        import_source=row.import_source,
        version=row.version,
        updated_at=row.updated_at,
        updated_by=row.updated_by,
    )


def get_cogs_config(db: Session, tenant_id: str) -> COGSConfig | None:
    """Get stored COGS config, or None when the tenant has none."""
    tenant_id = require_tenant(tenant_id)
    row = db.scalars(scoped(select(COGSConfigRecord), COGSConfigRecord, tenant_id)).first()
    return _to_cogs_config(row) if row else None


def upsert_cogs_config(
    db: Session,
    tenant_id: str,
    data: COGSConfigUpdate,
    actor_id: str,
    *,
    merge_strategy: MergeStrategy | str | None = None,
    expected_version: int | None = None,
    defaults: DefaultsProvider | None = None,
    validate: bool | None = None,
) -> COGSConfig:
    """Create or update the tenant's COGS source settings.

    Sync and import bookkeeping (``shopify_last_sync_at``, ``last_import_at``,
    ``import_source``) is not touched; see mark_cogs_synced/mark_cogs_imported.

    Raises:
        ConfigValidationError: If the merged settings are inconsistent
        ConfigConflictError: If expected_version does not match

    """
    tenant_id = require_tenant(tenant_id)
    defaults = defaults or get_defaults()

    base = defaults.cogs()
    if _resolve_strategy(merge_strategy) is MergeStrategy.AGAINST_CURRENT:
        current = get_cogs_config(db, tenant_id)
        if current is not None:
            base = COGSSettings.model_validate(current.model_dump(include=set(_COGS_SETTING_COLUMNS)))

    merged = merge_cogs_settings(base, data)
    if _should_validate(validate):
        _run_validation("cogs_source", ensure_valid_cogs_settings, merged, tenant_id)

    _write_config(
        db,
        COGSConfigRecord,
        "cogs_source",
        tenant_id,
        merged.model_dump(),
        actor_id,
        expected_version,
    )
    return get_cogs_config(db, tenant_id)


def reset_cogs_config(db: Session, tenant_id: str) -> bool:
    """Delete the tenant's COGS config. Returns True if a row was deleted."""
    return _delete_config(db, COGSConfigRecord, "cogs_source", tenant_id)


def mark_cogs_synced(db: Session, tenant_id: str, synced_at: datetime | None = None) -> bool:
    """Stamp the time of the last Shopify cost sync.

    Returns:
        False when the tenant has no COGS config row (nothing is created)

    """
    tenant_id = require_tenant(tenant_id)
    result = db.execute(
        update(COGSConfigRecord)
        .where(COGSConfigRecord.tenant_id == tenant_id)
        .values(shopify_last_sync_at=synced_at or utcnow())
    )
    db.commit()
    return result.rowcount > 0


def mark_cogs_imported(
    db: Session,
    tenant_id: str,
    import_source: COGSImportSource,
    imported_at: datetime | None = None,
) -> bool:
    """Stamp the time and source of the last internal COGS import.

    Returns:
        False when the tenant has no COGS config row (nothing is created)

    """
    tenant_id = require_tenant(tenant_id)
    if import_source not in ("csv", "manual", "erp"):
        raise ValueError(f"Invalid import source: {import_source}")

    result = db.execute(
        update(COGSConfigRecord)
        .where(COGSConfigRecord.tenant_id == tenant_id)
        .values(last_import_at=imported_at or utcnow(), import_source=import_source)
    )
    db.commit()
    return result.rowcount > 0


# =============================================================================
# P&L Formula Config
# =============================================================================

_FORMULA_SECTION_COLUMNS = {
    "revenue": "revenue_config",
    "cogs": "cogs_config",
    "variable_costs": "variable_costs_config",
    "contribution_margin": "contribution_margin_config",
    "marketing": "marketing_config",
    "operating_expenses": "operating_expenses_config",
}
_FORMULA_SCALARS = ("show_operating_income", "show_other_income_expense", "net_profit_label")


def _pl_formula_values(settings: PLFormulaSettings) -> dict[str, Any]:
    dumped = settings.model_dump()
    values = {column: dumped[section] for section, column in _FORMULA_SECTION_COLUMNS.items()}
    values.update({name: dumped[name] for name in _FORMULA_SCALARS})
    return values


def _to_pl_formula_config(row: PLFormulaConfigRecord) -> PLFormulaConfig:
    data: dict[str, Any] = {
        section: getattr(row, column) for section, column in _FORMULA_SECTION_COLUMNS.items()
    }
    data.update({name: getattr(row, name) for name in _FORMULA_SCALARS})
    data.update(
        id=row.id,
        tenant_id=row.tenant_id,
        version=row.version,
        updated_at=row.updated_at,
        updated_by=row.updated_by,
    )
    return PLFormulaConfig.model_validate(data)


def get_pl_formula_config(db: Session, tenant_id: str) -> PLFormulaConfig | None:
    """Get stored P&L formula config, or None when the tenant has none."""
    tenant_id = require_tenant(tenant_id)
    row = db.scalars(
        scoped(select(PLFormulaConfigRecord), PLFormulaConfigRecord, tenant_id)
    ).first()
    return _to_pl_formula_config(row) if row else None


def upsert_pl_formula_config(
    db: Session,
    tenant_id: str,
    data: PLFormulaConfigUpdate,
    actor_id: str,
    *,
    merge_strategy: MergeStrategy | str | None = None,
    expected_version: int | None = None,
    defaults: DefaultsProvider | None = None,
    validate: bool | None = None,
) -> PLFormulaConfig:
    """Create or update the tenant's P&L formula config.

    Raises:
        ConfigValidationError: If a label is blank or categories_order repeats an id
        ConfigConflictError: If expected_version does not match

    """
    tenant_id = require_tenant(tenant_id)
    defaults = defaults or get_defaults()

    base = defaults.pl_formula()
    if _resolve_strategy(merge_strategy) is MergeStrategy.AGAINST_CURRENT:
        current = get_pl_formula_config(db, tenant_id)
        if current is not None:
            base = PLFormulaSettings.model_validate(
                current.model_dump(include=set(PLFormulaSettings.model_fields))
            )

    merged = merge_pl_formula(base, data)
    if _should_validate(validate):
        _run_validation("formula", ensure_valid_pl_formula, merged, tenant_id)

    _write_config(
        db,
        PLFormulaConfigRecord,
        "formula",
        tenant_id,
        _pl_formula_values(merged),
        actor_id,
        expected_version,
    )
    return get_pl_formula_config(db, tenant_id)


def reset_pl_formula_config(db: Session, tenant_id: str) -> bool:
    """Delete the tenant's P&L formula config. Returns True if a row was deleted."""
    return _delete_config(db, PLFormulaConfigRecord, "formula", tenant_id)


__all__ = [
    "get_variable_cost_config",
    "upsert_variable_cost_config",
    "reset_variable_cost_config",
    "get_cogs_config",
    "upsert_cogs_config",
    "reset_cogs_config",
    "mark_cogs_synced",
    "mark_cogs_imported",
    "get_pl_formula_config",
    "upsert_pl_formula_config",
    "reset_pl_formula_config",
]
