"""Tests for the P&L config service: previews and audited mutations."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from plconfig.core.errors import ConfigConflictError, ConfigValidationError
from plconfig.core.metrics import pl_audit_failures_total, pl_formula_previews_total
from plconfig.domain.finance.types import (
    CategoryOrder,
    COGSConfigUpdate,
    ExpenseCategoryCreate,
    ExpenseCategoryUpdate,
    FormulaPreviewInput,
    FulfillmentUpdate,
    PLConfigAuditLogFilters,
    PLFormulaConfigUpdate,
    ProductCOGSBulkItem,
    ProductCOGSBulkUpdate,
    ProductCOGSUpdate,
    ShippingUpdate,
    VariableCostConfigUpdate,
)
from plconfig.services import pl_config, product_cogs
from plconfig.services.audit_log import query_audit_log
from plconfig.services.config_repository import get_variable_cost_config

TENANT = "tenant_a"


def _audit_entries(db: Session, config_type: str | None = None):
    return query_audit_log(db, TENANT, PLConfigAuditLogFilters(config_type=config_type)).rows


# =============================================================================
# Previews
# =============================================================================


def test_preview_without_config_uses_defaults(db: Session):
    """Test a tenant with no stored config is previewed with defaults."""
    result = pl_config.preview_formula(
        db, TENANT, FormulaPreviewInput(order_total=100.0, item_count=2, cogs_cents=3000)
    )

    assert result.payment_processing_fee == pytest.approx(3.20)
    assert result.fulfillment_cost == pytest.approx(2.00)
    assert result.packaging_cost == pytest.approx(0.75)
    assert result.shipping_cost == 0
    assert result.total_variable_costs == pytest.approx(5.95)
    assert result.contribution_margin == pytest.approx(64.05)


def test_preview_uses_stored_config(db: Session, ctx):
    """Test a saved flat shipping rate changes the preview."""
    pl_config.save_variable_cost_config(
        db,
        TENANT,
        VariableCostConfigUpdate(shipping=ShippingUpdate(tracking_method="flat_rate", flat_rate_cents=500)),
        ctx,
    )
    before = pl_formula_previews_total.labels(source="preview_formula")._value.get()

    result = pl_config.preview_formula(
        db, TENANT, FormulaPreviewInput(order_total=100.0, item_count=2, cogs_cents=3000)
    )

    assert result.shipping_cost == pytest.approx(5.00)
    assert result.contribution_margin == pytest.approx(59.05)
    assert pl_formula_previews_total.labels(source="preview_formula")._value.get() == before + 1


def test_order_margin_applies_cogs_fallback(db: Session, ctx):
    """Test unknown COGS is resolved by the tenant's fallback behavior."""
    pl_config.save_cogs_config(
        db,
        TENANT,
        COGSConfigUpdate(fallback_behavior="use_default", fallback_default_cogs_cents=800),
        ctx,
    )

    result = pl_config.preview_order_margin(db, TENANT, 100.0, 2)

    assert result.cogs == pytest.approx(8.00)
    assert result.contribution_margin == pytest.approx(100 - 8 - 5.95)


def test_order_margin_known_cogs_wins(db: Session):
    """Test a known COGS value bypasses the fallback."""
    result = pl_config.preview_order_margin(db, TENANT, 50.0, 1, cogs_cents=1500)

    assert result.cogs == pytest.approx(15.00)


def test_order_margin_skip_pnl_excludes_order(db: Session, ctx):
    """Test skip_pnl yields no breakdown and counts no preview."""
    pl_config.save_cogs_config(db, TENANT, COGSConfigUpdate(fallback_behavior="skip_pnl"), ctx)
    before = pl_formula_previews_total.labels(source="order_margin")._value.get()

    assert pl_config.preview_order_margin(db, TENANT, 100.0, 2) is None
    assert pl_formula_previews_total.labels(source="order_margin")._value.get() == before


def test_effective_configs_fall_back_to_defaults(db: Session):
    """Test effective loaders return defaults for a fresh tenant."""
    assert pl_config.load_effective_cogs_config(db, TENANT).fallback_behavior == "zero"
    assert pl_config.load_effective_pl_formula(db, TENANT).net_profit_label == "Net Profit"
    assert pl_config.load_effective_variable_costs(db, TENANT).fulfillment.pick_pack_fee_cents == 200


# =============================================================================
# Audited mutations
# =============================================================================


def test_save_variable_costs_audits_create_then_update(db: Session, ctx):
    """Test first save is a create, later saves are updates with changed fields."""
    pl_config.save_variable_cost_config(
        db, TENANT, VariableCostConfigUpdate(fulfillment=FulfillmentUpdate(pick_pack_fee_cents=300)), ctx
    )
    pl_config.save_variable_cost_config(
        db,
        TENANT,
        VariableCostConfigUpdate(fulfillment=FulfillmentUpdate(pick_pack_fee_cents=250)),
        ctx,
    )

    entries = _audit_entries(db, "variable_costs")
    assert [e.action for e in entries] == ["update", "create"]

    update_entry = entries[0]
    assert update_entry.field_changed == "fulfillment"
    assert update_entry.old_value["fulfillment"]["pickPackFeeCents"] == 300
    assert update_entry.new_value["fulfillment"]["pickPackFeeCents"] == 250
    assert update_entry.changed_by == "user_1"
    assert update_entry.ip_address == "203.0.113.7"
    assert update_entry.user_agent == "pytest"

    assert entries[1].old_value is None


def test_rejected_save_writes_no_audit(db: Session, ctx):
    """Test validation and version failures leave no audit entry."""
    with pytest.raises(ConfigValidationError):
        pl_config.save_variable_cost_config(
            db, TENANT, VariableCostConfigUpdate(shipping=ShippingUpdate(tracking_method="flat_rate")), ctx
        )
    with pytest.raises(ConfigConflictError):
        pl_config.save_variable_cost_config(
            db, TENANT, VariableCostConfigUpdate(), ctx, expected_version=2
        )

    assert _audit_entries(db) == []


def test_reset_audits_delete_only_when_row_existed(db: Session, ctx):
    """Test reset records a delete with the old snapshot."""
    assert pl_config.reset_pl_formula_config(db, TENANT, ctx) is False

    pl_config.save_pl_formula_config(
        db, TENANT, PLFormulaConfigUpdate(net_profit_label="Owner Earnings"), ctx
    )
    assert pl_config.reset_pl_formula_config(db, TENANT, ctx) is True

    entries = _audit_entries(db, "formula")
    assert [e.action for e in entries] == ["delete", "create"]
    assert entries[0].old_value["netProfitLabel"] == "Owner Earnings"
    assert entries[0].new_value is None


def test_record_cogs_import(db: Session, ctx):
    """Test an import stamp is audited as import."""
    assert pl_config.record_cogs_import(db, TENANT, "csv", ctx) is False

    pl_config.save_cogs_config(db, TENANT, COGSConfigUpdate(source="internal"), ctx)
    assert pl_config.record_cogs_import(db, TENANT, "csv", ctx) is True
    assert pl_config.reset_cogs_config(db, TENANT, ctx) is True

    actions = [e.action for e in _audit_entries(db, "cogs_source")]
    assert actions == ["delete", "import", "create"]


def test_audit_failure_does_not_undo_change(db: Session, ctx, monkeypatch):
    """Test a failing audit write is counted and swallowed."""

    def broken_audit(*args, **kwargs):
        raise SQLAlchemyError("audit table unavailable")

    monkeypatch.setattr(pl_config, "record_config_change", broken_audit)
    before = pl_audit_failures_total.labels(config_type="variable_costs")._value.get()

    saved = pl_config.save_variable_cost_config(
        db, TENANT, VariableCostConfigUpdate(fulfillment=FulfillmentUpdate(handling_fee_cents=15)), ctx
    )

    assert saved.fulfillment.handling_fee_cents == 15
    assert get_variable_cost_config(db, TENANT).fulfillment.handling_fee_cents == 15
    assert pl_audit_failures_total.labels(config_type="variable_costs")._value.get() == before + 1


def test_product_cogs_audit(db: Session, ctx):
    """Test single, bulk and delete product COGS audit entries."""
    pl_config.set_product_cogs(db, TENANT, "p1", ProductCOGSUpdate(cogs_cents=100), ctx)
    pl_config.set_product_cogs(db, TENANT, "p1", ProductCOGSUpdate(cogs_cents=150), ctx)
    count = pl_config.bulk_set_product_cogs(
        db,
        TENANT,
        ProductCOGSBulkUpdate(
            products=[
                ProductCOGSBulkItem(product_id="p2", cogs_cents=10),
                ProductCOGSBulkItem(product_id="p3", cogs_cents=20),
            ],
            source="csv_import",
        ),
        ctx,
    )
    assert count == 2
    assert pl_config.remove_product_cogs(db, TENANT, "p1", ctx) is True
    assert pl_config.remove_product_cogs(db, TENANT, "p1", ctx) is False

    entries = _audit_entries(db, "product_cogs")
    assert [e.action for e in entries] == ["delete", "bulk_update", "update", "create"]
    assert entries[1].new_value["count"] == 2
    assert entries[1].new_value["source"] == "csv_import"
    assert entries[1].new_value["products"][0]["productId"] == "p2"
    assert entries[2].field_changed == "cogs_cents"


def test_bulk_failure_audits_rows_already_written(db: Session, ctx, monkeypatch):
    """Test rows committed before a mid-batch failure still get a bulk_update entry."""
    real_upsert_row = product_cogs._upsert_row

    def failing_upsert_row(db, tenant_id, item, source, actor_id):
        if item.product_id == "p2":
            raise SQLAlchemyError("connection lost")
        real_upsert_row(db, tenant_id, item, source, actor_id)

    monkeypatch.setattr(product_cogs, "_upsert_row", failing_upsert_row)

    with pytest.raises(SQLAlchemyError, match="connection lost"):
        pl_config.bulk_set_product_cogs(
            db,
            TENANT,
            ProductCOGSBulkUpdate(
                products=[
                    ProductCOGSBulkItem(product_id="p1", cogs_cents=10),
                    ProductCOGSBulkItem(product_id="p2", cogs_cents=20),
                    ProductCOGSBulkItem(product_id="p3", cogs_cents=30),
                ],
            ),
            ctx,
        )

    assert product_cogs.get_product_cogs_by_id(db, TENANT, "p1").cogs_cents == 10
    assert product_cogs.get_product_cogs_by_id(db, TENANT, "p3") is None
    entries = _audit_entries(db, "product_cogs")
    assert [e.action for e in entries] == ["bulk_update"]
    assert entries[0].new_value["count"] == 1
    assert [p["productId"] for p in entries[0].new_value["products"]] == ["p1"]


def test_bulk_failure_on_first_row_writes_no_audit(db: Session, ctx, monkeypatch):
    """Test nothing is audited when no row was written."""

    def failing_upsert_row(*args, **kwargs):
        raise SQLAlchemyError("connection lost")

    monkeypatch.setattr(product_cogs, "_upsert_row", failing_upsert_row)

    with pytest.raises(SQLAlchemyError):
        pl_config.bulk_set_product_cogs(
            db,
            TENANT,
            ProductCOGSBulkUpdate(products=[ProductCOGSBulkItem(product_id="p1", cogs_cents=10)]),
            ctx,
        )

    assert _audit_entries(db, "product_cogs") == []


def test_category_mutations_audit(db: Session, ctx):
    """Test category seed, create, edit, reorder and delete audit entries."""
    assert pl_config.seed_categories(db, TENANT, ctx) == 18
    assert pl_config.seed_categories(db, TENANT, ctx) == 0

    pl_config.add_expense_category(
        db, TENANT, ExpenseCategoryCreate(category_id="op_travel", name="Travel", expense_type="operating"), ctx
    )
    pl_config.edit_expense_category(db, TENANT, "op_travel", ExpenseCategoryUpdate(name="Trips"), ctx)
    assert pl_config.edit_expense_category(db, TENANT, "ghost", ExpenseCategoryUpdate(name="X"), ctx) is None
    pl_config.reorder_categories(
        db, TENANT, [CategoryOrder(category_id="op_travel", display_order=5)], ctx
    )
    assert pl_config.remove_expense_category(db, TENANT, "cogs_product", ctx) is False
    assert pl_config.remove_expense_category(db, TENANT, "op_travel", ctx) is True

    entries = _audit_entries(db, "categories")
    assert [e.action for e in entries] == ["delete", "update", "update", "create", "create"]
    assert entries[1].field_changed == "display_order"
    assert entries[1].old_value == [{"categoryId": "op_travel", "displayOrder": 50}]
    assert entries[1].new_value == [{"categoryId": "op_travel", "displayOrder": 5}]
    assert entries[2].field_changed == "name"
    assert entries[4].new_value == {"seeded": 18}
