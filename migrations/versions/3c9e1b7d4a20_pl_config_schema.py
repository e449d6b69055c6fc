"""pl config schema

Revision ID: 3c9e1b7d4a20
Revises:
Create Date: 2026-10-18 10:12:41.518204

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3c9e1b7d4a20"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("updated_by", sa.String(128), nullable=True),
    ]


def upgrade() -> None:
    # 1. Variable cost config (one row per tenant)
    op.create_table(
        "pl_variable_cost_config",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(64), nullable=False, unique=True),
        sa.Column("primary_processor", sa.String(32), nullable=False),
        sa.Column("payment_percentage_rate", sa.Float(), nullable=False),
        sa.Column("payment_fixed_fee_cents", sa.Integer(), nullable=False),
        sa.Column("additional_processors", sa.JSON(), nullable=False),
        sa.Column("fulfillment_cost_model", sa.String(32), nullable=False),
        sa.Column("pick_pack_fee_cents", sa.Integer(), nullable=False),
        sa.Column("pick_pack_per_item_cents", sa.Integer(), nullable=False),
        sa.Column("packaging_cost_cents", sa.Integer(), nullable=False),
        sa.Column("handling_fee_cents", sa.Integer(), nullable=False),
        sa.Column("weight_tiers", sa.JSON(), nullable=False),
        sa.Column("shipping_tracking_method", sa.String(32), nullable=False),
        sa.Column("shipping_estimated_percent", sa.Float(), nullable=True),
        sa.Column("shipping_flat_rate_cents", sa.Integer(), nullable=True),
        sa.Column("other_variable_costs", sa.JSON(), nullable=False),
        *_audit_columns(),
    )

    # 2. COGS source config (one row per tenant)
    op.create_table(
        "pl_cogs_config",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(64), nullable=False, unique=True),
        sa.Column("source", sa.String(16), nullable=False),
        sa.Column("shopify_sync_enabled", sa.Boolean(), nullable=False),
        sa.Column("shopify_sync_frequency", sa.String(16), nullable=False),
        sa.Column("shopify_cost_field", sa.String(64), nullable=False),
        sa.Column("shopify_last_sync_at", sa.DateTime(), nullable=True),
        sa.Column("fallback_behavior", sa.String(32), nullable=False),
        sa.Column("fallback_percent", sa.Float(), nullable=True),
        sa.Column("fallback_default_cogs_cents", sa.Integer(), nullable=True),
        sa.Column("last_import_at", sa.DateTime(), nullable=True),
        sa.Column("import_source", sa.String(16), nullable=True),
        *_audit_columns(),
    )

    # 3. P&L formula config (one row per tenant)
    op.create_table(
        "pl_formula_config",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(64), nullable=False, unique=True),
        sa.Column("revenue_config", sa.JSON(), nullable=False),
        sa.Column("cogs_config", sa.JSON(), nullable=False),
        sa.Column("variable_costs_config", sa.JSON(), nullable=False),
        sa.Column("contribution_margin_config", sa.JSON(), nullable=False),
        sa.Column("marketing_config", sa.JSON(), nullable=False),
        sa.Column("operating_expenses_config", sa.JSON(), nullable=False),
        sa.Column("show_operating_income", sa.Boolean(), nullable=False),
        sa.Column("show_other_income_expense", sa.Boolean(), nullable=False),
        sa.Column("net_profit_label", sa.String(100), nullable=False),
        *_audit_columns(),
    )

    # 4. Product COGS (variant_key = COALESCE(variant_id, ''))
    op.create_table(
        "pl_product_cogs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("product_id", sa.String(128), nullable=False),
        sa.Column("variant_id", sa.String(128), nullable=True),
        sa.Column("variant_key", sa.String(128), nullable=False, server_default=""),
        sa.Column("sku", sa.String(128), nullable=True),
        sa.Column("cogs_cents", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(16), nullable=False, server_default="manual"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("updated_by", sa.String(128), nullable=True),
        sa.UniqueConstraint("tenant_id", "product_id", "variant_key", name="uq_product_cogs_key"),
    )
    op.create_index(
        "ix_product_cogs_tenant_updated", "pl_product_cogs", ["tenant_id", "updated_at"]
    )
    op.create_index("ix_product_cogs_tenant_sku", "pl_product_cogs", ["tenant_id", "sku"])

    # 5. Expense categories
    op.create_table(
        "pl_expense_categories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("category_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("expense_type", sa.String(16), nullable=False),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("tenant_id", "category_id", name="uq_expense_category_tenant_id"),
    )
    op.create_index(
        "ix_expense_category_tenant_order", "pl_expense_categories", ["tenant_id", "display_order"]
    )

    # 6. Audit log (append-only)
    op.create_table(
        "pl_config_audit_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("config_type", sa.String(32), nullable=False),
        sa.Column("action", sa.String(16), nullable=False),
        sa.Column("field_changed", sa.String(255), nullable=True),
        sa.Column("old_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("changed_by", sa.String(128), nullable=False),
        sa.Column("changed_at", sa.DateTime(), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
    )
    op.create_index("ix_audit_tenant_changed", "pl_config_audit_log", ["tenant_id", "changed_at"])
    op.create_index("ix_audit_tenant_type", "pl_config_audit_log", ["tenant_id", "config_type"])


def downgrade() -> None:
    op.drop_index("ix_audit_tenant_type", table_name="pl_config_audit_log")
    op.drop_index("ix_audit_tenant_changed", table_name="pl_config_audit_log")
    op.drop_table("pl_config_audit_log")

    op.drop_index("ix_expense_category_tenant_order", table_name="pl_expense_categories")
    op.drop_table("pl_expense_categories")

    op.drop_index("ix_product_cogs_tenant_sku", table_name="pl_product_cogs")
    op.drop_index("ix_product_cogs_tenant_updated", table_name="pl_product_cogs")
    op.drop_table("pl_product_cogs")

    op.drop_table("pl_formula_config")
    op.drop_table("pl_cogs_config")
    op.drop_table("pl_variable_cost_config")
