"""SQLAlchemy ORM models for P&L configuration.

This module defines the database schema for:
- Per-tenant configs (variable costs, COGS source, P&L formula), one row each
- Product COGS, one row per (tenant, product, variant)
- Expense categories, one row per (tenant, category_id)
- Append-only audit log of configuration changes

Every table carries ``tenant_id``. All timestamps are naive UTC.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(UTC).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# Per-tenant Configs
# =============================================================================


class VariableCostConfigRecord(Base):
    """Variable cost config of one tenant.

    Scalar fields of the payment, fulfillment and shipping sections are
    flattened into columns; lists are stored as JSON.
    """

    __tablename__ = "pl_variable_cost_config"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64), unique=True)

    # Payment processing
    primary_processor: Mapped[str] = mapped_column(String(32))
    payment_percentage_rate: Mapped[float] = mapped_column(Float)
    payment_fixed_fee_cents: Mapped[int] = mapped_column(Integer)
    additional_processors: Mapped[list] = mapped_column(JSON, default=list)

    # Fulfillment
    fulfillment_cost_model: Mapped[str] = mapped_column(String(32))
    pick_pack_fee_cents: Mapped[int] = mapped_column(Integer)
    pick_pack_per_item_cents: Mapped[int] = mapped_column(Integer)
    packaging_cost_cents: Mapped[int] = mapped_column(Integer)
    handling_fee_cents: Mapped[int] = mapped_column(Integer)
    weight_tiers: Mapped[list] = mapped_column(JSON, default=list)

    # Shipping
    shipping_tracking_method: Mapped[str] = mapped_column(String(32))
    shipping_estimated_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    shipping_flat_rate_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)

    other_variable_costs: Mapped[list] = mapped_column(JSON, default=list)

    version: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_by: Mapped[str | None] = mapped_column(String(128), nullable=True)


class COGSConfigRecord(Base):
    """COGS source settings of one tenant."""

    __tablename__ = "pl_cogs_config"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64), unique=True)

    source: Mapped[str] = mapped_column(String(16))  # "shopify" | "internal"
    shopify_sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    shopify_sync_frequency: Mapped[str] = mapped_column(String(16))
    shopify_cost_field: Mapped[str] = mapped_column(String(64))
    shopify_last_sync_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    fallback_behavior: Mapped[str] = mapped_column(String(32))
    fallback_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    fallback_default_cogs_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)

    last_import_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    import_source: Mapped[str | None] = mapped_column(String(16), nullable=True)

    version: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_by: Mapped[str | None] = mapped_column(String(128), nullable=True)


class PLFormulaConfigRecord(Base):
    """P&L statement presentation settings of one tenant. Sections are JSON."""

    __tablename__ = "pl_formula_config"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64), unique=True)

    revenue_config: Mapped[dict] = mapped_column(JSON)
    cogs_config: Mapped[dict] = mapped_column(JSON)
    variable_costs_config: Mapped[dict] = mapped_column(JSON)
    contribution_margin_config: Mapped[dict] = mapped_column(JSON)
    marketing_config: Mapped[dict] = mapped_column(JSON)
    operating_expenses_config: Mapped[dict] = mapped_column(JSON)

    show_operating_income: Mapped[bool] = mapped_column(Boolean, default=True)
    show_other_income_expense: Mapped[bool] = mapped_column(Boolean, default=True)
    net_profit_label: Mapped[str] = mapped_column(String(100))

    version: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_by: Mapped[str | None] = mapped_column(String(128), nullable=True)


# =============================================================================
# Product COGS
# =============================================================================


class ProductCOGSRecord(Base):
    """Unit cost of one product or product variant.

    ``variant_key`` mirrors ``variant_id`` with NULL stored as '' so the
    unique constraint treats a variant-less row as its own key on every
    backend.
    """

    __tablename__ = "pl_product_cogs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64))
    product_id: Mapped[str] = mapped_column(String(128))
    variant_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    variant_key: Mapped[str] = mapped_column(String(128), default="")
    sku: Mapped[str | None] = mapped_column(String(128), nullable=True)
    cogs_cents: Mapped[int] = mapped_column(Integer)
    source: Mapped[str] = mapped_column(String(16), default="manual")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "product_id", "variant_key", name="uq_product_cogs_key"),
        Index("ix_product_cogs_tenant_updated", "tenant_id", "updated_at"),
        Index("ix_product_cogs_tenant_sku", "tenant_id", "sku"),
    )


# =============================================================================
# Expense Categories
# =============================================================================


class ExpenseCategoryRecord(Base):
    """Tenant expense taxonomy entry. System rows cannot be deleted."""

    __tablename__ = "pl_expense_categories"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64))
    category_id: Mapped[str] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(String(128))
    expense_type: Mapped[str] = mapped_column(String(16))
    is_system: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    display_order: Mapped[int] = mapped_column(Integer, default=50)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("tenant_id", "category_id", name="uq_expense_category_tenant_id"),
        Index("ix_expense_category_tenant_order", "tenant_id", "display_order"),
    )


# =============================================================================
# Audit Log
# =============================================================================


class PLConfigAuditLogRecord(Base):
    """Append-only record of one configuration change."""

    __tablename__ = "pl_config_audit_log"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64))
    config_type: Mapped[str] = mapped_column(String(32))
    action: Mapped[str] = mapped_column(String(16))
    field_changed: Mapped[str | None] = mapped_column(String(255), nullable=True)
    old_value: Mapped[dict | list | None] = mapped_column(JSON, nullable=True)
    new_value: Mapped[dict | list | None] = mapped_column(JSON, nullable=True)
    changed_by: Mapped[str] = mapped_column(String(128))
    changed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    __table_args__ = (
        Index("ix_audit_tenant_changed", "tenant_id", "changed_at"),
        Index("ix_audit_tenant_type", "tenant_id", "config_type"),
    )
