"""P&L configuration and cost management schemas.

Types for variable costs, COGS, expense categories, formula configuration,
audit entries and formula previews. All persisted configurations are
tenant-scoped.

Schemas serialize with camelCase keys (``model_dump(by_alias=True)``) and
accept either camelCase or snake_case on input.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

PaymentProcessor = Literal["shopify_payments", "stripe", "paypal", "custom"]
FulfillmentCostModel = Literal["per_order", "per_item", "weight_based", "manual"]
ShippingTrackingMethod = Literal["actual_expense", "estimated_percentage", "flat_rate"]
VariableCostCalculationType = Literal["per_order", "per_item", "percentage_of_revenue"]

COGSSource = Literal["shopify", "internal"]
COGSSyncFrequency = Literal["realtime", "hourly", "daily"]
COGSFallbackBehavior = Literal["zero", "skip_pnl", "use_default", "percentage_of_price"]
COGSImportSource = Literal["csv", "manual", "erp"]
ProductCOGSSource = Literal["manual", "csv_import", "erp_sync"]

ExpenseType = Literal["cogs", "variable", "marketing", "operating", "other"]

PLConfigType = Literal["variable_costs", "cogs_source", "product_cogs", "formula", "categories"]
PLConfigAction = Literal["create", "update", "delete", "bulk_update", "import"]


class CamelModel(BaseModel):
    """Base schema: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Payment Processing
# =============================================================================


class AdditionalProcessor(CamelModel):
    id: str = ""
    name: str = ""
    percentage_rate: float = 0.0
    fixed_fee_cents: int = 0
    volume_percent: float = 0.0  # share of transaction volume, 0-100


class PaymentProcessingConfig(CamelModel):
    primary_processor: PaymentProcessor
    percentage_rate: float
    fixed_fee_cents: int
    additional_processors: list[AdditionalProcessor] = Field(default_factory=list)


class PaymentProcessingUpdate(CamelModel):
    primary_processor: PaymentProcessor | None = None
    percentage_rate: float | None = None
    fixed_fee_cents: int | None = None
    additional_processors: list[AdditionalProcessor] | None = None


# =============================================================================
# Fulfillment
# =============================================================================


class WeightTier(CamelModel):
    id: str | None = None
    min_ounces: float
    max_ounces: float
    fee_cents: int


class FulfillmentConfig(CamelModel):
    cost_model: FulfillmentCostModel
    pick_pack_fee_cents: int
    pick_pack_per_item_cents: int
    packaging_cost_cents: int
    handling_fee_cents: int
    weight_tiers: list[WeightTier] = Field(default_factory=list)


class FulfillmentUpdate(CamelModel):
    cost_model: FulfillmentCostModel | None = None
    pick_pack_fee_cents: int | None = None
    pick_pack_per_item_cents: int | None = None
    packaging_cost_cents: int | None = None
    handling_fee_cents: int | None = None
    weight_tiers: list[WeightTier] | None = None


# =============================================================================
# Shipping
# =============================================================================


class ShippingConfig(CamelModel):
    tracking_method: ShippingTrackingMethod
    estimated_percent: float | None = None  # decimal share of order total
    flat_rate_cents: int | None = None


class ShippingUpdate(CamelModel):
    tracking_method: ShippingTrackingMethod | None = None
    estimated_percent: float | None = None
    flat_rate_cents: int | None = None


# =============================================================================
# Other Variable Costs
# =============================================================================


class OtherVariableCost(CamelModel):
    id: str
    name: str
    amount_cents: int = 0
    calculation_type: VariableCostCalculationType
    percentage_rate: float | None = None
    is_active: bool = True
    created_at: str | None = None


# =============================================================================
# Variable Cost Config (combined)
# =============================================================================


class VariableCostSections(CamelModel):
    """Variable cost sections, any of which may be missing.

    This is the shape the formula calculator accepts; a missing section is
    replaced wholesale by its default.
    """

    payment_processing: PaymentProcessingConfig | None = None
    fulfillment: FulfillmentConfig | None = None
    shipping: ShippingConfig | None = None
    other_variable_costs: list[OtherVariableCost] | None = None


class VariableCostConfig(VariableCostSections):
    """Stored variable cost configuration for one tenant."""

    id: int | None = None
    tenant_id: str
    payment_processing: PaymentProcessingConfig
    fulfillment: FulfillmentConfig
    shipping: ShippingConfig
    other_variable_costs: list[OtherVariableCost] = Field(default_factory=list)
    version: int = 1
    updated_at: datetime | None = None
    updated_by: str | None = None


class VariableCostConfigUpdate(CamelModel):
    payment_processing: PaymentProcessingUpdate | None = None
    fulfillment: FulfillmentUpdate | None = None
    shipping: ShippingUpdate | None = None
    other_variable_costs: list[OtherVariableCost] | None = None


# =============================================================================
# COGS Configuration
# =============================================================================


class COGSSettings(CamelModel):
    """Editable COGS source settings."""

    source: COGSSource
    shopify_sync_enabled: bool
    shopify_sync_frequency: COGSSyncFrequency
    shopify_cost_field: str
    fallback_behavior: COGSFallbackBehavior
    fallback_percent: float | None = None  # percent of price, 0-100
    fallback_default_cogs_cents: int | None = None


class COGSConfig(COGSSettings):
    id: int | None = None
    tenant_id: str
    shopify_last_sync_at: datetime | None = None
    last_import_at: datetime | None = None
    import_source: COGSImportSource | None = None
    version: int = 1
    updated_at: datetime | None = None
    updated_by: str | None = None


class COGSConfigUpdate(CamelModel):
    source: COGSSource | None = None
    shopify_sync_enabled: bool | None = None
    shopify_sync_frequency: COGSSyncFrequency | None = None
    shopify_cost_field: str | None = None
    fallback_behavior: COGSFallbackBehavior | None = None
    fallback_percent: float | None = None
    fallback_default_cogs_cents: int | None = None


# =============================================================================
# Product COGS
# =============================================================================


class ProductCOGS(CamelModel):
    id: int | None = None
    tenant_id: str
    product_id: str
    variant_id: str | None = None
    sku: str | None = None
    cogs_cents: int
    source: ProductCOGSSource = "manual"
    created_at: datetime | None = None
    updated_at: datetime | None = None
    updated_by: str | None = None


class ProductCOGSUpdate(CamelModel):
    cogs_cents: int
    source: ProductCOGSSource | None = None


class ProductCOGSBulkItem(CamelModel):
    product_id: str
    variant_id: str | None = None
    sku: str | None = None
    cogs_cents: int


class ProductCOGSBulkUpdate(CamelModel):
    products: list[ProductCOGSBulkItem]
    source: ProductCOGSSource | None = None


# =============================================================================
# P&L Formula Configuration
# =============================================================================


class RevenueFormulaConfig(CamelModel):
    include_shipping_revenue: bool
    include_tax_collected: bool
    show_gross_sales: bool
    show_discounts: bool
    show_returns: bool


class RevenueFormulaUpdate(CamelModel):
    include_shipping_revenue: bool | None = None
    include_tax_collected: bool | None = None
    show_gross_sales: bool | None = None
    show_discounts: bool | None = None
    show_returns: bool | None = None


class COGSFormulaConfig(CamelModel):
    label: str
    include_free_samples: bool
    show_as_percentage: bool


class COGSFormulaUpdate(CamelModel):
    label: str | None = None
    include_free_samples: bool | None = None
    show_as_percentage: bool | None = None


class VariableCostsFormulaConfig(CamelModel):
    label: str
    show_payment_processing: bool
    show_fulfillment: bool
    show_packaging: bool
    show_shipping: bool
    custom_cost_visibility: dict[str, bool] = Field(default_factory=dict)
    group_fulfillment_costs: bool


class VariableCostsFormulaUpdate(CamelModel):
    label: str | None = None
    show_payment_processing: bool | None = None
    show_fulfillment: bool | None = None
    show_packaging: bool | None = None
    show_shipping: bool | None = None
    custom_cost_visibility: dict[str, bool] | None = None
    group_fulfillment_costs: bool | None = None


class ContributionMarginConfig(CamelModel):
    label: str
    show_as_percentage: bool
    highlight_negative: bool


class ContributionMarginUpdate(CamelModel):
    label: str | None = None
    show_as_percentage: bool | None = None
    highlight_negative: bool | None = None


class MarketingFormulaConfig(CamelModel):
    label: str
    show_ad_spend_by_platform: bool
    show_creator_payouts: bool
    show_influencer_fees: bool
    combine_ad_spend_and_payouts: bool


class MarketingFormulaUpdate(CamelModel):
    label: str | None = None
    show_ad_spend_by_platform: bool | None = None
    show_creator_payouts: bool | None = None
    show_influencer_fees: bool | None = None
    combine_ad_spend_and_payouts: bool | None = None


class OperatingExpensesFormulaConfig(CamelModel):
    label: str
    show_by_category: bool
    include_vendor_payouts: bool
    include_contractor_payouts: bool
    categories_order: list[str] = Field(default_factory=list)


class OperatingExpensesFormulaUpdate(CamelModel):
    label: str | None = None
    show_by_category: bool | None = None
    include_vendor_payouts: bool | None = None
    include_contractor_payouts: bool | None = None
    categories_order: list[str] | None = None


class PLFormulaSettings(CamelModel):
    """Presentation toggles for the P&L statement. Never affect the numbers."""

    revenue: RevenueFormulaConfig
    cogs: COGSFormulaConfig
    variable_costs: VariableCostsFormulaConfig
    contribution_margin: ContributionMarginConfig
    marketing: MarketingFormulaConfig
    operating_expenses: OperatingExpensesFormulaConfig
    show_operating_income: bool
    show_other_income_expense: bool
    net_profit_label: str


class PLFormulaConfig(PLFormulaSettings):
    id: int | None = None
    tenant_id: str
    version: int = 1
    updated_at: datetime | None = None
    updated_by: str | None = None


class PLFormulaConfigUpdate(CamelModel):
    revenue: RevenueFormulaUpdate | None = None
    cogs: COGSFormulaUpdate | None = None
    variable_costs: VariableCostsFormulaUpdate | None = None
    contribution_margin: ContributionMarginUpdate | None = None
    marketing: MarketingFormulaUpdate | None = None
    operating_expenses: OperatingExpensesFormulaUpdate | None = None
    show_operating_income: bool | None = None
    show_other_income_expense: bool | None = None
    net_profit_label: str | None = None


# =============================================================================
# Expense Categories
# =============================================================================


class ExpenseCategoryDefinition(CamelModel):
    """Entry of the canonical category taxonomy."""

    category_id: str
    name: str
    expense_type: ExpenseType
    is_system: bool
    is_active: bool = True
    display_order: int


class ExpenseCategory(ExpenseCategoryDefinition):
    id: int | None = None
    tenant_id: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ExpenseCategoryCreate(CamelModel):
    category_id: str
    name: str
    expense_type: ExpenseType
    display_order: int | None = None


class ExpenseCategoryUpdate(CamelModel):
    name: str | None = None
    expense_type: ExpenseType | None = None
    is_active: bool | None = None
    display_order: int | None = None


class CategoryOrder(CamelModel):
    category_id: str
    display_order: int


# =============================================================================
# Audit Log
# =============================================================================


class PLConfigAuditLog(CamelModel):
    id: int | None = None
    tenant_id: str
    config_type: PLConfigType
    action: PLConfigAction
    field_changed: str | None = None
    old_value: Any = None
    new_value: Any = None
    changed_by: str
    changed_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None


class PLConfigAuditLogFilters(CamelModel):
    config_type: PLConfigType | None = None
    start_date: datetime | date | None = None
    end_date: datetime | date | None = None
    changed_by: str | None = None
    page: int = 1
    limit: int | None = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _bare_date(cls, v: Any) -> Any:
        # "YYYY-MM-DD" means the whole calendar day, not its midnight
        if isinstance(v, str) and len(v) == 10:
            return date.fromisoformat(v)
        return v


# =============================================================================
# Listing
# =============================================================================

T = TypeVar("T")


class Page(CamelModel, Generic[T]):
    """One page of a filtered listing plus the total match count."""

    rows: list[T]
    total_count: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return math.ceil(self.total_count / self.limit)


# =============================================================================
# Formula Preview
# =============================================================================


class FormulaPreviewInput(CamelModel):
    order_total: float
    item_count: int
    cogs_cents: int


class FormulaPreviewResult(CamelModel):
    gross_revenue: float
    cogs: float
    cogs_percent: float
    payment_processing_fee: float
    fulfillment_cost: float
    packaging_cost: float
    shipping_cost: float
    other_variable_costs: float
    total_variable_costs: float
    contribution_margin: float
    contribution_margin_percent: float
    effective_variable_cost_per_order: float
