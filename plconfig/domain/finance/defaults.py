"""Default P&L configuration values.

Defaults are served by an injectable ``DefaultsProvider`` rather than shared
mutable module globals. Every accessor returns a fresh copy, so callers may
modify what they receive without affecting other tenants.

NO DATA ACCESS - pure values only.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from plconfig.domain.finance.types import (
    COGSFormulaConfig,
    COGSSettings,
    ContributionMarginConfig,
    ExpenseCategoryDefinition,
    FulfillmentConfig,
    MarketingFormulaConfig,
    OperatingExpensesFormulaConfig,
    OtherVariableCost,
    PaymentProcessingConfig,
    PLFormulaSettings,
    RevenueFormulaConfig,
    ShippingConfig,
    VariableCostsFormulaConfig,
    VariableCostSections,
)

DEFAULT_PAYMENT_PROCESSING = PaymentProcessingConfig(
    primary_processor="shopify_payments",
    percentage_rate=0.029,
    fixed_fee_cents=30,
    additional_processors=[],
)

DEFAULT_FULFILLMENT = FulfillmentConfig(
    cost_model="per_order",
    pick_pack_fee_cents=200,
    pick_pack_per_item_cents=0,
    packaging_cost_cents=75,
    handling_fee_cents=0,
    weight_tiers=[],
)

DEFAULT_SHIPPING = ShippingConfig(tracking_method="actual_expense")

DEFAULT_COGS_SETTINGS = COGSSettings(
    source="shopify",
    shopify_sync_enabled=True,
    shopify_sync_frequency="realtime",
    shopify_cost_field="cost",
    fallback_behavior="zero",
)

DEFAULT_PL_FORMULA = PLFormulaSettings(
    revenue=RevenueFormulaConfig(
        include_shipping_revenue=False,
        include_tax_collected=False,
        show_gross_sales=True,
        show_discounts=True,
        show_returns=True,
    ),
    cogs=COGSFormulaConfig(
        label="Cost of Goods Sold",
        include_free_samples=False,
        show_as_percentage=True,
    ),
    variable_costs=VariableCostsFormulaConfig(
        label="Variable Costs",
        show_payment_processing=True,
        show_fulfillment=True,
        show_packaging=True,
        show_shipping=True,
        custom_cost_visibility={},
        group_fulfillment_costs=False,
    ),
    contribution_margin=ContributionMarginConfig(
        label="Contribution Margin",
        show_as_percentage=True,
        highlight_negative=True,
    ),
    marketing=MarketingFormulaConfig(
        label="Marketing",
        show_ad_spend_by_platform=True,
        show_creator_payouts=True,
        show_influencer_fees=True,
        combine_ad_spend_and_payouts=False,
    ),
    operating_expenses=OperatingExpensesFormulaConfig(
        label="Operating Expenses",
        show_by_category=True,
        include_vendor_payouts=True,
        include_contractor_payouts=True,
        categories_order=[],
    ),
    show_operating_income=True,
    show_other_income_expense=True,
    net_profit_label="Net Profit",
)


def _category(
    category_id: str, name: str, expense_type: str, is_system: bool, display_order: int
) -> ExpenseCategoryDefinition:
    return ExpenseCategoryDefinition(
        category_id=category_id,
        name=name,
        expense_type=expense_type,
        is_system=is_system,
        is_active=True,
        display_order=display_order,
    )


DEFAULT_EXPENSE_CATEGORIES: tuple[ExpenseCategoryDefinition, ...] = (
    _category("cogs_product", "Product Cost", "cogs", True, 1),
    _category("var_payment", "Payment Processing", "variable", True, 10),
    _category("var_fulfillment", "Fulfillment", "variable", True, 11),
    _category("var_shipping", "Shipping", "variable", True, 12),
    _category("var_packaging", "Packaging", "variable", True, 13),
    _category("mkt_meta", "Meta Ads", "marketing", True, 20),
    _category("mkt_google", "Google Ads", "marketing", True, 21),
    _category("mkt_tiktok", "TikTok Ads", "marketing", True, 22),
    _category("mkt_creator", "Creator Commissions", "marketing", True, 23),
    _category("mkt_influencer", "Influencer Fees", "marketing", True, 24),
    _category("op_salaries", "Salaries & Wages", "operating", False, 30),
    _category("op_rent", "Rent & Facilities", "operating", False, 31),
    _category("op_software", "Software & Tools", "operating", False, 32),
    _category("op_professional", "Professional Services", "operating", False, 33),
    _category("op_insurance", "Insurance", "operating", False, 34),
    _category("op_vendors", "Vendor Payments", "operating", True, 35),
    _category("op_contractors", "Contractor Payments", "operating", True, 36),
    _category("other_misc", "Miscellaneous", "other", False, 100),
)


@dataclass(frozen=True)
class DefaultsProvider:
    """Source of default configuration values.

    Environments that need different defaults construct their own provider
    and pass it to the repository and service functions.
    """

    payment_processing_default: PaymentProcessingConfig = field(
        default_factory=lambda: DEFAULT_PAYMENT_PROCESSING
    )
    fulfillment_default: FulfillmentConfig = field(default_factory=lambda: DEFAULT_FULFILLMENT)
    shipping_default: ShippingConfig = field(default_factory=lambda: DEFAULT_SHIPPING)
    other_variable_costs_default: tuple[OtherVariableCost, ...] = ()
    cogs_default: COGSSettings = field(default_factory=lambda: DEFAULT_COGS_SETTINGS)
    pl_formula_default: PLFormulaSettings = field(default_factory=lambda: DEFAULT_PL_FORMULA)
    expense_categories_default: tuple[ExpenseCategoryDefinition, ...] = DEFAULT_EXPENSE_CATEGORIES

    def payment_processing(self) -> PaymentProcessingConfig:
        return self.payment_processing_default.model_copy(deep=True)

    def fulfillment(self) -> FulfillmentConfig:
        return self.fulfillment_default.model_copy(deep=True)

    def shipping(self) -> ShippingConfig:
        return self.shipping_default.model_copy(deep=True)

    def other_variable_costs(self) -> list[OtherVariableCost]:
        return [c.model_copy(deep=True) for c in self.other_variable_costs_default]

    def variable_costs(self) -> VariableCostSections:
        """All four variable cost sections at their defaults."""
        return VariableCostSections(
            payment_processing=self.payment_processing(),
            fulfillment=self.fulfillment(),
            shipping=self.shipping(),
            other_variable_costs=self.other_variable_costs(),
        )

    def cogs(self) -> COGSSettings:
        return self.cogs_default.model_copy(deep=True)

    def pl_formula(self) -> PLFormulaSettings:
        return self.pl_formula_default.model_copy(deep=True)

    def expense_categories(self) -> list[ExpenseCategoryDefinition]:
        return [c.model_copy(deep=True) for c in self.expense_categories_default]

    def system_category_ids(self) -> frozenset[str]:
        return frozenset(c.category_id for c in self.expense_categories_default if c.is_system)

    def reserved_category_ids(self) -> frozenset[str]:
        """Ids owned by the canonical taxonomy; custom categories may not reuse them."""
        return frozenset(c.category_id for c in self.expense_categories_default)


_DEFAULT_PROVIDER = DefaultsProvider()


def get_defaults() -> DefaultsProvider:
    """Get the built-in defaults provider."""
    return _DEFAULT_PROVIDER


__all__ = [
    "DefaultsProvider",
    "get_defaults",
    "DEFAULT_PAYMENT_PROCESSING",
    "DEFAULT_FULFILLMENT",
    "DEFAULT_SHIPPING",
    "DEFAULT_COGS_SETTINGS",
    "DEFAULT_PL_FORMULA",
    "DEFAULT_EXPENSE_CATEGORIES",
]
