"""Tests for partial-update merging."""

from __future__ import annotations

import pytest

from plconfig.domain.finance.defaults import get_defaults
from plconfig.domain.finance.merge import (
    MergeStrategy,
    changed_fields,
    merge_cogs_settings,
    merge_pl_formula,
    merge_section,
    merge_variable_costs,
    parse_merge_strategy,
)
from plconfig.domain.finance.types import (
    AdditionalProcessor,
    COGSConfigUpdate,
    FulfillmentUpdate,
    OtherVariableCost,
    PaymentProcessingUpdate,
    PLFormulaConfigUpdate,
    RevenueFormulaUpdate,
    ShippingConfig,
    ShippingUpdate,
    VariableCostConfigUpdate,
)


def test_merge_section_overlays_only_set_fields():
    """Test fields left unset in the patch keep the base value."""
    base = get_defaults().fulfillment()
    merged = merge_section(base, FulfillmentUpdate(pick_pack_fee_cents=350))

    assert merged.pick_pack_fee_cents == 350
    assert merged.packaging_cost_cents == base.packaging_cost_cents
    assert merged.cost_model == base.cost_model


def test_merge_section_does_not_mutate_base():
    """Test the base object is left untouched."""
    base = get_defaults().payment_processing()
    merge_section(base, PaymentProcessingUpdate(percentage_rate=0.05))

    assert base.percentage_rate == 0.029


def test_merge_section_explicit_none_clears_optional_field():
    """Test explicit None clears optional fields but not required ones."""
    base = ShippingConfig(tracking_method="flat_rate", flat_rate_cents=500)
    merged = merge_section(
        base, ShippingUpdate(flat_rate_cents=None, tracking_method=None)
    )

    assert merged.flat_rate_cents is None
    assert merged.tracking_method == "flat_rate"


def test_merge_section_none_keeps_non_nullable_defaulted_fields():
    """Test explicit None leaves list and dict fields with defaults at their base value."""
    paypal = AdditionalProcessor(
        id="pp", name="PayPal", percentage_rate=0.0349, fixed_fee_cents=49, volume_percent=20
    )
    base = get_defaults().payment_processing().model_copy(
        update={"additional_processors": [paypal]}
    )
    merged = merge_section(
        base,
        PaymentProcessingUpdate.model_validate(
            {"percentageRate": 0.03, "additionalProcessors": None}
        ),
    )

    assert merged.percentage_rate == 0.03
    assert merged.additional_processors == base.additional_processors


def test_merge_pl_formula_none_keeps_lists_and_maps():
    """Test null categoriesOrder and customCostVisibility keep their base values."""
    base = get_defaults().pl_formula()
    update = PLFormulaConfigUpdate.model_validate(
        {
            "variableCosts": {"customCostVisibility": None, "label": "Variable"},
            "operatingExpenses": {"categoriesOrder": None},
        }
    )

    merged = merge_pl_formula(base, update)

    assert merged.variable_costs.label == "Variable"
    assert merged.variable_costs.custom_cost_visibility == base.variable_costs.custom_cost_visibility
    assert merged.operating_expenses.categories_order == base.operating_expenses.categories_order


def test_merge_variable_costs_keeps_untouched_sections():
    """Test sections missing from the update come from the base."""
    base = get_defaults().variable_costs()
    merged = merge_variable_costs(
        base, VariableCostConfigUpdate(fulfillment=FulfillmentUpdate(handling_fee_cents=90))
    )

    assert merged.fulfillment.handling_fee_cents == 90
    assert merged.payment_processing == base.payment_processing
    assert merged.shipping == base.shipping
    assert merged.other_variable_costs == []


def test_merge_variable_costs_replaces_other_costs_list():
    """Test other_variable_costs is replaced, not appended."""
    base = get_defaults().variable_costs()
    base.other_variable_costs = [
        OtherVariableCost(id="old", name="Old", amount_cents=1, calculation_type="per_order")
    ]
    new_cost = OtherVariableCost(id="new", name="New", amount_cents=2, calculation_type="per_item")

    merged = merge_variable_costs(base, VariableCostConfigUpdate(other_variable_costs=[new_cost]))

    assert [c.id for c in merged.other_variable_costs] == ["new"]


def test_merge_cogs_settings():
    """Test COGS settings merge."""
    merged = merge_cogs_settings(
        get_defaults().cogs(),
        COGSConfigUpdate(fallback_behavior="percentage_of_price", fallback_percent=35),
    )

    assert merged.fallback_behavior == "percentage_of_price"
    assert merged.fallback_percent == 35
    assert merged.source == "shopify"


def test_merge_pl_formula_sections_and_scalars():
    """Test formula sections merge field-by-field and scalars override."""
    base = get_defaults().pl_formula()
    merged = merge_pl_formula(
        base,
        PLFormulaConfigUpdate(
            revenue=RevenueFormulaUpdate(include_shipping_revenue=True),
            net_profit_label="Bottom Line",
        ),
    )

    assert merged.revenue.include_shipping_revenue is True
    assert merged.revenue.show_gross_sales is True
    assert merged.net_profit_label == "Bottom Line"
    assert merged.show_operating_income is True
    assert merged.marketing == base.marketing


def test_parse_merge_strategy():
    """Test strategy parsing accepts values and rejects unknown names."""
    assert parse_merge_strategy("against_current") is MergeStrategy.AGAINST_CURRENT
    assert parse_merge_strategy(MergeStrategy.AGAINST_DEFAULTS) is MergeStrategy.AGAINST_DEFAULTS

    with pytest.raises(ValueError, match="Unknown merge strategy"):
        parse_merge_strategy("against_yesterday")


def test_changed_fields():
    """Test only differing top-level fields are reported."""
    old = get_defaults().variable_costs()
    new = merge_variable_costs(
        old, VariableCostConfigUpdate(payment_processing=PaymentProcessingUpdate(fixed_fee_cents=0))
    )

    fields = ("payment_processing", "fulfillment", "shipping", "other_variable_costs")
    assert changed_fields(old, new, fields) == ["payment_processing"]
    assert changed_fields(None, new, fields) == list(fields)
