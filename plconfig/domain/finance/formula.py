"""Contribution-margin calculator.

Given an order-shaped input (order total in dollars, item count, COGS in
cents) and a possibly partial variable cost config, computes the per-order
breakdown:

    Contribution Margin = Order Total - COGS - Total Variable Costs
    Total Variable Costs = Payment Fee + Fulfillment + Packaging
                           + Shipping + Other Variable Costs

Results are unrounded dollar floats; rounding is a presentation concern.

NO DATA ACCESS - pure functions only. Data access happens in services layer.
"""

from __future__ import annotations

from collections.abc import Iterable

from plconfig.domain.finance.defaults import DefaultsProvider, get_defaults
from plconfig.domain.finance.types import (
    FormulaPreviewInput,
    FormulaPreviewResult,
    FulfillmentConfig,
    OtherVariableCost,
    PaymentProcessingConfig,
    ShippingConfig,
    VariableCostSections,
)

# Average item weight used to estimate order weight for weight-based tiers.
ESTIMATED_OUNCES_PER_ITEM = 12


def resolve_variable_costs(
    config: VariableCostSections | None, defaults: DefaultsProvider | None = None
) -> VariableCostSections:
    """Replace every missing section with its default (whole section, not per field)."""
    defaults = defaults or get_defaults()
    if config is None:
        return defaults.variable_costs()

    return VariableCostSections(
        payment_processing=config.payment_processing or defaults.payment_processing(),
        fulfillment=config.fulfillment or defaults.fulfillment(),
        shipping=config.shipping or defaults.shipping(),
        other_variable_costs=(
            config.other_variable_costs
            if config.other_variable_costs is not None
            else defaults.other_variable_costs()
        ),
    )


def calc_payment_processing_fee(order_total: float, config: PaymentProcessingConfig) -> float:
    """Calculate payment processing fee for one order.

    With additional processors, volume is split: each additional processor
    takes its ``volume_percent`` and the primary takes the remainder. The
    remainder is not clamped, so it goes negative if the shares exceed 100.

    Args:
        order_total: Order total in dollars
        config: Payment processing section

    Returns:
        Fee in dollars

    """
    primary_fee = order_total * config.percentage_rate + config.fixed_fee_cents / 100
    if not config.additional_processors:
        return primary_fee

    primary_volume = 100 - sum(p.volume_percent for p in config.additional_processors)
    fee = primary_fee * primary_volume / 100
    for proc in config.additional_processors:
        proc_fee = order_total * proc.percentage_rate + proc.fixed_fee_cents / 100
        fee += proc_fee * proc.volume_percent / 100
    return fee


def calc_fulfillment_cost(item_count: int, config: FulfillmentConfig) -> float:
    """Calculate pick/pack and handling cost for one order.

    Args:
        item_count: Number of items in the order
        config: Fulfillment section

    Returns:
        Cost in dollars. ``weight_based`` uses the first tier whose inclusive
        ounce range contains the estimated weight, falling back to the
        pick/pack fee when no tier matches. ``manual`` is the pick/pack fee.

    """
    if config.cost_model == "per_order":
        return (config.pick_pack_fee_cents + config.handling_fee_cents) / 100

    if config.cost_model == "per_item":
        return (
            config.pick_pack_fee_cents
            + config.handling_fee_cents
            + config.pick_pack_per_item_cents * item_count
        ) / 100

    if config.cost_model == "weight_based":
        estimated_ounces = item_count * ESTIMATED_OUNCES_PER_ITEM
        for tier in config.weight_tiers:
            if tier.min_ounces <= estimated_ounces <= tier.max_ounces:
                return tier.fee_cents / 100
        return config.pick_pack_fee_cents / 100

    # manual
    return config.pick_pack_fee_cents / 100


def calc_packaging_cost(config: FulfillmentConfig) -> float:
    """Packaging cost in dollars, applied regardless of cost model."""
    return config.packaging_cost_cents / 100


def calc_shipping_cost(order_total: float, config: ShippingConfig) -> float:
    """Calculate shipping cost for one order.

    ``actual_expense`` contributes zero: shipping is then booked from real
    carrier expenses elsewhere.
    """
    if config.tracking_method == "estimated_percentage":
        return order_total * (config.estimated_percent or 0.0)
    if config.tracking_method == "flat_rate":
        return (config.flat_rate_cents or 0) / 100
    return 0.0


def calc_other_variable_costs(
    order_total: float, item_count: int, costs: Iterable[OtherVariableCost]
) -> float:
    """Sum active custom variable costs. Inactive entries contribute nothing."""
    total = 0.0
    for cost in costs:
        if not cost.is_active:
            continue
        if cost.calculation_type == "per_order":
            total += cost.amount_cents / 100
        elif cost.calculation_type == "per_item":
            total += (cost.amount_cents / 100) * item_count
        elif cost.calculation_type == "percentage_of_revenue":
            total += order_total * (cost.percentage_rate or 0.0)
    return total


def calculate_formula_preview(
    inp: FormulaPreviewInput,
    config: VariableCostSections | None = None,
    defaults: DefaultsProvider | None = None,
) -> FormulaPreviewResult:
    """Calculate the contribution-margin breakdown for one order.

    Args:
        inp: Order total (dollars), item count and COGS (cents)
        config: Variable cost config; missing sections use defaults
        defaults: Defaults provider (built-in defaults when None)

    Returns:
        FormulaPreviewResult in dollars. Percentages are 0 when the order
        total is 0.

    """
    resolved = resolve_variable_costs(config, defaults)
    order_total = inp.order_total

    payment_fee = calc_payment_processing_fee(order_total, resolved.payment_processing)
    fulfillment = calc_fulfillment_cost(inp.item_count, resolved.fulfillment)
    packaging = calc_packaging_cost(resolved.fulfillment)
    shipping = calc_shipping_cost(order_total, resolved.shipping)
    other = calc_other_variable_costs(
        order_total, inp.item_count, resolved.other_variable_costs or []
    )

    cogs = inp.cogs_cents / 100
    total_variable = payment_fee + fulfillment + packaging + shipping + other
    margin = order_total - cogs - total_variable

    return FormulaPreviewResult(
        gross_revenue=order_total,
        cogs=cogs,
        cogs_percent=cogs / order_total * 100 if order_total > 0 else 0.0,
        payment_processing_fee=payment_fee,
        fulfillment_cost=fulfillment,
        packaging_cost=packaging,
        shipping_cost=shipping,
        other_variable_costs=other,
        total_variable_costs=total_variable,
        contribution_margin=margin,
        contribution_margin_percent=margin / order_total * 100 if order_total > 0 else 0.0,
        effective_variable_cost_per_order=total_variable,
    )


__all__ = [
    "ESTIMATED_OUNCES_PER_ITEM",
    "resolve_variable_costs",
    "calc_payment_processing_fee",
    "calc_fulfillment_cost",
    "calc_packaging_cost",
    "calc_shipping_cost",
    "calc_other_variable_costs",
    "calculate_formula_preview",
]
