"""Write-time validation for P&L configs.

The calculator accepts any well-typed config; these checks stop inconsistent
configs from being persisted in the first place. Each ``*_problems`` function
returns human-readable problems (empty when valid) and the ``ensure_*``
wrappers raise ``ConfigValidationError``.

NO DATA ACCESS - pure functions only.
"""

from __future__ import annotations

from collections.abc import Iterable

from plconfig.core.errors import ConfigValidationError
from plconfig.domain.finance.types import (
    COGSSettings,
    FulfillmentConfig,
    OtherVariableCost,
    PaymentProcessingConfig,
    PLFormulaSettings,
    ProductCOGSBulkItem,
    ShippingConfig,
    VariableCostSections,
)


def _non_negative(problems: list[str], label: str, value: int | float | None) -> None:
    if value is not None and value < 0:
        problems.append(f"{label} must be >= 0 (got {value})")


def _rate(problems: list[str], label: str, value: float | None) -> None:
    if value is not None and not 0 <= value <= 1:
        problems.append(f"{label} must be a decimal between 0 and 1 (got {value})")


def payment_processing_problems(config: PaymentProcessingConfig) -> list[str]:
    problems: list[str] = []
    _rate(problems, "paymentProcessing.percentageRate", config.percentage_rate)
    _non_negative(problems, "paymentProcessing.fixedFeeCents", config.fixed_fee_cents)

    total_volume = 0.0
    for i, proc in enumerate(config.additional_processors):
        label = f"paymentProcessing.additionalProcessors[{i}]"
        _rate(problems, f"{label}.percentageRate", proc.percentage_rate)
        _non_negative(problems, f"{label}.fixedFeeCents", proc.fixed_fee_cents)
        if not 0 <= proc.volume_percent <= 100:
            problems.append(f"{label}.volumePercent must be between 0 and 100")
        total_volume += proc.volume_percent

    if total_volume > 100:
        problems.append(
            f"additional processors claim {total_volume:g}% of volume; the total must be <= 100"
        )
    return problems


def fulfillment_problems(config: FulfillmentConfig) -> list[str]:
    problems: list[str] = []
    _non_negative(problems, "fulfillment.pickPackFeeCents", config.pick_pack_fee_cents)
    _non_negative(problems, "fulfillment.pickPackPerItemCents", config.pick_pack_per_item_cents)
    _non_negative(problems, "fulfillment.packagingCostCents", config.packaging_cost_cents)
    _non_negative(problems, "fulfillment.handlingFeeCents", config.handling_fee_cents)

    for i, tier in enumerate(config.weight_tiers):
        label = f"fulfillment.weightTiers[{i}]"
        _non_negative(problems, f"{label}.minOunces", tier.min_ounces)
        _non_negative(problems, f"{label}.feeCents", tier.fee_cents)
        if tier.min_ounces > tier.max_ounces:
            problems.append(f"{label} minOunces must be <= maxOunces")

    # Tiers may share a boundary (0-16, 16-32) but must not overlap beyond it.
    ordered = sorted(config.weight_tiers, key=lambda t: (t.min_ounces, t.max_ounces))
    for prev, cur in zip(ordered, ordered[1:]):
        if cur.min_ounces < prev.max_ounces:
            problems.append(
                f"weight tiers {prev.min_ounces:g}-{prev.max_ounces:g} and "
                f"{cur.min_ounces:g}-{cur.max_ounces:g} overlap"
            )
    return problems


def shipping_problems(config: ShippingConfig) -> list[str]:
    problems: list[str] = []
    _rate(problems, "shipping.estimatedPercent", config.estimated_percent)
    _non_negative(problems, "shipping.flatRateCents", config.flat_rate_cents)

    if config.tracking_method == "estimated_percentage" and config.estimated_percent is None:
        problems.append("shipping.trackingMethod estimated_percentage requires estimatedPercent")
    if config.tracking_method == "flat_rate" and config.flat_rate_cents is None:
        problems.append("shipping.trackingMethod flat_rate requires flatRateCents")
    return problems


def other_variable_costs_problems(costs: Iterable[OtherVariableCost]) -> list[str]:
    problems: list[str] = []
    seen: set[str] = set()
    for i, cost in enumerate(costs):
        label = f"otherVariableCosts[{i}]"
        if cost.id in seen:
            problems.append(f"{label}.id {cost.id!r} is duplicated")
        seen.add(cost.id)
        _non_negative(problems, f"{label}.amountCents", cost.amount_cents)
        _rate(problems, f"{label}.percentageRate", cost.percentage_rate)
        if cost.calculation_type == "percentage_of_revenue" and cost.percentage_rate is None:
            problems.append(f"{label} percentage_of_revenue requires percentageRate")
    return problems


def variable_cost_problems(config: VariableCostSections) -> list[str]:
    """Collect problems across all present variable cost sections."""
    problems: list[str] = []
    if config.payment_processing is not None:
        problems += payment_processing_problems(config.payment_processing)
    if config.fulfillment is not None:
        problems += fulfillment_problems(config.fulfillment)
    if config.shipping is not None:
        problems += shipping_problems(config.shipping)
    if config.other_variable_costs is not None:
        problems += other_variable_costs_problems(config.other_variable_costs)
    return problems


def cogs_settings_problems(config: COGSSettings) -> list[str]:
    problems: list[str] = []
    _non_negative(problems, "fallbackDefaultCogsCents", config.fallback_default_cogs_cents)
    if config.fallback_percent is not None and not 0 <= config.fallback_percent <= 100:
        problems.append("fallbackPercent must be between 0 and 100")

    if config.fallback_behavior == "percentage_of_price" and config.fallback_percent is None:
        problems.append("fallbackBehavior percentage_of_price requires fallbackPercent")
    if config.fallback_behavior == "use_default" and config.fallback_default_cogs_cents is None:
        problems.append("fallbackBehavior use_default requires fallbackDefaultCogsCents")
    if not config.shopify_cost_field.strip():
        problems.append("shopifyCostField must not be empty")
    return problems


def pl_formula_problems(config: PLFormulaSettings) -> list[str]:
    problems: list[str] = []
    for section in ("cogs", "variable_costs", "contribution_margin", "marketing", "operating_expenses"):
        if not getattr(config, section).label.strip():
            problems.append(f"{section}.label must not be empty")
    if not config.net_profit_label.strip():
        problems.append("netProfitLabel must not be empty")

    order = config.operating_expenses.categories_order
    duplicates = sorted({c for c in order if order.count(c) > 1})
    if duplicates:
        problems.append(f"operatingExpenses.categoriesOrder repeats {', '.join(duplicates)}")
    return problems


def product_cogs_problems(item: ProductCOGSBulkItem) -> list[str]:
    problems: list[str] = []
    if not item.product_id:
        problems.append("productId must not be empty")
    _non_negative(problems, "cogsCents", item.cogs_cents)
    return problems


def ensure_valid_variable_costs(config: VariableCostSections) -> None:
    """Raise ConfigValidationError if the variable cost config is inconsistent.

    Raises:
        ConfigValidationError: Listing every problem found

    """
    problems = variable_cost_problems(config)
    if problems:
        raise ConfigValidationError("variable_costs", problems)


def ensure_valid_cogs_settings(config: COGSSettings) -> None:
    problems = cogs_settings_problems(config)
    if problems:
        raise ConfigValidationError("cogs_source", problems)


def ensure_valid_pl_formula(config: PLFormulaSettings) -> None:
    problems = pl_formula_problems(config)
    if problems:
        raise ConfigValidationError("formula", problems)


def ensure_valid_product_cogs(item: ProductCOGSBulkItem) -> None:
    problems = product_cogs_problems(item)
    if problems:
        raise ConfigValidationError("product_cogs", problems)


__all__ = [
    "payment_processing_problems",
    "fulfillment_problems",
    "shipping_problems",
    "other_variable_costs_problems",
    "variable_cost_problems",
    "cogs_settings_problems",
    "pl_formula_problems",
    "product_cogs_problems",
    "ensure_valid_variable_costs",
    "ensure_valid_cogs_settings",
    "ensure_valid_pl_formula",
    "ensure_valid_product_cogs",
]
