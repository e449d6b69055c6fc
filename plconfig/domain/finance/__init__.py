"""P&L configuration domain: schemas, defaults and the contribution-margin calculator."""

from plconfig.domain.finance.cogs import resolve_cogs_cents
from plconfig.domain.finance.defaults import DefaultsProvider, get_defaults
from plconfig.domain.finance.formula import calculate_formula_preview, resolve_variable_costs
from plconfig.domain.finance.merge import MergeStrategy, parse_merge_strategy
from plconfig.domain.finance.money import (
    calculate_cogs_for_margin,
    calculate_margin,
    calculate_price_for_margin,
    cents_to_dollars,
    decimal_to_percent,
    dollars_to_cents,
    format_currency,
    percent_to_decimal,
)

__all__ = [
    "DefaultsProvider",
    "get_defaults",
    "MergeStrategy",
    "parse_merge_strategy",
    "calculate_formula_preview",
    "resolve_variable_costs",
    "resolve_cogs_cents",
    "format_currency",
    "cents_to_dollars",
    "dollars_to_cents",
    "percent_to_decimal",
    "decimal_to_percent",
    "calculate_margin",
    "calculate_price_for_margin",
    "calculate_cogs_for_margin",
]
