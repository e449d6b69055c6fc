"""Partial-update merge logic for per-tenant configs.

A partial update is merged field-by-field onto a *base* value for each nested
section. Which base is used is an explicit choice:

- ``against_defaults``: omitted sections and fields revert to the documented
  defaults, regardless of what is stored. An update that only touches
  ``payment_processing`` resets ``fulfillment`` to its default.
- ``against_current``: omitted sections and fields keep their stored value
  (falling back to defaults when nothing is stored yet).

NO DATA ACCESS - pure functions only.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import TypeVar, get_args

from pydantic import BaseModel
from pydantic.fields import FieldInfo

from plconfig.domain.finance.types import (
    COGSConfigUpdate,
    COGSSettings,
    PLFormulaConfigUpdate,
    PLFormulaSettings,
    VariableCostConfigUpdate,
    VariableCostSections,
)

M = TypeVar("M", bound=BaseModel)

VARIABLE_COST_SECTIONS = ("payment_processing", "fulfillment", "shipping", "other_variable_costs")
COGS_FIELDS = tuple(COGSSettings.model_fields)
PL_FORMULA_FIELDS = tuple(PLFormulaSettings.model_fields)


class MergeStrategy(str, Enum):
    """Base that omitted fields of a partial update are taken from."""

    AGAINST_DEFAULTS = "against_defaults"
    AGAINST_CURRENT = "against_current"


def parse_merge_strategy(value: MergeStrategy | str) -> MergeStrategy:
    """Coerce a setting or caller value to MergeStrategy.

    Raises:
        ValueError: If value names no known strategy

    """
    try:
        return MergeStrategy(value)
    except ValueError:
        raise ValueError(
            f"Unknown merge strategy: {value!r} "
            f"(expected one of {', '.join(s.value for s in MergeStrategy)})"
        ) from None


def _accepts_none(field: FieldInfo) -> bool:
    return type(None) in get_args(field.annotation)


def merge_section(base: M, patch: BaseModel | None) -> M:
    """Overlay the explicitly set fields of ``patch`` onto ``base``.

    Returns a new validated instance of ``base``'s type; ``base`` is untouched.
    """
    if patch is None:
        return base.model_copy(deep=True)

    fields = type(base).model_fields
    values = base.model_dump()
    for name, value in patch.model_dump(exclude_unset=True).items():
        # explicit None only clears fields that accept it; others keep the base value
        if name in fields and (value is not None or _accepts_none(fields[name])):
            values[name] = value
    return type(base).model_validate(values)


def merge_variable_costs(
    base: VariableCostSections, update: VariableCostConfigUpdate
) -> VariableCostSections:
    """Merge a variable cost update onto a complete set of sections.

    ``other_variable_costs`` is a list and is replaced wholesale.
    """
    other = update.other_variable_costs
    if other is None:
        other = base.other_variable_costs or []

    return VariableCostSections(
        payment_processing=merge_section(base.payment_processing, update.payment_processing),
        fulfillment=merge_section(base.fulfillment, update.fulfillment),
        shipping=merge_section(base.shipping, update.shipping),
        other_variable_costs=[c.model_copy(deep=True) for c in other],
    )


def merge_cogs_settings(base: COGSSettings, update: COGSConfigUpdate) -> COGSSettings:
    """Merge a COGS settings update onto a base."""
    return merge_section(base, update)


def merge_pl_formula(base: PLFormulaSettings, update: PLFormulaConfigUpdate) -> PLFormulaSettings:
    """Merge a formula config update onto a base, section by section."""
    scalars = update.model_dump(
        include={"show_operating_income", "show_other_income_expense", "net_profit_label"},
        exclude_none=True,
    )
    return PLFormulaSettings(
        revenue=merge_section(base.revenue, update.revenue),
        cogs=merge_section(base.cogs, update.cogs),
        variable_costs=merge_section(base.variable_costs, update.variable_costs),
        contribution_margin=merge_section(base.contribution_margin, update.contribution_margin),
        marketing=merge_section(base.marketing, update.marketing),
        operating_expenses=merge_section(base.operating_expenses, update.operating_expenses),
        show_operating_income=scalars.get("show_operating_income", base.show_operating_income),
        show_other_income_expense=scalars.get(
            "show_other_income_expense", base.show_other_income_expense
        ),
        net_profit_label=scalars.get("net_profit_label", base.net_profit_label),
    )


def changed_fields(old: BaseModel | None, new: BaseModel, fields: Iterable[str]) -> list[str]:
    """Names of ``fields`` whose values differ between two config snapshots.

    With no previous snapshot every field counts as changed.
    """
    names = list(fields)
    if old is None:
        return names

    old_values = old.model_dump(include=set(names))
    new_values = new.model_dump(include=set(names))
    return [n for n in names if old_values.get(n) != new_values.get(n)]


__all__ = [
    "MergeStrategy",
    "parse_merge_strategy",
    "merge_section",
    "merge_variable_costs",
    "merge_cogs_settings",
    "merge_pl_formula",
    "changed_fields",
    "VARIABLE_COST_SECTIONS",
    "COGS_FIELDS",
    "PL_FORMULA_FIELDS",
]
