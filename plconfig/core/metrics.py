"""Prometheus metrics for P&L configuration and previews."""

from __future__ import annotations

from prometheus_client import Counter

# Config mutations
pl_config_writes_total = Counter(
    "pl_config_writes_total",
    "Total successful P&L configuration writes",
    ["config_type", "action"],  # action: create, update, delete, bulk_update, import
)

pl_config_validation_errors_total = Counter(
    "pl_config_validation_errors_total",
    "Total config writes rejected by validation",
    ["config_type"],
)

pl_config_conflicts_total = Counter(
    "pl_config_conflicts_total",
    "Total config writes rejected by version or identity conflicts",
    ["config_type"],
)

# Audit trail
pl_audit_entries_total = Counter(
    "pl_audit_entries_total",
    "Total audit log entries recorded",
    ["config_type", "action"],
)

pl_audit_failures_total = Counter(
    "pl_audit_failures_total",
    "Total audit log writes that failed",
    ["config_type"],
)

# Calculator
pl_formula_previews_total = Counter(
    "pl_formula_previews_total",
    "Total contribution-margin previews computed",
    ["source"],  # source: preview_formula, order_margin
)

# Tenant scoping violations
tenant_unscoped_query_total = Counter(
    "tenant_unscoped_query_total",
    "Total queries attempted without proper tenant_id scoping",
    ["error_type"],  # error_type: missing_tenant_id, missing_column
)
