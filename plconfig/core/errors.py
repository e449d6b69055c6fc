"""Error taxonomy for P&L configuration.

A missing config row is not an error: lookups return ``None`` and callers
fall back to defaults. Storage failures are SQLAlchemy exceptions and are
propagated unchanged.
"""

from __future__ import annotations


class PLConfigError(Exception):
    """Base class for P&L configuration errors."""


class ConfigValidationError(PLConfigError, ValueError):
    """Partial update would persist an inconsistent config."""

    def __init__(self, config_type: str, problems: list[str]):
        self.config_type = config_type
        self.problems = list(problems)
        super().__init__(f"Invalid {config_type} config: {'; '.join(self.problems)}")


class ConfigConflictError(PLConfigError):
    """Write rejected because it conflicts with stored state."""

    def __init__(self, config_type: str, message: str):
        self.config_type = config_type
        super().__init__(message)


class TenantScopeError(PLConfigError, RuntimeError):
    """Query attempted without a tenant id."""


__all__ = [
    "PLConfigError",
    "ConfigValidationError",
    "ConfigConflictError",
    "TenantScopeError",
]
