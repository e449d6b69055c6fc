"""Configuration management with pydantic-settings.

Provides type-safe configuration with environment variable validation.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Database ===
    database_url: str = Field(
        "sqlite:///./plconfig.db",
        description="Database URL (SQLite for local use, Postgres in production)",
    )

    # === P&L configuration ===
    pl_merge_strategy: str = Field(
        "against_defaults",
        description="Merge base for partial config updates: against_defaults or against_current",
    )
    pl_validate_on_write: bool = Field(True, description="Validate configs before persisting")
    pl_page_size_default: int = Field(50, description="Default page size for listings")
    pl_page_size_max: int = Field(500, description="Maximum page size for listings")
    pl_default_category_order: int = Field(
        50, description="Display order for custom expense categories created without one"
    )

    # === Presentation ===
    currency_locale: str = Field("en_US", description="Default locale for currency formatting")
    currency_code: str = Field("USD", description="Default ISO currency code")

    # === Logging ===
    log_level: str = Field("INFO", description="Root log level")
    log_file_path: str | None = Field(None, description="Rotating JSON log file (None = stdout only)")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Raises:
        RuntimeError: If environment variables fail validation.

    """
    try:
        return Settings()
    except ValidationError as e:
        bad_fields = []
        for error in e.errors():
            field_name = str(error["loc"][0]) if error["loc"] else "?"
            bad_fields.append(field_name.upper())

        error_msg = (
            f"Configuration error: invalid environment variables: "
            f"{', '.join(bad_fields)}\n"
            f"Please fix them in .env file or the process environment."
        )
        raise RuntimeError(error_msg) from e


__all__ = ["Settings", "get_settings"]
