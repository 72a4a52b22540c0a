"""
Configuration Management for Finance Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Storage location, ledger thresholds and logging output are all
validated at startup instead of being scattered as constants.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def default_data_dir() -> Path:
    """Default data directory (XDG compliant)."""
    xdg_data_home = os.getenv("XDG_DATA_HOME", str(Path.home() / ".local" / "share"))
    return Path(xdg_data_home) / "finance-tracker"


class StorageSettings(BaseSettings):
    """Where the state blob lives."""

    model_config = SettingsConfigDict(
        env_prefix="FINANCE_TRACKER_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    data_file: Path = Field(
        default_factory=lambda: default_data_dir() / "ledger.json",
        description="Path of the persisted state blob"
    )
    export_dir: Path = Field(
        default_factory=lambda: Path.cwd(),
        description="Directory where backups are written"
    )
    write_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="How many times a failed write is attempted"
    )


class LedgerSettings(BaseSettings):
    """
    Ledger behaviour and metric thresholds.

    Percentages are expressed on a 0-100 scale.
    """

    model_config = SettingsConfigDict(
        env_prefix="FINANCE_TRACKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    reconciliation_tolerance: float = Field(
        default=0.01,
        gt=0.0,
        le=1.0,
        description="Differences below this are considered balanced"
    )
    warn_on_orphaned_reference: bool = Field(
        default=True,
        description="Log a warning when a movement points at a deleted account"
    )

    # Budget tiers
    budget_warning_percent: float = Field(
        default=60.0,
        ge=0.0,
        le=100.0,
        description="Budget usage at which status becomes 'warning'"
    )
    budget_danger_percent: float = Field(
        default=85.0,
        ge=0.0,
        le=100.0,
        description="Budget usage above which status becomes 'danger'"
    )

    # Subscription tiers
    subscription_warning_days: int = Field(
        default=7,
        ge=0,
        description="Days remaining at or below which a subscription is 'warning'"
    )
    subscription_danger_days: int = Field(
        default=3,
        ge=0,
        description="Days remaining at or below which a subscription is 'danger'"
    )

    # Dashboard lists
    upcoming_payments_limit: int = Field(default=5, ge=1, le=100)
    recent_activity_limit: int = Field(default=5, ge=1, le=100)

    @model_validator(mode='after')
    def validate_tiers(self) -> 'LedgerSettings':
        """Tier thresholds must be ordered."""
        if self.budget_warning_percent > self.budget_danger_percent:
            raise ValueError("Budget warning threshold cannot exceed danger threshold")
        if self.subscription_danger_days > self.subscription_warning_days:
            raise ValueError("Subscription danger days cannot exceed warning days")
        return self


class LoggingSettings(BaseSettings):
    """Structured logging output."""

    model_config = SettingsConfigDict(
        env_prefix="FINANCE_TRACKER_LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    level: str = Field(
        default="INFO",
        description="Minimum log level"
    )
    json_output: bool = Field(
        default=True,
        description="Render logs as JSON lines instead of console text"
    )

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Only accept standard logging level names."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Unsupported log level: {v}. Allowed: {sorted(allowed)}")
        return v.upper()


class Settings(BaseSettings):
    """
    Root settings object.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def logging(self) -> LoggingSettings:
        return LoggingSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings(settings: Optional[Settings] = None) -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries for the ones that failed.
    """
    results = {}
    settings = settings or get_settings()

    for name in ("storage", "ledger", "logging"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
