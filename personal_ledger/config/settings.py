"""
Configuration Management for Personal Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Reserved names (tithe account, fee category, adjustment category) live here
too, so the ledger services never hard-code them.
"""

from decimal import Decimal
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Ledger mutation settings and reserved names."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    default_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Currency assigned to auto-provisioned accounts"
    )
    reference_timezone: str = Field(
        default="UTC",
        description="Timezone used to bucket dates into months"
    )
    balance_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        gt=0,
        description="Smallest balance difference treated as a real change"
    )

    # Reserved names
    tithe_account_name: str = Field(
        default="Tithes",
        description="Name of the auto-provisioned tithe account"
    )
    fee_category_name: str = Field(
        default="Bank Fees",
        description="Expense category for synthetic transfer fees"
    )
    fee_description: str = Field(
        default="Transfer fee",
        description="Description recorded on synthetic fee expenses"
    )
    adjustment_category_name: str = Field(
        default="Initial Balance/Adjustment",
        description="Category for balance adjustment records"
    )
    adjustment_description: str = Field(
        default="Manual Balance Adjustment",
        description="Description recorded on balance adjustment records"
    )

    # Allocation defaults
    tithe_enabled_by_default: bool = Field(
        default=False,
        description="Apply tithe allocation when an income does not say"
    )
    default_tithe_percentage: Decimal = Field(
        default=Decimal("10"),
        ge=0,
        le=100,
    )
    max_emergency_fund_percentage: Decimal = Field(
        default=Decimal("50"),
        gt=0,
        le=100,
    )

    @field_validator("reference_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject timezone names the interpreter cannot resolve."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.reference_timezone)


class AnalyticsSettings(BaseSettings):
    """Windows and thresholds for the read-side analytics."""

    model_config = SettingsConfigDict(
        env_prefix="ANALYTICS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    income_stability_months: int = Field(default=6, ge=2, le=36)
    runway_expense_months: int = Field(default=3, ge=1, le=24)
    budget_history_months: int = Field(default=6, ge=1, le=36)
    problem_months_threshold: int = Field(
        default=3,
        ge=1,
        description="Months over budget before a category is a problem"
    )
    budget_warning_percent: float = Field(default=80.0, gt=0, le=100)
    budget_under_percent: float = Field(default=60.0, gt=0, le=100)

    # Fund health defaults (months of coverage)
    fund_threshold_low: Decimal = Field(default=Decimal("2"), ge=0)
    fund_threshold_mid: Decimal = Field(default=Decimal("4"), ge=0)
    fund_threshold_high: Decimal = Field(default=Decimal("6"), gt=0)


class StorageSettings(BaseSettings):
    """Storage backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    backend: str = Field(
        default="memory",
        pattern="^(memory|sqlite)$",
        description="Which store adapter to use"
    )
    sqlite_path: str = Field(
        default="personal_ledger.db",
        description="Database file for the sqlite backend"
    )
    connect_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts when opening the store connection"
    )
    persist_audit_events: bool = Field(
        default=True,
        description="Append audit events to the store as well as the log"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def analytics(self) -> AnalyticsSettings:
        return AnalyticsSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, object]:
    """
    Validate all settings are properly configured.

    Returns a dict of {section_name: is_valid}, plus "<section>_error"
    entries for sections that failed. Useful for startup checks.
    """
    results: dict[str, object] = {}
    settings = get_settings()

    for section in ("ledger", "analytics", "storage"):
        try:
            getattr(settings, section)
            results[section] = True
        except ValueError as e:
            results[section] = False
            results[f"{section}_error"] = str(e)

    return results
