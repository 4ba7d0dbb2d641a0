"""
Configuration Management for the Finance Engine

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every cap that bounds an iteration (schedule length, projection horizon,
ledger retries) is a setting, so it is visible and validated at startup.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Limits for the amortization and growth projection engines."""

    model_config = SettingsConfigDict(
        env_prefix="ENGINE_",
        extra="ignore"
    )

    max_amortization_periods: int = Field(
        default=600,
        ge=1,
        le=1200,
        description="Hard cap on the number of periods in an amortization schedule"
    )
    max_projection_years: int = Field(
        default=100,
        ge=1,
        le=200,
        description="Hard cap on the growth projection horizon, in years"
    )
    currency_places: int = Field(
        default=2,
        ge=0,
        le=4,
        description="Decimal places emitted in schedule and projection records"
    )

    @property
    def max_projection_months(self) -> int:
        """Projection cap expressed in monthly records."""
        return self.max_projection_years * 12


class LedgerSettings(BaseSettings):
    """Optimistic-lock retry policy for the balance ledger."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        extra="ignore"
    )

    max_attempts: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Attempts at a conflicting adjustment before giving up"
    )
    retry_wait_multiplier: float = Field(
        default=0.01,
        ge=0.0,
        description="Base of the random exponential backoff, in seconds"
    )
    retry_wait_max_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Upper bound on a single backoff wait"
    )


class StorageSettings(BaseSettings):
    """Storage backend selection."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        extra="ignore"
    )

    backend: Literal["memory", "sql"] = Field(
        default="memory",
        description="Which storage backend to wire up"
    )
    database_url: str = Field(
        default="sqlite:///finance_engine.db",
        description="SQLAlchemy database URL for the sql backend"
    )
    echo_sql: bool = Field(
        default=False,
        description="Log emitted SQL statements"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for local structured logs"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Only accept standard logging level names."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Unsupported log level: {v}. Allowed: {allowed}")
        return v.upper()


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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("engine", "ledger", "storage", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
