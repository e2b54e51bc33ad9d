"""
Configuration Management for Family Finance

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # One worksheet per collection
    transactions_sheet_name: str = Field(default="Transactions")
    budget_categories_sheet_name: str = Field(default="BudgetCategories")
    savings_goals_sheet_name: str = Field(default="SavingsGoals")
    profiles_sheet_name: str = Field(default="Profiles")
    users_sheet_name: str = Field(
        default="Users",
        description="Name of the sheet holding sign-in credentials"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


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

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    storage_backend: str = Field(
        default="memory",
        pattern="^(memory|google_sheets)$",
        description="Which persistence client to build at startup"
    )

    # Money
    default_currency: str = Field(
        default="IDR",
        pattern="^(IDR|USD)$",
        description="Currency assigned to transactions that don't name one"
    )
    savings_category_keyword: str = Field(
        default="saving",
        min_length=1,
        description="Categories containing this text (any case) feed savings goals"
    )

    # Validation thresholds
    max_transaction_amount: float = Field(
        default=1_000_000_000.0,
        gt=0,
        description="Amounts above this are flagged for a second look"
    )
    future_date_tolerance_days: int = Field(
        default=7,
        ge=0,
        description="How many days in the future a transaction date can be"
    )
    min_password_length: int = Field(
        default=6,
        ge=1,
        le=128,
        description="Minimum length for new passwords"
    )

    # Dashboard
    recent_transactions_count: int = Field(
        default=5,
        ge=1,
        le=50,
        description="How many transactions the dashboard lists"
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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

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

    try:
        _ = settings.app
        results["app"] = True
    except ValidationError as e:
        results["app"] = False
        results["app_error"] = str(e)

    # Sheets are only required when selected as the backend
    if results["app"] and settings.app.storage_backend != "google_sheets":
        return results

    try:
        _ = settings.google_sheets
        results["google_sheets"] = True
    except ValidationError as e:
        results["google_sheets"] = False
        results["google_sheets_error"] = str(e)

    return results
