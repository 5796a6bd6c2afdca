"""
Configuration Management for FinControl

Settings come from the environment and an optional .env file.

DESIGN DECISION: Configuration lives in this module only.
The ledger itself needs no configuration; only the remote mirror and the
summary thresholds do. A missing Google Sheets section simply means the
app runs local-only.
"""

import warnings
from functools import lru_cache
from pathlib import Path

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets remote mirror configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Service account key file (JSON)"
    )
    spreadsheet_id: str = Field(
        ...,
        description="Spreadsheet holding the ledger worksheets"
    )

    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Worksheet the audit trail is appended to"
    )
    poll_interval_seconds: float = Field(
        default=5.0,
        ge=0.5,
        description="How often subscriptions re-read a collection sheet"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        if not Path(v).exists():
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before linking the cloud mirror."
            )
        return v


class AppSettings(BaseSettings):
    """Display and monthly-health settings, read from the environment and .env."""

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

    currency_code: str = Field(
        default="ARS",
        min_length=3,
        max_length=3,
        description="ISO currency code amounts are displayed in"
    )

    # Monthly health thresholds (expense as % of income)
    usage_warning_percent: float = Field(
        default=70.0,
        ge=0.0,
        description="Usage above this turns the month yellow"
    )
    usage_critical_percent: float = Field(
        default=95.0,
        ge=0.0,
        description="Usage above this turns the month red"
    )

    @model_validator(mode='after')
    def validate_thresholds(self) -> 'AppSettings':
        if self.usage_warning_percent > self.usage_critical_percent:
            raise ValueError(
                "usage_warning_percent must not exceed usage_critical_percent"
            )
        return self


class Settings(BaseSettings):
    """
    Root settings container.

    Sections are built on access, so a missing spreadsheet configuration
    only fails the code paths that link the cloud mirror.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings; get_settings.cache_clear() forces a reload."""
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Report which configuration sections load.

    A failing google_sheets section is not fatal: the ledger then runs
    local-only. The reason is kept under "<section>_error".
    """
    settings = get_settings()
    results: dict = {}

    for section in ("google_sheets", "app"):
        try:
            getattr(settings, section)
        except ValidationError as e:
            results[section] = False
            results[f"{section}_error"] = str(e)
        else:
            results[section] = True

    return results
