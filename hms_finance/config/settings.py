"""
HMS Finance Settings

Every knob is read from the environment (or a local .env file) through
pydantic-settings. Each external collaborator gets its own prefixed
section so a partially configured deployment can still start: receipts
need CLOUDINARY_*, durable storage needs GOOGLE_SHEETS_*, and the
ledger itself runs with no configuration at all.
"""

import warnings
from functools import lru_cache
from pathlib import Path

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CloudinarySettings(BaseSettings):
    """Cloudinary receipt image storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CLOUDINARY_",
        extra="ignore"
    )

    cloud_name: str = Field(
        ...,
        description="Cloudinary cloud name"
    )
    api_key: str = Field(
        ...,
        description="Cloudinary API key"
    )
    api_secret: str = Field(
        ...,
        description="Cloudinary API secret"
    )
    folder: str = Field(
        default="hms_finance",
        description="Folder that receipt images are uploaded into"
    )


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

    # Sheet names within the spreadsheet
    events_sheet_name: str = Field(
        default="Events",
        description="Name of the sheet for events"
    )
    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the sheet for committed transactions"
    )
    requests_sheet_name: str = Field(
        default="Requests",
        description="Name of the sheet for pending requests"
    )

    @field_validator('credentials_path')
    @classmethod
    def warn_missing_credentials(cls, v: str) -> str:
        # Secrets are often mounted after the container starts
        if not Path(v).exists():
            warnings.warn(f"Service account file {v} does not exist yet")
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

    currency: str = Field(
        default="PKR",
        max_length=8,
        description="Currency label used in request descriptions and reports"
    )

    # Receipt image limits
    receipt_max_width: int = Field(
        default=800,
        ge=100,
        le=4000,
        description="Receipts wider than this are scaled down before upload"
    )
    receipt_quality: int = Field(
        default=60,
        ge=10,
        le=95,
        description="Initial JPEG quality for receipt compression"
    )
    receipt_max_size_kb: float = Field(
        default=58.3,
        gt=0,
        description="Target maximum size of a compressed receipt"
    )

    # Validation thresholds
    max_transaction_amount: float = Field(
        default=100000000.0,
        description="Maximum reasonable transaction amount (for sanity checking)"
    )
    future_date_tolerance_days: int = Field(
        default=7,
        description="How many days in the future a transaction date can be"
    )

    @property
    def receipt_max_size_bytes(self) -> int:
        """Get receipt size limit in bytes."""
        return int(self.receipt_max_size_kb * 1024)


class Settings(BaseSettings):
    """Entry point for every settings section; sections load on access."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def cloudinary(self) -> CloudinarySettings:
        return CloudinarySettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings. Tests call ``get_settings.cache_clear()``."""
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Report which settings sections load from the current environment.

    A section that fails also gets a ``<name>_error`` entry with the
    reason, so a startup check can print what is missing.
    """
    settings = get_settings()
    results = {}

    for section in ("app", "cloudinary", "google_sheets"):
        try:
            getattr(settings, section)
        except ValidationError as e:
            results[section] = False
            results[f"{section}_error"] = str(e)
        else:
            results[section] = True

    return results
