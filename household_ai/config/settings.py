"""
Configuration Management for Household AI

Engine limits, storage and logging are read from environment variables
(and an optional .env file) through pydantic-settings.

DESIGN DECISION: All configuration is centralized here and loaded once.
Components receive the settings object by reference through their
constructors; nothing re-reads the environment per call.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Proposal, undo and trust behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="HOUSEHOLD_AI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    proposal_ttl_seconds: int = Field(
        default=600,
        ge=10,
        le=86400,
        description="How long a proposal waits for a decision before it expires"
    )
    undo_window_seconds: int = Field(
        default=60,
        ge=1,
        le=86400,
        description="How long after success an action can be undone"
    )
    default_trust_level: int = Field(
        default=1,
        ge=1,
        le=5,
        description="Trust level given to households without a trust record"
    )
    adaptive_trust_enabled: bool = Field(
        default=True,
        description="Raise/lower trust levels from action outcomes"
    )
    timestamp_history_limit: int = Field(
        default=200,
        ge=1,
        description="Upper bound on stored rate-window timestamps per household"
    )
    recent_undoable_limit: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Default number of entries returned by recent_undoable"
    )


class GoogleSheetsSettings(BaseSettings):
    """Spreadsheet holding the audit log, proposals, trust and household records."""

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
    audit_sheet_name: str = Field(
        default="AIAuditLog",
        description="Name of the sheet for the AI audit log"
    )
    proposals_sheet_name: str = Field(
        default="AIProposals",
        description="Name of the sheet for proposals"
    )
    trust_sheet_name: str = Field(
        default="HouseholdAITrust",
        description="Name of the sheet for household trust settings"
    )
    records_sheet_name: str = Field(
        default="HouseholdRecords",
        description="Name of the sheet for household records"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Missing credentials only warn; the file may be mounted after start-up."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """Process-level settings: environment and local logging."""

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
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for local logs"
    )
    log_json: bool = Field(
        default=True,
        description="Render logs as JSON (False renders for a console)"
    )


class Settings(BaseSettings):
    """
    Root settings.

    Each property builds its sub-settings on access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily so a deployment without Sheets
    # credentials can still run on in-memory storage.

    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    The process-wide settings, built on first call.

    Tests call get_settings.cache_clear() to pick up a changed environment.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Try to load every settings group.

    Returns {group: loaded} plus a "<group>_error" message for each
    group that failed, so start-up can report what is missing.
    """
    results = {}

    settings = get_settings()

    checks = {
        "engine": lambda: settings.engine,
        "google_sheets": lambda: settings.google_sheets,
        "app": lambda: settings.app,
    }

    for name, load in checks.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
