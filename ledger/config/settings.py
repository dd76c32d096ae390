"""
Configuration Management for Culture Crunch Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Each external collaborator (ledger API, Google Sheets, Gemini, the local
cache) gets its own settings class with its own env prefix, so a missing
value for one service never blocks the others.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerApiSettings(BaseSettings):
    """Ledger store HTTP API configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_API_",
        extra="ignore"
    )

    base_url: str = Field(
        default="http://localhost:3000/api",
        description="Base URL of the ledger store API"
    )
    transactions_path: str = Field(
        default="/transactions",
        description="Path of the transactions collection"
    )
    subscriptions_path: str = Field(
        default="/subscriptions",
        description="Path of the subscriptions collection"
    )
    login_path: str = Field(
        default="/auth/login",
        description="Path of the auth provider entry point"
    )
    timeout_seconds: float = Field(
        default=15.0,
        ge=1.0,
        le=120.0,
        description="Request timeout in seconds"
    )

    @field_validator('base_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration (user OAuth credentials)."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )
    client_id: str = Field(
        default="",
        description="OAuth client ID, needed to refresh access tokens"
    )
    client_secret: str = Field(
        default="",
        description="OAuth client secret, needed to refresh access tokens"
    )
    token_uri: str = Field(
        default="https://oauth2.googleapis.com/token",
        description="OAuth token endpoint"
    )

    # Sheet names within the spreadsheet
    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the sheet for transactions"
    )
    subscriptions_sheet_name: str = Field(
        default="Subscriptions",
        description="Name of the sheet for subscriptions"
    )


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration for the financial coach."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=2048,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    # The coach is meant to sound warm, not deterministic
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Model temperature"
    )
    context_transactions: int = Field(
        default=50,
        ge=1,
        le=500,
        description="How many recent transactions to send as context"
    )


class CacheSettings(BaseSettings):
    """Local cache configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_CACHE_",
        extra="ignore"
    )

    directory: Path = Field(
        default=Path.home() / ".culture_crunch",
        description="Directory holding one JSON file per cache key"
    )
    transactions_key: str = Field(default="cc_transactions")
    subscriptions_key: str = Field(default="cc_subscriptions")
    auth_key: str = Field(default="cc_auth")
    session_seen_key: str = Field(
        default="cc_session_seen",
        description="Marker written once a session has ever been authenticated"
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

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    cash_flow_months: int = Field(
        default=6,
        ge=1,
        le=36,
        description="Number of calendar months in the cash-flow chart"
    )
    seed_demo_data: bool = Field(
        default=True,
        description="Show example records on a never-authenticated first run"
    )
    default_projection_months: int = Field(
        default=12,
        ge=1,
        description="Projection horizon used when a subscription form leaves it blank"
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
    def ledger_api(self) -> LedgerApiSettings:
        return LedgerApiSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def cache(self) -> CacheSettings:
        return CacheSettings()

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

    for name in ("ledger_api", "google_sheets", "gemini", "cache", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
