"""Configuration package."""

from ledger.config.settings import (
    AppSettings,
    CacheSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    LedgerApiSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "CacheSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "LedgerApiSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
