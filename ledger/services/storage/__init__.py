"""
Ledger Store Package

Provides the abstract store interface and its two implementations:
the hosted ledger API over HTTP and direct Google Sheets access.
"""

from ledger.services.storage.interface import (
    AuthorizationExpiredError,
    LedgerStore,
    NotFoundError,
    StorageError,
    StoreCredentials,
    StoreUnavailableError,
)
from ledger.services.storage.http_store import HttpLedgerStore
from ledger.services.storage.google_sheets import GoogleSheetsLedgerStore

__all__ = [
    # Interface
    "LedgerStore",
    "StoreCredentials",
    # Exceptions
    "AuthorizationExpiredError",
    "NotFoundError",
    "StorageError",
    "StoreUnavailableError",
    # Implementations
    "GoogleSheetsLedgerStore",
    "HttpLedgerStore",
]
