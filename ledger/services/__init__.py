"""Services package."""

from ledger.services.cache import (
    CacheBackend,
    FileCache,
    LedgerCache,
    MemoryCache,
)
from ledger.services.storage import (
    AuthorizationExpiredError,
    GoogleSheetsLedgerStore,
    HttpLedgerStore,
    LedgerStore,
    NotFoundError,
    StorageError,
    StoreCredentials,
    StoreUnavailableError,
)

__all__ = [
    # Cache
    "CacheBackend",
    "FileCache",
    "LedgerCache",
    "MemoryCache",
    # Storage
    "AuthorizationExpiredError",
    "GoogleSheetsLedgerStore",
    "HttpLedgerStore",
    "LedgerStore",
    "NotFoundError",
    "StorageError",
    "StoreCredentials",
    "StoreUnavailableError",
]
