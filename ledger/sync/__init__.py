"""Remote synchronization package."""

from ledger.sync.remote import (
    CacheOnlyBackend,
    LedgerBackend,
    RemoteSyncClient,
    select_backend,
)

__all__ = [
    "CacheOnlyBackend",
    "LedgerBackend",
    "RemoteSyncClient",
    "select_backend",
]
