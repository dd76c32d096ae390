"""Local cache package."""

from ledger.services.cache.local_cache import (
    CacheBackend,
    FileCache,
    LedgerCache,
    MemoryCache,
)

__all__ = ["CacheBackend", "FileCache", "LedgerCache", "MemoryCache"]
