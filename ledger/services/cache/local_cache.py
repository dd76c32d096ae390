"""
Local Cache

Durable key-value storage for the last-known-good ledger collections and
the auth session. It is the offline store when nobody is logged in and the
fallback when the remote store cannot be reached.

DESIGN DECISION: Whole-value replacement per key.
save() always writes the complete serialized value (temp file + rename),
never a partial edit, so one key can never be observed half-written.

DESIGN DECISION: A corrupt entry is "no data", never an error.
Anything that fails to parse or validate loads as an empty collection.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from ledger.audit import AuditLogger
from ledger.config import CacheSettings
from ledger.models.ledger import Subscription, Transaction


class CacheBackend(ABC):
    """
    Abstract key-value store holding JSON-serializable values.

    Implementations must never raise on a missing key.
    """

    @abstractmethod
    def load(self, key: str) -> Optional[Any]:
        """
        Load the value stored under key.

        Returns:
            The decoded value, or None if absent or unreadable
        """
        pass

    @abstractmethod
    def save(self, key: str, value: Any) -> None:
        """Replace the value stored under key."""
        pass

    @abstractmethod
    def clear(self, key: str) -> None:
        """Remove key. Clearing a missing key is a no-op."""
        pass


class FileCache(CacheBackend):
    """One pretty-printed JSON file per key inside a directory."""

    def __init__(self, directory: Path):
        self._directory = Path(directory).expanduser()

    def _path(self, key: str) -> Path:
        return self._directory / f"{key}.json"

    def load(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError):
            return None

    def save(self, key: str, value: Any) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._directory, prefix=f".{key}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(value, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self._path(key))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def clear(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class MemoryCache(CacheBackend):
    """
    Dict-backed cache for tests and throwaway sessions.

    Values are stored as JSON text so they behave exactly like FileCache:
    callers get back a fresh copy, never a live reference.
    """

    def __init__(self):
        self._data: dict[str, str] = {}

    def load(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return None

    def save(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def clear(self, key: str) -> None:
        self._data.pop(key, None)

    def put_raw(self, key: str, raw: str) -> None:
        """Store raw text under key, bypassing serialization."""
        self._data[key] = raw

    def keys(self) -> list[str]:
        return list(self._data)


class LedgerCache:
    """
    Typed view over a CacheBackend.

    Knows the fixed keys for transactions, subscriptions and the auth
    session, and converts between records and their JSON form.
    """

    def __init__(
        self,
        backend: Optional[CacheBackend] = None,
        settings: Optional[CacheSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._settings = settings or CacheSettings()
        self._backend = backend or FileCache(self._settings.directory)
        self._audit = audit_logger or AuditLogger()

    @property
    def settings(self) -> CacheSettings:
        return self._settings

    def _load_records(self, key: str, model: type) -> list:
        data = self._backend.load(key)
        if data is None:
            return []
        if not isinstance(data, list):
            self._audit.log_cache_corrupt(key, TypeError("expected a JSON list"))
            return []
        try:
            return [model.model_validate(item) for item in data]
        except ValidationError as e:
            self._audit.log_cache_corrupt(key, e)
            return []

    def _save_records(self, key: str, records: list) -> None:
        self._backend.save(key, [r.to_storage_dict() for r in records])

    # --- transactions -------------------------------------------------------

    def load_transactions(self) -> list[Transaction]:
        return self._load_records(self._settings.transactions_key, Transaction)

    def save_transactions(self, transactions: list[Transaction]) -> None:
        self._save_records(self._settings.transactions_key, transactions)

    # --- subscriptions ------------------------------------------------------

    def load_subscriptions(self) -> list[Subscription]:
        return self._load_records(self._settings.subscriptions_key, Subscription)

    def save_subscriptions(self, subscriptions: list[Subscription]) -> None:
        self._save_records(self._settings.subscriptions_key, subscriptions)

    # --- auth session -------------------------------------------------------

    def load_session(self) -> Optional[dict]:
        data = self._backend.load(self._settings.auth_key)
        return data if isinstance(data, dict) else None

    def save_session(self, session: dict) -> None:
        self._backend.save(self._settings.auth_key, session)
        self._backend.save(self._settings.session_seen_key, True)

    def has_seen_session(self) -> bool:
        """True once any session has ever been authenticated on this cache."""
        return self._backend.load(self._settings.session_seen_key) is True

    def clear_session(self) -> None:
        """Full wipe: auth blob and both cached collections."""
        self._backend.clear(self._settings.auth_key)
        self._backend.clear(self._settings.transactions_key)
        self._backend.clear(self._settings.subscriptions_key)
