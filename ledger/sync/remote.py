"""
Remote Sync Client

Reconciles the ledger collections with the external ledger store.

Contract for every operation:
- Not authenticated -> local-only path: the cache is the store, no network
- Store rejects the token with a replacement -> persist it, retry ONCE
- A second failure propagates to the caller (the controller swallows it)
- Success -> the cache copy is brought in line without a second fetch:
  fetch replaces it, append inserts, update patches, remove filters.
  Mutation mirroring can be switched off for callers that write their
  own authoritative collection through (the controller does)

DESIGN DECISION: One backend capability, chosen once.
Controllers talk to a LedgerBackend. select_backend() picks the remote
client or the cache-only backend at session start instead of every call
site branching on the environment.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, TypeVar

from ledger.audit import AuditLogger
from ledger.auth import SessionState
from ledger.models.ledger import Subscription, Transaction, find_by_id
from ledger.services.cache import LedgerCache
from ledger.services.storage import (
    AuthorizationExpiredError,
    LedgerStore,
    StoreCredentials,
)


T = TypeVar("T")


class LedgerBackend(ABC):
    """Where the controller sends reconciled mutations and fetches."""

    @abstractmethod
    async def fetch_transactions(self) -> list[Transaction]:
        pass

    @abstractmethod
    async def append_transaction(self, transaction: Transaction) -> None:
        pass

    @abstractmethod
    async def remove_transaction(self, transaction_id: str) -> None:
        pass

    @abstractmethod
    async def fetch_subscriptions(self) -> list[Subscription]:
        pass

    @abstractmethod
    async def append_subscription(self, subscription: Subscription) -> None:
        pass

    @abstractmethod
    async def update_subscription(self, subscription_id: str, fields: dict) -> None:
        pass

    @abstractmethod
    async def remove_subscription(self, subscription_id: str) -> None:
        pass

    @property
    def is_remote(self) -> bool:
        return False


class CacheOnlyBackend(LedgerBackend):
    """
    The local cache acting as the whole store.

    Every write is an idempotent whole-value replacement of one key: an
    append of an id already present and a removal of an absent id leave
    the collection unchanged.
    """

    def __init__(self, cache: LedgerCache):
        self._cache = cache

    async def fetch_transactions(self) -> list[Transaction]:
        return self._cache.load_transactions()

    async def append_transaction(self, transaction: Transaction) -> None:
        self.cache_append_transaction(transaction)

    async def remove_transaction(self, transaction_id: str) -> None:
        self.cache_remove_transaction(transaction_id)

    async def fetch_subscriptions(self) -> list[Subscription]:
        return self._cache.load_subscriptions()

    async def append_subscription(self, subscription: Subscription) -> None:
        self.cache_append_subscription(subscription)

    async def update_subscription(self, subscription_id: str, fields: dict) -> None:
        self.cache_update_subscription(subscription_id, fields)

    async def remove_subscription(self, subscription_id: str) -> None:
        self.cache_remove_subscription(subscription_id)

    # --- cache mirror helpers -----------------------------------------------

    def cache_append_transaction(self, transaction: Transaction) -> None:
        current = self._cache.load_transactions()
        if find_by_id(current, transaction.id) is None:
            self._cache.save_transactions([transaction, *current])

    def cache_remove_transaction(self, transaction_id: str) -> None:
        current = self._cache.load_transactions()
        self._cache.save_transactions([t for t in current if t.id != transaction_id])

    def cache_append_subscription(self, subscription: Subscription) -> None:
        current = self._cache.load_subscriptions()
        if find_by_id(current, subscription.id) is None:
            self._cache.save_subscriptions([subscription, *current])

    def cache_update_subscription(self, subscription_id: str, fields: dict) -> None:
        current = self._cache.load_subscriptions()
        idx = find_by_id(current, subscription_id)
        if idx is None:
            return
        current[idx] = current[idx].with_changes(**fields)
        self._cache.save_subscriptions(current)

    def cache_remove_subscription(self, subscription_id: str) -> None:
        current = self._cache.load_subscriptions()
        self._cache.save_subscriptions([s for s in current if s.id != subscription_id])


class RemoteSyncClient(LedgerBackend):
    """
    LedgerBackend backed by a LedgerStore, mirrored into the cache.

    With mirror_mutations=False only fetches touch the cache; the caller
    owns writing mutations through.

    Falls through to the cache-only path whenever the session is not
    authenticated, so a logout mid-session never produces network calls.
    """

    def __init__(
        self,
        store: LedgerStore,
        session: SessionState,
        cache: LedgerCache,
        audit_logger: Optional[AuditLogger] = None,
        mirror_mutations: bool = True,
    ):
        self._store = store
        self._session = session
        self._cache = cache
        self._local = CacheOnlyBackend(cache)
        self._audit = audit_logger or AuditLogger()
        self._mirror_mutations = mirror_mutations

    @property
    def is_remote(self) -> bool:
        return True

    async def _with_token_refresh(
        self,
        operation: str,
        call: Callable[[StoreCredentials], Awaitable[T]],
    ) -> T:
        """
        Run a store call, retrying exactly once with a refreshed token.
        """
        try:
            return await call(self._session.credentials())
        except AuthorizationExpiredError as e:
            if not e.new_access_token:
                raise
            self._session.replace_access_token(e.new_access_token)
            self._audit.log_token_refreshed(operation)

        return await call(self._session.credentials())

    # --- transactions -------------------------------------------------------

    async def fetch_transactions(self) -> list[Transaction]:
        if not self._session.is_authenticated():
            return await self._local.fetch_transactions()

        transactions = await self._with_token_refresh(
            "fetch_transactions", self._store.list_transactions
        )
        self._cache.save_transactions(transactions)
        return transactions

    async def append_transaction(self, transaction: Transaction) -> None:
        if not self._session.is_authenticated():
            return await self._local.append_transaction(transaction)

        await self._with_token_refresh(
            "append_transaction",
            lambda creds: self._store.append_transaction(creds, transaction),
        )
        if self._mirror_mutations:
            self._local.cache_append_transaction(transaction)

    async def remove_transaction(self, transaction_id: str) -> None:
        if not self._session.is_authenticated():
            return await self._local.remove_transaction(transaction_id)

        await self._with_token_refresh(
            "remove_transaction",
            lambda creds: self._store.delete_transaction(creds, transaction_id),
        )
        if self._mirror_mutations:
            self._local.cache_remove_transaction(transaction_id)

    # --- subscriptions ------------------------------------------------------

    async def fetch_subscriptions(self) -> list[Subscription]:
        if not self._session.is_authenticated():
            return await self._local.fetch_subscriptions()

        subscriptions = await self._with_token_refresh(
            "fetch_subscriptions", self._store.list_subscriptions
        )
        self._cache.save_subscriptions(subscriptions)
        return subscriptions

    async def append_subscription(self, subscription: Subscription) -> None:
        if not self._session.is_authenticated():
            return await self._local.append_subscription(subscription)

        await self._with_token_refresh(
            "append_subscription",
            lambda creds: self._store.append_subscription(creds, subscription),
        )
        if self._mirror_mutations:
            self._local.cache_append_subscription(subscription)

    async def update_subscription(self, subscription_id: str, fields: dict) -> None:
        if not self._session.is_authenticated():
            return await self._local.update_subscription(subscription_id, fields)

        await self._with_token_refresh(
            "update_subscription",
            lambda creds: self._store.update_subscription(creds, subscription_id, fields),
        )
        if self._mirror_mutations:
            self._local.cache_update_subscription(subscription_id, fields)

    async def remove_subscription(self, subscription_id: str) -> None:
        if not self._session.is_authenticated():
            return await self._local.remove_subscription(subscription_id)

        await self._with_token_refresh(
            "remove_subscription",
            lambda creds: self._store.delete_subscription(creds, subscription_id),
        )
        if self._mirror_mutations:
            self._local.cache_remove_subscription(subscription_id)


def select_backend(
    session: SessionState,
    cache: LedgerCache,
    store: Optional[LedgerStore] = None,
    audit_logger: Optional[AuditLogger] = None,
    mirror_mutations: bool = True,
) -> LedgerBackend:
    """
    Pick the backend for this session.

    Remote when a store is configured and the session is authenticated,
    cache-only otherwise.
    """
    if store is not None and session.is_authenticated():
        return RemoteSyncClient(store, session, cache, audit_logger, mirror_mutations)
    return CacheOnlyBackend(cache)
