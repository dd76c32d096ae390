"""Tests for the remote sync client and backend selection."""

import pytest

from ledger.models.audit import AuditEventType
from ledger.services.storage import AuthorizationExpiredError, StoreUnavailableError
from ledger.sync import CacheOnlyBackend, RemoteSyncClient, select_backend
from tests.helpers import expired, make_subscription, make_transaction


class TestSelectBackend:
    """Backend selection happens once, at session start."""

    def test_remote_when_authenticated_with_store(self, authenticated_session, cache, store):
        backend = select_backend(authenticated_session, cache, store)
        assert isinstance(backend, RemoteSyncClient)
        assert backend.is_remote

    def test_cache_only_without_store(self, authenticated_session, cache):
        assert isinstance(select_backend(authenticated_session, cache), CacheOnlyBackend)

    def test_cache_only_when_unauthenticated(self, session, cache, store):
        session.bootstrap()
        backend = select_backend(session, cache, store)
        assert isinstance(backend, CacheOnlyBackend)
        assert not backend.is_remote


class TestCacheOnlyBackend:
    """The cache acting as the whole store."""

    @pytest.mark.asyncio
    async def test_append_then_fetch(self, cache):
        backend = CacheOnlyBackend(cache)
        older, newer = make_transaction(), make_transaction()
        await backend.append_transaction(older)
        await backend.append_transaction(newer)
        assert await backend.fetch_transactions() == [newer, older]

    @pytest.mark.asyncio
    async def test_append_is_idempotent(self, cache):
        backend = CacheOnlyBackend(cache)
        t = make_transaction()
        await backend.append_transaction(t)
        await backend.append_transaction(t)
        assert await backend.fetch_transactions() == [t]

    @pytest.mark.asyncio
    async def test_remove_missing_is_noop(self, cache):
        backend = CacheOnlyBackend(cache)
        t = make_transaction()
        await backend.append_transaction(t)
        await backend.remove_transaction("missing")
        assert await backend.fetch_transactions() == [t]

    @pytest.mark.asyncio
    async def test_update_subscription(self, cache):
        backend = CacheOnlyBackend(cache)
        s = make_subscription()
        await backend.append_subscription(s)
        await backend.update_subscription(s.id, {"is_active": False})
        await backend.update_subscription("missing", {"is_active": False})
        (stored,) = await backend.fetch_subscriptions()
        assert stored.is_active is False


class TestRemoteSyncClient:
    """Remote reconciliation with a cache mirror."""

    @pytest.mark.asyncio
    async def test_fetch_replaces_cache(self, authenticated_session, cache, store, audit):
        cache.save_transactions([make_transaction(description="Stale")])
        fresh = make_transaction(description="Fresh")
        store.transactions = [fresh]
        client = RemoteSyncClient(store, authenticated_session, cache, audit)

        assert await client.fetch_transactions() == [fresh]
        assert cache.load_transactions() == [fresh]

    @pytest.mark.asyncio
    async def test_mutations_mirror_into_cache(self, authenticated_session, cache, store, audit):
        client = RemoteSyncClient(store, authenticated_session, cache, audit)
        t, s = make_transaction(), make_subscription()

        await client.append_transaction(t)
        await client.append_subscription(s)
        await client.update_subscription(s.id, {"is_active": False})
        assert cache.load_transactions() == [t]
        assert cache.load_subscriptions()[0].is_active is False
        assert store.subscriptions[0].is_active is False

        await client.remove_transaction(t.id)
        await client.remove_subscription(s.id)
        assert cache.load_transactions() == []
        assert cache.load_subscriptions() == []
        assert store.transactions == []

    @pytest.mark.asyncio
    async def test_without_mutation_mirroring_only_fetches_touch_cache(
        self, authenticated_session, cache, store, audit
    ):
        client = RemoteSyncClient(
            store, authenticated_session, cache, audit, mirror_mutations=False
        )
        t = make_transaction()

        await client.append_transaction(t)
        assert store.transactions == [t]
        assert cache.load_transactions() == []

        await client.fetch_transactions()
        assert cache.load_transactions() == [t]

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed_and_retried_once(
        self, authenticated_session, cache, store, audit
    ):
        store.fail("list_subscriptions", expired("fresh-token"))
        client = RemoteSyncClient(store, authenticated_session, cache, audit)

        assert await client.fetch_subscriptions() == []

        assert store.calls == [
            ("list_subscriptions", "stale-token"),
            ("list_subscriptions", "fresh-token"),
        ]
        assert authenticated_session.access_token == "fresh-token"
        assert cache.load_session()["accessToken"] == "fresh-token"
        assert any(e.event_type == AuditEventType.TOKEN_REFRESHED for e in audit.events)

    @pytest.mark.asyncio
    async def test_second_failure_propagates(self, authenticated_session, cache, store, audit):
        store.fail("append_transaction", expired("fresh-token"), expired("fresher-token"))
        client = RemoteSyncClient(store, authenticated_session, cache, audit)

        with pytest.raises(AuthorizationExpiredError):
            await client.append_transaction(make_transaction())

        assert store.operations() == ["append_transaction", "append_transaction"]
        assert cache.load_transactions() == []

    @pytest.mark.asyncio
    async def test_expired_without_new_token_is_not_retried(
        self, authenticated_session, cache, store, audit
    ):
        store.fail("list_transactions", expired(None))
        client = RemoteSyncClient(store, authenticated_session, cache, audit)

        with pytest.raises(AuthorizationExpiredError):
            await client.fetch_transactions()
        assert len(store.calls) == 1

    @pytest.mark.asyncio
    async def test_other_failures_are_not_retried(self, authenticated_session, cache, store, audit):
        store.fail("delete_subscription", StoreUnavailableError("down"))
        client = RemoteSyncClient(store, authenticated_session, cache, audit)

        with pytest.raises(StoreUnavailableError):
            await client.remove_subscription("s-1")
        assert len(store.calls) == 1

    @pytest.mark.asyncio
    async def test_unauthenticated_uses_cache_only(self, authenticated_session, cache, store, audit):
        """After logout, the client never touches the network."""
        client = RemoteSyncClient(store, authenticated_session, cache, audit)
        authenticated_session.logout()

        t = make_transaction()
        await client.append_transaction(t)

        assert await client.fetch_transactions() == [t]
        assert cache.load_transactions() == [t]
        assert store.calls == []
