"""
Ledger Controller

This module ties the ledger together and defines the flows for:
1. Load (session start -> concurrent fetch -> per-collection cache fallback)
2. Mutation (in-memory change -> cache write -> remote reconcile)
3. Session (login -> callback -> backend selection -> logout wipe)

DESIGN DECISION: Optimistic, two-phase mutations.
Every mutation is applied to the in-memory collections synchronously and
returns an asyncio.Task for the remote phase. Callers may await the task
or ignore it. A remote failure is logged inside the task and NEVER undoes
the in-memory change: local state may run ahead of the store until the
next successful fetch.

DESIGN DECISION: The in-memory collections are authoritative.
They are written through to the local cache after every change and again
when each remote phase succeeds, so a restart while offline shows exactly
what the user last saw. Remote phases may finish out of order; the cache
is only ever replaced with the current collection, never patched.
"""

import asyncio
from datetime import date
from typing import Awaitable, Callable, Optional

from ledger.audit import AuditLogger
from ledger.auth import LoginProvider, SessionState
from ledger.calculations import (
    CashFlowMonth,
    SubscriptionSummary,
    TransactionSummary,
    monthly_cash_flow,
    summarize_subscriptions,
    summarize_transactions,
)
from ledger.config import AppSettings
from ledger.models.ledger import (
    Subscription,
    Transaction,
    find_by_id,
    seed_transactions,
)
from ledger.services.cache import LedgerCache
from ledger.services.storage import LedgerStore
from ledger.sync import LedgerBackend, select_backend
from ledger.validation import (
    EntryValidator,
    SubscriptionDraft,
    TransactionDraft,
)


class LedgerController:
    """
    Owns the session's transactions and subscriptions, newest first.

    Mutations must be called from inside a running event loop, since the
    remote phase is scheduled as a task.
    """

    def __init__(
        self,
        session: SessionState,
        cache: LedgerCache,
        store: Optional[LedgerStore] = None,
        validator: Optional[EntryValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._session = session
        self._cache = cache
        self._store = store
        self._settings = settings or AppSettings()
        self._validator = validator or EntryValidator(
            default_projection_months=self._settings.default_projection_months
        )
        self._audit = audit_logger or AuditLogger()

        self._transactions: list[Transaction] = []
        self._subscriptions: list[Subscription] = []
        self._pending: set[asyncio.Task] = set()
        self._backend = self._select_backend()

    def _select_backend(self) -> LedgerBackend:
        return select_backend(
            self._session,
            self._cache,
            self._store,
            self._audit,
            mirror_mutations=False,
        )

    # --- read access --------------------------------------------------------

    @property
    def transactions(self) -> list[Transaction]:
        return list(self._transactions)

    @property
    def subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions)

    @property
    def session(self) -> SessionState:
        return self._session

    @property
    def backend(self) -> LedgerBackend:
        return self._backend

    # --- remote phase -------------------------------------------------------

    def _reconcile(
        self,
        operation: str,
        entity_type: str,
        entity_id: str,
        call: Awaitable[None],
        write_through: Callable[[], None],
    ) -> asyncio.Task:
        """Schedule the remote phase of a mutation; failures are logged only."""

        async def run() -> None:
            try:
                await call
            except Exception as e:
                self._audit.log_remote_sync_failed(operation, entity_type, entity_id, e)
                return
            write_through()

        task = asyncio.get_running_loop().create_task(run())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def pending(self) -> None:
        """Wait for every outstanding remote phase to settle."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def _save_transactions(self) -> None:
        self._cache.save_transactions(self._transactions)

    def _save_subscriptions(self) -> None:
        self._cache.save_subscriptions(self._subscriptions)

    # --- transactions -------------------------------------------------------

    def add_transaction(self, transaction: Transaction) -> asyncio.Task:
        """Prepend a transaction now; append it to the backend in the background."""
        self._transactions.insert(0, transaction)
        self._save_transactions()
        self._audit.log_record_added("transaction", transaction.id, transaction.description)

        return self._reconcile(
            "append_transaction",
            "transaction",
            transaction.id,
            self._backend.append_transaction(transaction),
            self._save_transactions,
        )

    def record_transaction(self, draft: TransactionDraft) -> tuple[Transaction, asyncio.Task]:
        """
        Validate raw form input and add the resulting transaction.

        Raises:
            EntryValidationError: Nothing was created
        """
        transaction = self._validator.build_transaction(draft)
        return transaction, self.add_transaction(transaction)

    def delete_transaction(self, transaction_id: str) -> Optional[asyncio.Task]:
        """
        Remove by id now.

        Returns None, and sends nothing, when the id is unknown.
        """
        if find_by_id(self._transactions, transaction_id) is None:
            return None

        self._transactions = [t for t in self._transactions if t.id != transaction_id]
        self._save_transactions()
        self._audit.log_record_deleted("transaction", transaction_id)

        return self._reconcile(
            "remove_transaction",
            "transaction",
            transaction_id,
            self._backend.remove_transaction(transaction_id),
            self._save_transactions,
        )

    # --- subscriptions ------------------------------------------------------

    def add_subscription(self, subscription: Subscription) -> asyncio.Task:
        self._subscriptions.insert(0, subscription)
        self._save_subscriptions()
        self._audit.log_record_added("subscription", subscription.id, subscription.name)

        return self._reconcile(
            "append_subscription",
            "subscription",
            subscription.id,
            self._backend.append_subscription(subscription),
            self._save_subscriptions,
        )

    def record_subscription(self, draft: SubscriptionDraft) -> tuple[Subscription, asyncio.Task]:
        """
        Validate raw form input and add the resulting subscription.

        Raises:
            EntryValidationError: Nothing was created
        """
        subscription = self._validator.build_subscription(draft)
        return subscription, self.add_subscription(subscription)

    def delete_subscription(self, subscription_id: str) -> Optional[asyncio.Task]:
        if find_by_id(self._subscriptions, subscription_id) is None:
            return None

        self._subscriptions = [s for s in self._subscriptions if s.id != subscription_id]
        self._save_subscriptions()
        self._audit.log_record_deleted("subscription", subscription_id)

        return self._reconcile(
            "remove_subscription",
            "subscription",
            subscription_id,
            self._backend.remove_subscription(subscription_id),
            self._save_subscriptions,
        )

    def toggle_subscription(self, subscription_id: str) -> Optional[asyncio.Task]:
        """
        Flip is_active on one subscription.

        Only the changed field is sent to the backend. Returns None, and
        sends nothing, when the id is unknown.
        """
        idx = find_by_id(self._subscriptions, subscription_id)
        if idx is None:
            return None

        fields = {"is_active": not self._subscriptions[idx].is_active}
        self._subscriptions[idx] = self._subscriptions[idx].with_changes(**fields)
        self._save_subscriptions()
        self._audit.log_subscription_updated(subscription_id, fields)

        return self._reconcile(
            "update_subscription",
            "subscription",
            subscription_id,
            self._backend.update_subscription(subscription_id, fields),
            self._save_subscriptions,
        )

    # --- load ---------------------------------------------------------------

    async def load(self) -> None:
        """
        Populate both collections for the current session.

        Authenticated: both fetches run concurrently and settle
        independently; a failed collection falls back to its cached copy.
        Not authenticated: the cache only, seeded with example records on
        a first run that has never seen a session.
        """
        if not self._backend.is_remote:
            self._load_local()
            return

        transactions, subscriptions = await asyncio.gather(
            self._backend.fetch_transactions(),
            self._backend.fetch_subscriptions(),
            return_exceptions=True,
        )

        if isinstance(transactions, Exception):
            self._audit.log_cache_fallback("transactions", transactions)
            transactions = self._cache.load_transactions()
        if isinstance(subscriptions, Exception):
            self._audit.log_cache_fallback("subscriptions", subscriptions)
            subscriptions = self._cache.load_subscriptions()

        self._transactions = list(transactions)
        self._subscriptions = list(subscriptions)

    def _load_local(self) -> None:
        self._transactions = self._cache.load_transactions()
        self._subscriptions = self._cache.load_subscriptions()

        if (
            not self._transactions
            and self._settings.seed_demo_data
            and not self._session.is_authenticated()
            and not self._cache.has_seen_session()
        ):
            self._transactions = seed_transactions()
            self._save_transactions()

    # --- session ------------------------------------------------------------

    def login(self, provider: Optional[LoginProvider] = None) -> None:
        self._session.login(provider)

    async def complete_login(self, url: Optional[str] = None) -> Optional[str]:
        """
        Resolve the session from a callback URL (or the cache), re-select
        the backend and load. Returns the URL with auth parameters removed.
        """
        clean_url = self._session.bootstrap(url)
        self._backend = self._select_backend()
        await self.load()
        return clean_url

    def logout(self) -> None:
        """Drop the session and every cached or in-memory record."""
        self._session.logout()
        self._transactions = []
        self._subscriptions = []
        self._backend = self._select_backend()

    # --- summaries ----------------------------------------------------------

    def financial_summary(self) -> TransactionSummary:
        return summarize_transactions(self._transactions)

    def subscription_summary(self) -> SubscriptionSummary:
        return summarize_subscriptions(self._subscriptions)

    def cash_flow(
        self,
        reference_date: Optional[date] = None,
        months: Optional[int] = None,
    ) -> list[CashFlowMonth]:
        return monthly_cash_flow(
            self._transactions,
            months or self._settings.cash_flow_months,
            reference_date or date.today(),
        )
