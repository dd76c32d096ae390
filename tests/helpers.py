"""Test doubles and record builders shared across the test modules."""

import base64
from datetime import date
from decimal import Decimal
from typing import Optional
from urllib.parse import urlencode

from ledger.models.ledger import (
    BillingFrequency,
    ExpenseCategory,
    Subscription,
    Transaction,
    TransactionType,
)
from ledger.services.storage import (
    AuthorizationExpiredError,
    LedgerStore,
    NotFoundError,
    StoreCredentials,
)


FIXED_NOW = 1_700_000_000.0  # 2023-11-14T22:13:20Z


def encode_auth_payload(**fields) -> str:
    """Build the blob the auth provider redirects back with."""
    return base64.urlsafe_b64encode(urlencode(fields).encode("utf-8")).decode("ascii")


def make_transaction(
    description: str = "Figma",
    amount: str = "110",
    type: TransactionType = TransactionType.EXPENSE,
    category: str = ExpenseCategory.SOFTWARE.value,
    transaction_date: date = date(2024, 1, 15),
    has_gst: bool = True,
) -> Transaction:
    return Transaction.create(
        transaction_date=transaction_date,
        description=description,
        amount=Decimal(amount),
        type=type,
        category=category,
        has_gst=has_gst,
    )


def make_subscription(
    name: str = "Notion",
    amount: str = "22",
    frequency: BillingFrequency = BillingFrequency.MONTHLY,
    projection_months: int = 12,
    has_gst: bool = True,
) -> Subscription:
    return Subscription.create(
        name=name,
        amount=Decimal(amount),
        frequency=frequency,
        category=ExpenseCategory.SOFTWARE.value,
        start_date=date(2024, 1, 1),
        projection_months=projection_months,
        has_gst=has_gst,
    )


class FakeLedgerStore(LedgerStore):
    """
    In-memory LedgerStore.

    Queue exceptions with fail(operation, error); each queued error is
    raised by the next call of that operation. Every call is recorded with
    the access token it was made with.
    """

    def __init__(self):
        self.transactions: list[Transaction] = []
        self.subscriptions: list[Subscription] = []
        self.calls: list[tuple[str, str]] = []
        self._failures: dict[str, list[Exception]] = {}

    def fail(self, operation: str, *errors: Exception) -> None:
        self._failures.setdefault(operation, []).extend(errors)

    def _enter(self, operation: str, credentials: StoreCredentials) -> None:
        self.calls.append((operation, credentials.access_token))
        queued = self._failures.get(operation)
        if queued:
            raise queued.pop(0)

    def operations(self) -> list[str]:
        return [op for op, _ in self.calls]

    async def list_transactions(self, credentials):
        self._enter("list_transactions", credentials)
        return list(self.transactions)

    async def append_transaction(self, credentials, transaction):
        self._enter("append_transaction", credentials)
        self.transactions.append(transaction)

    async def delete_transaction(self, credentials, transaction_id):
        self._enter("delete_transaction", credentials)
        if not any(t.id == transaction_id for t in self.transactions):
            raise NotFoundError(transaction_id)
        self.transactions = [t for t in self.transactions if t.id != transaction_id]

    async def list_subscriptions(self, credentials):
        self._enter("list_subscriptions", credentials)
        return list(self.subscriptions)

    async def append_subscription(self, credentials, subscription):
        self._enter("append_subscription", credentials)
        self.subscriptions.append(subscription)

    async def update_subscription(self, credentials, subscription_id, fields):
        self._enter("update_subscription", credentials)
        for idx, s in enumerate(self.subscriptions):
            if s.id == subscription_id:
                self.subscriptions[idx] = s.with_changes(**fields)
                return
        raise NotFoundError(subscription_id)

    async def delete_subscription(self, credentials, subscription_id):
        self._enter("delete_subscription", credentials)
        self.subscriptions = [s for s in self.subscriptions if s.id != subscription_id]


def expired(new_token: Optional[str] = "fresh-token") -> AuthorizationExpiredError:
    return AuthorizationExpiredError("Token expired", new_access_token=new_token)


