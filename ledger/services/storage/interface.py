"""
Abstract Ledger Store Interface

DESIGN DECISION: We define an abstract interface for the remote ledger.
This allows us to:
1. Talk to the hosted ledger API or straight to Google Sheets
2. Use in-memory stores for testing
3. Keep the sync and retry logic independent of the wire format

Every operation takes the caller's current credentials explicitly. Stores
hold no session state; the session belongs to the sync client.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ledger.models.ledger import Subscription, Transaction


@dataclass(frozen=True)
class StoreCredentials:
    """Bearer token plus the optional refresh-token side channel."""
    access_token: str
    refresh_token: Optional[str] = None


class LedgerStore(ABC):
    """
    Abstract interface for the external ledger store.

    Transactions are append/delete only. Subscriptions can also be
    patched by id.
    """

    # --- transactions -------------------------------------------------------

    @abstractmethod
    async def list_transactions(self, credentials: StoreCredentials) -> list[Transaction]:
        """
        Fetch the full transactions collection.

        Raises:
            AuthorizationExpiredError: Token rejected
            StorageError: Any other failure
        """
        pass

    @abstractmethod
    async def append_transaction(
        self,
        credentials: StoreCredentials,
        transaction: Transaction,
    ) -> None:
        """Append one full record."""
        pass

    @abstractmethod
    async def delete_transaction(
        self,
        credentials: StoreCredentials,
        transaction_id: str,
    ) -> None:
        """
        Remove a record by id.

        Raises:
            NotFoundError: No record with this id
        """
        pass

    # --- subscriptions ------------------------------------------------------

    @abstractmethod
    async def list_subscriptions(self, credentials: StoreCredentials) -> list[Subscription]:
        pass

    @abstractmethod
    async def append_subscription(
        self,
        credentials: StoreCredentials,
        subscription: Subscription,
    ) -> None:
        pass

    @abstractmethod
    async def update_subscription(
        self,
        credentials: StoreCredentials,
        subscription_id: str,
        fields: dict,
    ) -> None:
        """
        Patch a subscription by id with only the changed fields.

        Args:
            fields: snake_case field names mapped to new values
        """
        pass

    @abstractmethod
    async def delete_subscription(
        self,
        credentials: StoreCredentials,
        subscription_id: str,
    ) -> None:
        pass


class StorageError(Exception):
    """Base exception for ledger store operations."""
    pass


class NotFoundError(StorageError):
    """Record not found in the store."""
    pass


class StoreUnavailableError(StorageError):
    """Network failure or server-side error; safe to retry."""
    pass


class AuthorizationExpiredError(StorageError):
    """
    The store rejected the access token.

    If the store minted a replacement, it is carried in new_access_token
    and the request may be retried once with it.
    """

    def __init__(self, message: str, new_access_token: Optional[str] = None):
        super().__init__(message)
        self.new_access_token = new_access_token
