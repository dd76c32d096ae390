"""
Ledger Store over the hosted ledger API

Speaks the ledger API's HTTP protocol, one endpoint per collection:
- GET            full collection (JSON array of records)
- POST           append one full record, answers {"success": true}
- PUT ?id=...    patch a subscription with the changed fields only
- DELETE ?id=... remove by id

Requests carry the access token as a bearer token and the refresh token in
the x-refresh-token header. An expired token comes back as HTTP 401,
usually with a freshly minted "new_access_token" in the body.

TRADEOFFS:
- Transient failures (network, 5xx) are retried here with tenacity
- Token refresh is NOT retried here; that decision belongs to the sync
  client, which owns the session
"""

from decimal import Decimal
from typing import Any, Optional

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ledger.audit import AuditLogger
from ledger.config import LedgerApiSettings
from ledger.models.ledger import (
    Subscription,
    Transaction,
    subscription_patch_to_wire,
)
from ledger.services.storage.interface import (
    AuthorizationExpiredError,
    LedgerStore,
    NotFoundError,
    StorageError,
    StoreCredentials,
    StoreUnavailableError,
)


REFRESH_TOKEN_HEADER = "x-refresh-token"


def _to_wire(record: Transaction | Subscription) -> dict:
    """Record body as the API expects it: amounts as JSON numbers."""
    body = record.to_storage_dict()
    for key in ("amount", "gstAmount"):
        body[key] = float(Decimal(body[key]))
    return body


class HttpLedgerStore(LedgerStore):
    """
    LedgerStore implementation backed by the hosted ledger API.

    Pass an httpx.AsyncClient to control transport and lifetime (tests
    use httpx.MockTransport); otherwise one is created on first use and
    closed by aclose().
    """

    def __init__(
        self,
        settings: Optional[LedgerApiSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
        max_attempts: int = 3,
        retry_wait=None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._settings = settings or LedgerApiSettings()
        self._client = client
        self._audit = audit_logger or AuditLogger()
        self._owns_client = client is None
        self._max_attempts = max_attempts
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=10)

    async def __aenter__(self) -> "HttpLedgerStore":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.timeout_seconds)
        return self._client

    def _url(self, path: str) -> str:
        return f"{self._settings.base_url}{path}"

    @staticmethod
    def _headers(credentials: StoreCredentials) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {credentials.access_token}"}
        if credentials.refresh_token:
            headers[REFRESH_TOKEN_HEADER] = credentials.refresh_token
        return headers

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return f"HTTP {response.status_code}"

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return

        message = self._error_message(response)
        if status == 401:
            new_token = None
            try:
                body = response.json()
                if isinstance(body, dict):
                    new_token = body.get("new_access_token") or None
            except ValueError:
                pass
            raise AuthorizationExpiredError(message, new_access_token=new_token)
        if status == 404:
            raise NotFoundError(message)
        if status >= 500:
            raise StoreUnavailableError(f"Ledger API error {status}: {message}")
        raise StorageError(f"Ledger API rejected request ({status}): {message}")

    async def _send(
        self,
        method: str,
        path: str,
        credentials: StoreCredentials,
        params: Optional[dict] = None,
        json_body: Any = None,
    ) -> Any:
        client = self._get_client()
        try:
            response = await client.request(
                method,
                self._url(path),
                headers=self._headers(credentials),
                params=params,
                json=json_body,
            )
        except httpx.TransportError as e:
            raise StoreUnavailableError(f"Could not reach ledger API: {e}")

        self._raise_for_status(response)

        try:
            return response.json()
        except ValueError:
            return None

    async def _request(
        self,
        method: str,
        path: str,
        credentials: StoreCredentials,
        params: Optional[dict] = None,
        json_body: Any = None,
    ) -> Any:
        """Send a request, retrying transient failures only."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=self._retry_wait,
            retry=retry_if_exception_type(StoreUnavailableError),
            reraise=True,
        ):
            with attempt:
                return await self._send(method, path, credentials, params, json_body)

    @staticmethod
    def _check_success(body: Any, operation: str) -> None:
        if isinstance(body, dict) and body.get("success") is False:
            raise StorageError(f"Ledger API reported failure for {operation}")

    def _parse_collection(self, body: Any, model: type, collection: str) -> list:
        if not isinstance(body, list):
            raise StorageError(f"Expected a list of {collection}, got {type(body).__name__}")

        records = []
        for item in body:
            try:
                records.append(model.model_validate(item))
            except ValidationError as e:
                # Skip malformed rows, as a hand-edited sheet may contain them
                record_id = item.get("id") if isinstance(item, dict) else None
                self._audit.log_record_skipped(collection, record_id, e)
        return records

    # --- transactions -------------------------------------------------------

    async def list_transactions(self, credentials: StoreCredentials) -> list[Transaction]:
        body = await self._request("GET", self._settings.transactions_path, credentials)
        return self._parse_collection(body, Transaction, "transactions")

    async def append_transaction(
        self,
        credentials: StoreCredentials,
        transaction: Transaction,
    ) -> None:
        body = await self._request(
            "POST",
            self._settings.transactions_path,
            credentials,
            json_body=_to_wire(transaction),
        )
        self._check_success(body, "append transaction")

    async def delete_transaction(
        self,
        credentials: StoreCredentials,
        transaction_id: str,
    ) -> None:
        body = await self._request(
            "DELETE",
            self._settings.transactions_path,
            credentials,
            params={"id": transaction_id},
        )
        self._check_success(body, "delete transaction")

    # --- subscriptions ------------------------------------------------------

    async def list_subscriptions(self, credentials: StoreCredentials) -> list[Subscription]:
        body = await self._request("GET", self._settings.subscriptions_path, credentials)
        return self._parse_collection(body, Subscription, "subscriptions")

    async def append_subscription(
        self,
        credentials: StoreCredentials,
        subscription: Subscription,
    ) -> None:
        body = await self._request(
            "POST",
            self._settings.subscriptions_path,
            credentials,
            json_body=_to_wire(subscription),
        )
        self._check_success(body, "append subscription")

    async def update_subscription(
        self,
        credentials: StoreCredentials,
        subscription_id: str,
        fields: dict,
    ) -> None:
        body = await self._request(
            "PUT",
            self._settings.subscriptions_path,
            credentials,
            params={"id": subscription_id},
            json_body=subscription_patch_to_wire(fields),
        )
        self._check_success(body, "update subscription")

    async def delete_subscription(
        self,
        credentials: StoreCredentials,
        subscription_id: str,
    ) -> None:
        body = await self._request(
            "DELETE",
            self._settings.subscriptions_path,
            credentials,
            params={"id": subscription_id},
        )
        self._check_success(body, "delete subscription")
