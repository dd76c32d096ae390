"""
Google Sheets Ledger Store

DESIGN DECISION: The ledger lives in the user's own Google Sheet because:
1. Small-business owners can read and fix their books directly in Sheets
2. No database setup required
3. The accountant can be given view access at tax time

Layout (one row per record, header in row 1):
- Transactions!A:H   ID, Date, Description, Amount, Type, Category, HasGST, GSTAmount
- Subscriptions!A:K  ID, Name, Amount, Frequency, Category, StartDate,
                     ProjectionMonths, HasGST, GSTAmount, IsActive, UpdatedAt

TRADEOFFS:
- No transactions; last write wins
- Update and delete locate the row by scanning for the id
- gspread is synchronous, so every call runs in a worker thread

Authentication uses the user's OAuth access token. When Google rejects
it, google-auth's session tries to refresh the token-only credentials and
fails with RefreshError. The store then exchanges the refresh token for a
new access token itself and hands it back inside AuthorizationExpiredError,
so the sync client can persist it and retry once.
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional, TypeVar

import gspread
import requests
import structlog
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ledger.audit import AuditLogger
from ledger.config import GoogleSheetsSettings
from ledger.models.ledger import Subscription, Transaction
from ledger.services.storage.interface import (
    AuthorizationExpiredError,
    LedgerStore,
    NotFoundError,
    StorageError,
    StoreCredentials,
    StoreUnavailableError,
)


logger = structlog.get_logger(__name__)

T = TypeVar("T")

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]

# Column mappings for the Transactions sheet
TRANSACTION_COLUMNS = [
    "ID",
    "Date",
    "Description",
    "Amount",
    "Type",
    "Category",
    "HasGST",
    "GSTAmount",
]

# Column mappings for the Subscriptions sheet
SUBSCRIPTION_COLUMNS = [
    "ID",
    "Name",
    "Amount",
    "Frequency",
    "Category",
    "StartDate",
    "ProjectionMonths",
    "HasGST",
    "GSTAmount",
    "IsActive",
    "UpdatedAt",
]


def _safe_get(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _parse_decimal(value: str) -> Decimal:
    try:
        return Decimal(value.replace(",", "").lstrip("$"))
    except (InvalidOperation, AttributeError):
        return Decimal("0")


def _parse_int(value: str, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed or default


def transaction_to_row(t: Transaction) -> list:
    """Convert a Transaction to a spreadsheet row."""
    return [
        t.id,
        t.transaction_date.isoformat(),
        t.description,
        str(t.amount),
        t.type.value,
        t.category,
        str(t.has_gst),
        str(t.gst_amount),
    ]


def row_to_transaction(row: list) -> Transaction:
    """Convert a spreadsheet row to a Transaction."""
    return Transaction(
        id=_safe_get(row, 0),
        transaction_date=_safe_get(row, 1),
        description=_safe_get(row, 2),
        amount=_parse_decimal(_safe_get(row, 3)),
        type=_safe_get(row, 4),
        category=_safe_get(row, 5),
        has_gst=_safe_get(row, 6).lower() == "true",
        gst_amount=_parse_decimal(_safe_get(row, 7)),
    )


def subscription_to_row(s: Subscription, updated_at: Optional[datetime] = None) -> list:
    """Convert a Subscription to a spreadsheet row, stamping UpdatedAt."""
    updated_at = updated_at or datetime.now(timezone.utc)
    return [
        s.id,
        s.name,
        str(s.amount),
        s.frequency.value,
        s.category,
        s.start_date.isoformat(),
        s.projection_months,
        str(s.has_gst),
        str(s.gst_amount),
        str(s.is_active),
        updated_at.isoformat(),
    ]


def row_to_subscription(row: list) -> Subscription:
    """Convert a spreadsheet row to a Subscription."""
    return Subscription(
        id=_safe_get(row, 0),
        name=_safe_get(row, 1),
        amount=_parse_decimal(_safe_get(row, 2)),
        frequency=_safe_get(row, 3),
        category=_safe_get(row, 4),
        start_date=_safe_get(row, 5),
        projection_months=_parse_int(_safe_get(row, 6), 12),
        has_gst=_safe_get(row, 7).lower() == "true",
        gst_amount=_parse_decimal(_safe_get(row, 8)),
        # Anything but an explicit false counts as active
        is_active=_safe_get(row, 9).lower() != "false",
    )


def _find_row(sheet: gspread.Worksheet, record_id: str) -> tuple[int, list]:
    """1-based sheet row index and values of the record with this id."""
    all_rows = sheet.get_all_values()
    for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is the header
        if row and row[0] == record_id:
            return idx, row
    raise NotFoundError(f"Record not found: {record_id}")


def default_client_factory(credentials: Credentials) -> gspread.Client:
    return gspread.authorize(credentials)


class GoogleSheetsLedgerStore(LedgerStore):
    """
    LedgerStore implementation writing straight into a Google Sheet.
    """

    def __init__(
        self,
        settings: Optional[GoogleSheetsSettings] = None,
        client_factory: Callable[[Credentials], gspread.Client] = default_client_factory,
        token_refresher: Optional[Callable[[str], Optional[str]]] = None,
        max_attempts: int = 3,
        retry_wait=None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._settings = settings or GoogleSheetsSettings()
        self._audit = audit_logger or AuditLogger()
        self._client_factory = client_factory
        self._token_refresher = token_refresher or self._refresh_access_token
        self._max_attempts = max_attempts
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=10)

    # --- connection ---------------------------------------------------------

    def _refresh_access_token(self, refresh_token: str) -> Optional[str]:
        """Exchange the refresh token for a new access token, or None."""
        credentials = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=self._settings.token_uri,
            client_id=self._settings.client_id,
            client_secret=self._settings.client_secret,
            scopes=SCOPES,
        )
        try:
            credentials.refresh(Request())
        except (RefreshError, requests.RequestException) as e:
            logger.warning("token_refresh_failed", error=str(e))
            return None
        return credentials.token

    def _open_spreadsheet(self, credentials: StoreCredentials) -> gspread.Spreadsheet:
        # Token-only credentials: the session cannot refresh them, so a
        # rejected token ends in RefreshError (or a 401 APIError)
        client = self._client_factory(Credentials(token=credentials.access_token))
        try:
            return client.open_by_key(self._settings.spreadsheet_id)
        except gspread.SpreadsheetNotFound:
            raise StorageError(f"Spreadsheet not found: {self._settings.spreadsheet_id}")

    def _worksheet(
        self,
        spreadsheet: gspread.Spreadsheet,
        title: str,
        headers: list[str],
    ) -> gspread.Worksheet:
        """Get or create a worksheet, making sure row 1 holds the headers."""
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(headers),
            )
            sheet.append_row(headers)
            return sheet

        first_row = sheet.row_values(1)
        if not first_row or first_row[0] != headers[0]:
            sheet.update(values=[headers], range_name="A1")
        return sheet

    def _transactions_sheet(self, spreadsheet: gspread.Spreadsheet) -> gspread.Worksheet:
        return self._worksheet(
            spreadsheet, self._settings.transactions_sheet_name, TRANSACTION_COLUMNS
        )

    def _subscriptions_sheet(self, spreadsheet: gspread.Spreadsheet) -> gspread.Worksheet:
        return self._worksheet(
            spreadsheet, self._settings.subscriptions_sheet_name, SUBSCRIPTION_COLUMNS
        )

    def _expired(self, credentials: StoreCredentials) -> AuthorizationExpiredError:
        new_token = None
        if credentials.refresh_token:
            new_token = self._token_refresher(credentials.refresh_token)
        return AuthorizationExpiredError("Token expired", new_access_token=new_token)

    def _translate_api_error(
        self,
        error: gspread.exceptions.APIError,
        credentials: StoreCredentials,
    ) -> StorageError:
        status = error.response.status_code
        if status == 401:
            return self._expired(credentials)
        if status == 404:
            return NotFoundError(str(error))
        if status == 429 or status >= 500:
            return StoreUnavailableError(f"Google Sheets error {status}: {error}")
        return StorageError(f"Google Sheets rejected request ({status}): {error}")

    def _call(
        self,
        credentials: StoreCredentials,
        operation: Callable[[gspread.Spreadsheet], T],
    ) -> T:
        try:
            return operation(self._open_spreadsheet(credentials))
        except StorageError:
            raise
        except RefreshError:
            raise self._expired(credentials)
        except gspread.exceptions.APIError as e:
            raise self._translate_api_error(e, credentials)
        except requests.RequestException as e:
            raise StoreUnavailableError(f"Could not reach Google Sheets: {e}")

    async def _run(
        self,
        credentials: StoreCredentials,
        operation: Callable[[gspread.Spreadsheet], T],
    ) -> T:
        """Run a blocking sheet operation off the event loop, with retries."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=self._retry_wait,
            retry=retry_if_exception_type(StoreUnavailableError),
            reraise=True,
        ):
            with attempt:
                return await asyncio.to_thread(self._call, credentials, operation)

    # --- transactions -------------------------------------------------------

    async def list_transactions(self, credentials: StoreCredentials) -> list[Transaction]:
        def operation(spreadsheet: gspread.Spreadsheet) -> list[Transaction]:
            rows = self._transactions_sheet(spreadsheet).get_all_values()[1:]
            return self._parse_rows(rows, row_to_transaction, "transactions")

        return await self._run(credentials, operation)

    async def append_transaction(
        self,
        credentials: StoreCredentials,
        transaction: Transaction,
    ) -> None:
        def operation(spreadsheet: gspread.Spreadsheet) -> None:
            self._transactions_sheet(spreadsheet).append_row(
                transaction_to_row(transaction),
                value_input_option="USER_ENTERED",
            )

        await self._run(credentials, operation)

    async def delete_transaction(
        self,
        credentials: StoreCredentials,
        transaction_id: str,
    ) -> None:
        def operation(spreadsheet: gspread.Spreadsheet) -> None:
            sheet = self._transactions_sheet(spreadsheet)
            idx, _ = _find_row(sheet, transaction_id)
            sheet.delete_rows(idx)

        await self._run(credentials, operation)

    # --- subscriptions ------------------------------------------------------

    async def list_subscriptions(self, credentials: StoreCredentials) -> list[Subscription]:
        def operation(spreadsheet: gspread.Spreadsheet) -> list[Subscription]:
            rows = self._subscriptions_sheet(spreadsheet).get_all_values()[1:]
            return self._parse_rows(rows, row_to_subscription, "subscriptions")

        return await self._run(credentials, operation)

    async def append_subscription(
        self,
        credentials: StoreCredentials,
        subscription: Subscription,
    ) -> None:
        def operation(spreadsheet: gspread.Spreadsheet) -> None:
            self._subscriptions_sheet(spreadsheet).append_row(
                subscription_to_row(subscription),
                value_input_option="USER_ENTERED",
            )

        await self._run(credentials, operation)

    async def update_subscription(
        self,
        credentials: StoreCredentials,
        subscription_id: str,
        fields: dict,
    ) -> None:
        def operation(spreadsheet: gspread.Spreadsheet) -> None:
            sheet = self._subscriptions_sheet(spreadsheet)
            idx, row = _find_row(sheet, subscription_id)
            updated = row_to_subscription(row).with_changes(**fields)
            last_col = chr(ord("A") + len(SUBSCRIPTION_COLUMNS) - 1)
            sheet.update(
                values=[subscription_to_row(updated)],
                range_name=f"A{idx}:{last_col}{idx}",
                value_input_option="USER_ENTERED",
            )

        await self._run(credentials, operation)

    async def delete_subscription(
        self,
        credentials: StoreCredentials,
        subscription_id: str,
    ) -> None:
        def operation(spreadsheet: gspread.Spreadsheet) -> None:
            sheet = self._subscriptions_sheet(spreadsheet)
            idx, _ = _find_row(sheet, subscription_id)
            sheet.delete_rows(idx)

        await self._run(credentials, operation)

    def _parse_rows(self, rows: list[list], parse: Callable[[list], T], collection: str) -> list[T]:
        records = []
        for row in rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                records.append(parse(row))
            except ValidationError as e:
                self._audit.log_record_skipped(collection, row[0], e)
        return records
