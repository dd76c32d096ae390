"""Tests for the Google Sheets store, against an in-memory spreadsheet."""

import pytest
from decimal import Decimal
from datetime import datetime, timezone

import gspread
import requests
from requests.adapters import BaseAdapter
from tenacity import wait_none

from ledger.config import GoogleSheetsSettings
from ledger.models.audit import AuditEventType
from ledger.models.ledger import BillingFrequency, TransactionType
from ledger.services.storage import (
    AuthorizationExpiredError,
    GoogleSheetsLedgerStore,
    NotFoundError,
    StoreCredentials,
    StoreUnavailableError,
)
from ledger.services.storage.google_sheets import (
    SUBSCRIPTION_COLUMNS,
    TRANSACTION_COLUMNS,
    default_client_factory,
    row_to_subscription,
    row_to_transaction,
    subscription_to_row,
    transaction_to_row,
)
from tests.helpers import make_subscription, make_transaction


CREDS = StoreCredentials(access_token="at", refresh_token="rt")


class FakeResponse:
    def __init__(self, status_code: int):
        self.status_code = status_code
        self.text = f"HTTP {status_code}"

    def json(self):
        return {"error": {"code": self.status_code, "message": self.text, "status": "ERR"}}


class Always401Adapter(BaseAdapter):
    """Answers every request with 401, as Google does for an expired token."""

    def __init__(self):
        super().__init__()
        self.urls: list[str] = []

    def send(self, request, **kwargs):
        self.urls.append(request.url)
        response = requests.Response()
        response.status_code = 401
        response.url = request.url
        response.request = request
        response.headers["Content-Type"] = "application/json"
        response._content = (
            b'{"error": {"code": 401, "message": "Invalid Credentials",'
            b' "status": "UNAUTHENTICATED"}}'
        )
        return response

    def close(self):
        pass


class FakeWorksheet:
    """Just enough of gspread.Worksheet, cells stored as strings."""

    def __init__(self, title: str):
        self.title = title
        self.rows: list[list[str]] = []

    def get_all_values(self):
        return [list(r) for r in self.rows]

    def row_values(self, row: int):
        return list(self.rows[row - 1]) if len(self.rows) >= row else []

    def append_row(self, values, value_input_option="RAW"):
        self.rows.append([str(v) for v in values])

    def update(self, values, range_name, value_input_option="RAW"):
        start = int("".join(ch for ch in range_name.split(":")[0] if ch.isdigit()))
        while len(self.rows) < start:
            self.rows.append([])
        self.rows[start - 1] = [str(v) for v in values[0]]

    def delete_rows(self, index: int):
        del self.rows[index - 1]


class FakeSpreadsheet:
    def __init__(self):
        self.sheets: dict[str, FakeWorksheet] = {}
        self.failures: list[Exception] = []

    def worksheet(self, title: str):
        if self.failures:
            raise self.failures.pop(0)
        if title not in self.sheets:
            raise gspread.WorksheetNotFound(title)
        return self.sheets[title]

    def add_worksheet(self, title: str, rows: int, cols: int):
        self.sheets[title] = FakeWorksheet(title)
        return self.sheets[title]


class FakeClient:
    def __init__(self, spreadsheet: FakeSpreadsheet):
        self.spreadsheet = spreadsheet

    def open_by_key(self, key: str):
        return self.spreadsheet


@pytest.fixture
def spreadsheet() -> FakeSpreadsheet:
    return FakeSpreadsheet()


@pytest.fixture
def tokens_seen() -> list[str]:
    return []


@pytest.fixture
def sheets_store(spreadsheet, tokens_seen, audit) -> GoogleSheetsLedgerStore:
    def factory(credentials):
        tokens_seen.append(credentials.token)
        return FakeClient(spreadsheet)

    return GoogleSheetsLedgerStore(
        settings=GoogleSheetsSettings(spreadsheet_id="sheet-123"),
        client_factory=factory,
        token_refresher=lambda refresh_token: f"minted-from-{refresh_token}",
        max_attempts=2,
        retry_wait=wait_none(),
        audit_logger=audit,
    )


class TestRowConversion:
    """Tests for row codecs."""

    def test_transaction_row_round_trip(self):
        t = make_transaction(amount="110", has_gst=True)
        row = [str(v) for v in transaction_to_row(t)]
        assert len(row) == len(TRANSACTION_COLUMNS)
        assert row_to_transaction(row) == t

    def test_subscription_row_stamps_updated_at(self):
        s = make_subscription()
        stamp = datetime(2024, 5, 1, tzinfo=timezone.utc)
        row = subscription_to_row(s, updated_at=stamp)
        assert len(row) == len(SUBSCRIPTION_COLUMNS)
        assert row[-1] == stamp.isoformat()
        assert row_to_subscription([str(v) for v in row]) == s

    def test_hand_edited_row_is_tolerated(self):
        """Currency formatting, a blank projection and a blank active flag."""
        row = ["s-1", "Slack", "$1,200.00", "ANNUAL", "Software & Subscriptions",
               "2024-01-01T00:00:00.000Z", "", "TRUE", "109.09"]
        s = row_to_subscription(row)
        assert s.amount == Decimal("1200.00")
        assert s.frequency == BillingFrequency.ANNUAL
        assert s.projection_months == 12
        assert s.is_active is True
        assert s.has_gst is True

    def test_explicit_false_pauses(self):
        row = [str(v) for v in subscription_to_row(make_subscription())]
        row[9] = "FALSE"
        assert row_to_subscription(row).is_active is False


class TestGoogleSheetsLedgerStore:
    """Tests for the store operations."""

    @pytest.mark.asyncio
    async def test_append_creates_sheet_with_headers(self, sheets_store, spreadsheet, tokens_seen):
        t = make_transaction()
        await sheets_store.append_transaction(CREDS, t)

        sheet = spreadsheet.sheets["Transactions"]
        assert sheet.rows[0] == TRANSACTION_COLUMNS
        assert sheet.rows[1][0] == t.id
        assert tokens_seen == ["at"]

    @pytest.mark.asyncio
    async def test_list_skips_empty_and_malformed_rows(self, sheets_store, spreadsheet, audit):
        good = make_transaction(type=TransactionType.EXPENSE)
        await sheets_store.append_transaction(CREDS, good)
        sheet = spreadsheet.sheets["Transactions"]
        sheet.rows.append([])
        sheet.rows.append(["bad-1", "not a date", "", "x", "NEITHER", "", "", ""])

        assert await sheets_store.list_transactions(CREDS) == [good]

        (skipped,) = [e for e in audit.events if e.event_type == AuditEventType.RECORD_SKIPPED]
        assert skipped.entity_id == "bad-1"
        assert skipped.details == {"collection": "transactions"}

    @pytest.mark.asyncio
    async def test_header_is_repaired(self, sheets_store, spreadsheet):
        sheet = FakeWorksheet("Subscriptions")
        sheet.rows.append(["junk"])
        spreadsheet.sheets["Subscriptions"] = sheet

        assert await sheets_store.list_subscriptions(CREDS) == []
        assert sheet.rows[0] == SUBSCRIPTION_COLUMNS

    @pytest.mark.asyncio
    async def test_update_patches_the_matching_row(self, sheets_store, spreadsheet):
        first, second = make_subscription(name="Notion"), make_subscription(name="Slack")
        await sheets_store.append_subscription(CREDS, first)
        await sheets_store.append_subscription(CREDS, second)

        await sheets_store.update_subscription(CREDS, second.id, {"is_active": False})

        listed = await sheets_store.list_subscriptions(CREDS)
        assert [s.is_active for s in listed] == [True, False]
        assert listed[1].name == "Slack"

    @pytest.mark.asyncio
    async def test_delete_removes_row(self, sheets_store):
        keep, drop = make_transaction(), make_transaction()
        await sheets_store.append_transaction(CREDS, keep)
        await sheets_store.append_transaction(CREDS, drop)

        await sheets_store.delete_transaction(CREDS, drop.id)

        assert await sheets_store.list_transactions(CREDS) == [keep]

    @pytest.mark.asyncio
    async def test_missing_id_is_not_found(self, sheets_store):
        with pytest.raises(NotFoundError):
            await sheets_store.delete_subscription(CREDS, "missing")

    @pytest.mark.asyncio
    async def test_401_mints_new_token(self, sheets_store, spreadsheet):
        spreadsheet.failures.append(gspread.exceptions.APIError(FakeResponse(401)))
        with pytest.raises(AuthorizationExpiredError) as exc_info:
            await sheets_store.list_transactions(CREDS)
        assert exc_info.value.new_access_token == "minted-from-rt"

    @pytest.mark.asyncio
    async def test_401_without_refresh_token(self, sheets_store, spreadsheet):
        spreadsheet.failures.append(gspread.exceptions.APIError(FakeResponse(401)))
        with pytest.raises(AuthorizationExpiredError) as exc_info:
            await sheets_store.list_transactions(StoreCredentials(access_token="at"))
        assert exc_info.value.new_access_token is None

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self, sheets_store, spreadsheet):
        spreadsheet.failures.append(gspread.exceptions.APIError(FakeResponse(429)))
        assert await sheets_store.list_transactions(CREDS) == []

    @pytest.mark.asyncio
    async def test_persistent_server_error_is_unavailable(self, sheets_store, spreadsheet):
        spreadsheet.failures.extend(
            gspread.exceptions.APIError(FakeResponse(503)) for _ in range(2)
        )
        with pytest.raises(StoreUnavailableError):
            await sheets_store.list_subscriptions(CREDS)


class TestExpiredTokenAgainstGoogleAuth:
    """The real gspread client and google-auth session, with HTTP stubbed out."""

    @pytest.fixture
    def adapter(self) -> Always401Adapter:
        return Always401Adapter()

    def store_with(self, adapter, audit) -> GoogleSheetsLedgerStore:
        def factory(credentials):
            client = default_client_factory(credentials)
            client.http_client.session.mount("https://", adapter)
            return client

        return GoogleSheetsLedgerStore(
            settings=GoogleSheetsSettings(spreadsheet_id="sheet-123"),
            client_factory=factory,
            token_refresher=lambda refresh_token: f"minted-from-{refresh_token}",
            max_attempts=2,
            retry_wait=wait_none(),
            audit_logger=audit,
        )

    @pytest.mark.asyncio
    async def test_rejected_token_becomes_authorization_expired(self, adapter, audit):
        store = self.store_with(adapter, audit)

        with pytest.raises(AuthorizationExpiredError) as exc_info:
            await store.list_transactions(CREDS)

        assert exc_info.value.new_access_token == "minted-from-rt"
        assert adapter.urls

    @pytest.mark.asyncio
    async def test_rejected_token_without_refresh_token(self, adapter, audit):
        store = self.store_with(adapter, audit)

        with pytest.raises(AuthorizationExpiredError) as exc_info:
            await store.append_subscription(
                StoreCredentials(access_token="at"), make_subscription()
            )

        assert exc_info.value.new_access_token is None
