"""
Google Sheets backend for the committed store and the request queue.

Three worksheets, each created with a header row on first use:

    Events        id | name | is_deleted
    Transactions  one row per committed transaction, keyed by event id
    Requests      one row per pending request, payload as JSON

The treasurer can read the ledger straight from the spreadsheet. There
is no cross-sheet transaction; the approval coordinator orders its
writes so a failure between sheets leaves a retryable state. All
filtering happens in Python after a full sheet read, which is fine at
the size of one organisation's books.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional

import gspread
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from hms_finance.config import GoogleSheetsSettings, get_settings
from hms_finance.models.ledger import (
    Event,
    Transaction,
    TransactionFields,
    TransactionType,
    new_id,
)
from hms_finance.models.requests import PendingRequest
from hms_finance.services.image import BlobStoreInterface
from hms_finance.services.storage.interface import (
    DuplicateError,
    EventStoreInterface,
    NotFoundError,
    RequestQueueInterface,
    StorageError,
    StoreUnavailableError,
    release_receipts,
)


EVENT_COLUMNS = [
    "id",
    "name",
    "is_deleted",
]

TRANSACTION_COLUMNS = [
    "id",
    "event_id",
    "name",
    "amount",
    "type",
    "date",
    "description",
    "image",
]

REQUEST_COLUMNS = [
    "id",
    "type",
    "data_json",
    "description",
    "timestamp",
    "requested_by",
    "is_read",
]

_api_retry = retry(
    retry=retry_if_exception_type(gspread.exceptions.APIError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _safe_get(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _parse_bool(value: str) -> bool:
    return value.strip().lower() == "true"


def _find_row(rows: list[list], predicate) -> Optional[int]:
    """Sheet row number (header is row 1) of the first matching data row."""
    for idx, row in enumerate(rows, start=2):
        if row and predicate(row):
            return idx
    return None


class GoogleSheetsClient:
    """
    Thin gspread wrapper shared by both stores.

    Authenticates lazily, creates missing worksheets with a header row
    and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """Authorize with the service account (once per client)."""
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise StoreUnavailableError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StoreUnavailableError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StoreUnavailableError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns, value_input_option="RAW")
        return sheet

    def get_events_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.events_sheet_name, EVENT_COLUMNS, 500)

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, 5000
        )

    def get_requests_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.requests_sheet_name, REQUEST_COLUMNS, 1000)

    @_api_retry
    def read_rows(self, sheet: gspread.Worksheet) -> list[list]:
        """All data rows, header excluded."""
        return sheet.get_all_values()[1:]

    @_api_retry
    def read_row(self, sheet: gspread.Worksheet, row_number: int) -> list:
        return sheet.row_values(row_number)

    @_api_retry
    def append_row(self, sheet: gspread.Worksheet, row: list) -> None:
        sheet.append_row(row, value_input_option="RAW")

    @_api_retry
    def update_row(self, sheet: gspread.Worksheet, row_number: int, row: list) -> None:
        sheet.update(
            range_name=f"A{row_number}",
            values=[row],
            value_input_option="RAW",
        )

    @_api_retry
    def update_cell(self, sheet: gspread.Worksheet, row_number: int, col: int, value) -> None:
        sheet.update(
            range_name=rowcol_to_a1(row_number, col),
            values=[[value]],
            value_input_option="RAW",
        )

    @_api_retry
    def delete_row(self, sheet: gspread.Worksheet, row_number: int) -> None:
        sheet.delete_rows(row_number)

    def locate_row(
        self,
        sheet: gspread.Worksheet,
        predicate: Callable[[list], bool],
        attempts: int = 3,
    ) -> Optional[tuple[int, list]]:
        """
        Find the first data row matching ``predicate`` and confirm it.

        Row numbers shift when another writer deletes an earlier row, so
        the candidate row is read back and checked again before it is
        returned; on a mismatch the sheet is rescanned.

        Returns:
            (row_number, row) or None when nothing matches
        """
        for _ in range(attempts):
            row_number = _find_row(self.read_rows(sheet), predicate)
            if row_number is None:
                return None
            current = self.read_row(sheet, row_number)
            if current and predicate(current):
                return row_number, current
        raise StoreUnavailableError("Sheet rows kept shifting; try again")

    def delete_matching_row(
        self,
        sheet: gspread.Worksheet,
        predicate: Callable[[list], bool],
    ) -> Optional[list]:
        """Delete the first confirmed row matching ``predicate``; returns it."""
        located = self.locate_row(sheet, predicate)
        if located is None:
            return None
        row_number, row = located
        self.delete_row(sheet, row_number)
        return row


class GoogleSheetsEventStore(EventStoreInterface):
    """
    Google Sheets implementation of the committed store.

    Events and transactions live in separate worksheets; a transaction
    row carries the id of its event.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        blob_store: Optional[BlobStoreInterface] = None,
    ):
        self._client = client or GoogleSheetsClient()
        self._blob_store = blob_store

    def _event_to_row(self, event: Event) -> list:
        return [event.id, event.name, str(event.is_deleted)]

    def _transaction_to_row(self, event_id: str, transaction: Transaction) -> list:
        return [
            transaction.id,
            event_id,
            transaction.name,
            str(transaction.amount),
            transaction.type.value,
            transaction.date.isoformat(),
            transaction.description or "",
            transaction.image or "",
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        return Transaction(
            id=_safe_get(row, 0),
            name=_safe_get(row, 2),
            amount=Decimal(_safe_get(row, 3, "0")),
            type=TransactionType(_safe_get(row, 4)),
            date=date.fromisoformat(_safe_get(row, 5)),
            description=_safe_get(row, 6) or None,
            image=_safe_get(row, 7) or None,
        )

    def _load(self) -> tuple[list[list], list[list]]:
        events_rows = self._client.read_rows(self._client.get_events_sheet())
        tx_rows = self._client.read_rows(self._client.get_transactions_sheet())
        return events_rows, tx_rows

    def _build_event(self, row: list, tx_rows: list[list]) -> Event:
        event_id = _safe_get(row, 0)
        transactions = []
        for tx_row in tx_rows:
            if _safe_get(tx_row, 1) != event_id:
                continue
            try:
                transactions.append(self._row_to_transaction(tx_row))
            except Exception:
                continue  # Skip malformed rows
        return Event(
            id=event_id,
            name=_safe_get(row, 1),
            is_deleted=_parse_bool(_safe_get(row, 2, "false")),
            transactions=transactions,
        )

    def _event_exists(self, event_id: str) -> bool:
        rows = self._client.read_rows(self._client.get_events_sheet())
        return _find_row(rows, lambda r: r[0] == event_id) is not None

    async def list_events(self, include_deleted: bool = False) -> list[Event]:
        try:
            events_rows, tx_rows = self._load()
            events = []
            for row in events_rows:
                if not row or not row[0]:
                    continue
                event = self._build_event(row, tx_rows)
                if include_deleted or not event.is_deleted:
                    events.append(event)
            return events
        except StorageError:
            raise
        except Exception as e:
            raise StoreUnavailableError(f"Failed to list events: {e}")

    async def get_event(self, event_id: str) -> Event:
        try:
            events_rows, tx_rows = self._load()
            for row in events_rows:
                if row and row[0] == event_id:
                    return self._build_event(row, tx_rows)
        except StorageError:
            raise
        except Exception as e:
            raise StoreUnavailableError(f"Failed to get event: {e}")
        raise NotFoundError(f"Event not found: {event_id}")

    async def create_event(self, name: str) -> Event:
        event = Event(name=name)
        try:
            sheet = self._client.get_events_sheet()
            self._client.append_row(sheet, self._event_to_row(event))
            return event
        except StorageError:
            raise
        except Exception as e:
            raise StoreUnavailableError(f"Failed to create event: {e}")

    async def set_deleted(self, event_id: str, deleted: bool) -> bool:
        try:
            sheet = self._client.get_events_sheet()
            located = self._client.locate_row(sheet, lambda r: r[0] == event_id)
            if located is None:
                return False
            self._client.update_cell(sheet, located[0], 3, str(deleted))
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StoreUnavailableError(f"Failed to update event: {e}")

    async def purge_event(self, event_id: str) -> bool:
        images = []
        try:
            events_sheet = self._client.get_events_sheet()
            tx_sheet = self._client.get_transactions_sheet()
            if self._client.locate_row(events_sheet, lambda r: r[0] == event_id) is None:
                return False

            # One confirmed row at a time; row numbers move after every delete
            while True:
                row = self._client.delete_matching_row(
                    tx_sheet, lambda r: _safe_get(r, 1) == event_id
                )
                if row is None:
                    break
                if _safe_get(row, 7):
                    images.append(_safe_get(row, 7))

            self._client.delete_matching_row(events_sheet, lambda r: r[0] == event_id)
        except StorageError:
            raise
        except Exception as e:
            raise StoreUnavailableError(f"Failed to purge event: {e}")

        await release_receipts(self._blob_store, images)
        return True

    async def append_transaction(
        self,
        event_id: str,
        fields: TransactionFields,
    ) -> Transaction:
        transaction = Transaction.from_fields(new_id(), fields)
        try:
            if not self._event_exists(event_id):
                raise NotFoundError(f"Event not found: {event_id}")
            sheet = self._client.get_transactions_sheet()
            self._client.append_row(sheet, self._transaction_to_row(event_id, transaction))
            return transaction
        except StorageError:
            raise
        except Exception as e:
            raise StoreUnavailableError(f"Failed to append transaction: {e}")

    async def replace_transaction(
        self,
        event_id: str,
        transaction_id: str,
        fields: TransactionFields,
    ) -> bool:
        replacement = Transaction.from_fields(transaction_id, fields)
        try:
            if not self._event_exists(event_id):
                raise NotFoundError(f"Event not found: {event_id}")
            sheet = self._client.get_transactions_sheet()
            located = self._client.locate_row(
                sheet,
                lambda r: r[0] == transaction_id and _safe_get(r, 1) == event_id,
            )
            if located is None:
                return False
            self._client.update_row(
                sheet, located[0], self._transaction_to_row(event_id, replacement)
            )
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StoreUnavailableError(f"Failed to replace transaction: {e}")

    async def remove_transaction(self, event_id: str, transaction_id: str) -> bool:
        try:
            if not self._event_exists(event_id):
                raise NotFoundError(f"Event not found: {event_id}")
            sheet = self._client.get_transactions_sheet()
            row = self._client.delete_matching_row(
                sheet,
                lambda r: r[0] == transaction_id and _safe_get(r, 1) == event_id,
            )
        except StorageError:
            raise
        except Exception as e:
            raise StoreUnavailableError(f"Failed to remove transaction: {e}")

        if row is None:
            return False
        if _safe_get(row, 7):
            await release_receipts(self._blob_store, [_safe_get(row, 7)])
        return True


class GoogleSheetsRequestQueue(RequestQueueInterface):
    """
    Google Sheets implementation of the request queue.

    Payloads are JSON-serialized with their camelCase field names.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _request_to_row(self, request: PendingRequest) -> list:
        return [
            request.id,
            request.type.value,
            json.dumps(request.data.model_dump(mode="json", by_alias=True)),
            request.description,
            request.timestamp.isoformat(),
            request.requested_by,
            str(request.is_read),
        ]

    def _row_to_request(self, row: list) -> PendingRequest:
        return PendingRequest(
            id=_safe_get(row, 0),
            type=_safe_get(row, 1),
            data=json.loads(_safe_get(row, 2, "{}")),
            description=_safe_get(row, 3),
            timestamp=datetime.fromisoformat(_safe_get(row, 4)),
            requested_by=_safe_get(row, 5),
            is_read=_parse_bool(_safe_get(row, 6, "false")),
        )

    def _rows(self) -> tuple[gspread.Worksheet, list[list]]:
        sheet = self._client.get_requests_sheet()
        return sheet, self._client.read_rows(sheet)

    async def add(self, request: PendingRequest) -> PendingRequest:
        try:
            sheet, rows = self._rows()
            if _find_row(rows, lambda r: r[0] == request.id) is not None:
                raise DuplicateError(f"Request already exists: {request.id}")
            self._client.append_row(sheet, self._request_to_row(request))
            return request
        except StorageError:
            raise
        except Exception as e:
            raise StoreUnavailableError(f"Failed to add request: {e}")

    async def get(self, request_id: str) -> Optional[PendingRequest]:
        try:
            _, rows = self._rows()
            for row in rows:
                if row and row[0] == request_id:
                    return self._row_to_request(row)
            return None
        except StorageError:
            raise
        except Exception as e:
            raise StoreUnavailableError(f"Failed to get request: {e}")

    async def list_requests(self, event_id: Optional[str] = None) -> list[PendingRequest]:
        try:
            _, rows = self._rows()
        except StorageError:
            raise
        except Exception as e:
            raise StoreUnavailableError(f"Failed to list requests: {e}")

        requests = []
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                request = self._row_to_request(row)
            except Exception:
                continue  # Skip malformed rows
            if event_id is None or request.event_id == event_id:
                requests.append(request)
        return requests

    async def replace(self, request: PendingRequest) -> bool:
        try:
            sheet = self._client.get_requests_sheet()
            located = self._client.locate_row(sheet, lambda r: r[0] == request.id)
            if located is None:
                return False
            self._client.update_row(sheet, located[0], self._request_to_row(request))
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StoreUnavailableError(f"Failed to replace request: {e}")

    async def delete(self, request_id: str) -> bool:
        try:
            sheet = self._client.get_requests_sheet()
            deleted = self._client.delete_matching_row(sheet, lambda r: r[0] == request_id)
            return deleted is not None
        except StorageError:
            raise
        except Exception as e:
            raise StoreUnavailableError(f"Failed to delete request: {e}")

    async def mark_all_read(self) -> int:
        try:
            sheet, rows = self._rows()
            updated = 0
            for idx, row in enumerate(rows, start=2):
                if row and row[0] and not _parse_bool(_safe_get(row, 6, "false")):
                    self._client.update_cell(sheet, idx, 7, "True")
                    updated += 1
            return updated
        except StorageError:
            raise
        except Exception as e:
            raise StoreUnavailableError(f"Failed to mark requests read: {e}")
