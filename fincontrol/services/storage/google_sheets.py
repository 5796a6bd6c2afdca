"""
Google Sheets Record Store

DESIGN DECISION: The remote mirror is a spreadsheet the user already owns.
They can open and read their ledger directly, and no server is involved.

Layout:
- one worksheet per collection path (users.<uid>.transactions), one
  document per row as (id, updated_at, data_json)
- one AuditLog worksheet, one audit event per row

TRADEOFFS:
- Sheets has no server push; subscriptions poll and fire on change
- Sheets has no multi-row transaction; a commit reads the sheet, applies
  every operation in memory and writes the result back with one values
  update, so a batch lands whole or not at all
"""

import asyncio
import hashlib
import inspect
import json
from datetime import datetime
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from fincontrol.config import get_settings
from fincontrol.models.audit import AuditEvent, AuditEventType, AuditSeverity
from fincontrol.services.storage.interface import (
    AuditStorageInterface,
    BatchCommitError,
    ConnectionError,
    Document,
    NotFoundError,
    RecordStoreInterface,
    RemoteOperation,
    SnapshotCallback,
    StorageError,
    Unsubscribe,
    apply_operations,
)


logger = structlog.get_logger(__name__)


RECORD_COLUMNS = [
    "id",
    "updated_at",
    "data_json",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

_FORBIDDEN_TITLE_CHARS = str.maketrans({c: "_" for c in ":\\?*[]"})


def worksheet_title(collection_path: str) -> str:
    """Worksheet name for a collection path like users/<uid>/transactions."""
    title = collection_path.strip("/").replace("/", ".").translate(_FORBIDDEN_TITLE_CHARS)
    return title[:100]


class GoogleSheetsClient:
    """
    Owns the authorized gspread session and the spreadsheet handle.

    Connecting is retried; worksheets are created on first use with their
    header row.
    """

    SCOPES = [
        "https://www.googleapis.com/auth/spreadsheets",
        "https://www.googleapis.com/auth/drive",
    ]

    def __init__(self):
        self._settings = get_settings().google_sheets
        self._gc: Optional[gspread.Client] = None
        self._book: Optional[gspread.Spreadsheet] = None

    @property
    def poll_interval(self) -> float:
        return self._settings.poll_interval_seconds

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        if self._gc is not None:
            return self._gc
        path = self._settings.credentials_path
        try:
            credentials = Credentials.from_service_account_file(path, scopes=self.SCOPES)
        except FileNotFoundError:
            raise ConnectionError(f"Service account file missing: {path}")
        try:
            self._gc = gspread.authorize(credentials)
        except Exception as e:
            raise ConnectionError(f"Google Sheets authorization failed: {e}")
        return self._gc

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        if self._book is None:
            spreadsheet_id = self._settings.spreadsheet_id
            try:
                self._book = self.connect().open_by_key(spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(f"No spreadsheet with id {spreadsheet_id}")
        return self._book

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_collection_sheet(self, collection_path: str) -> gspread.Worksheet:
        return self.get_worksheet(worksheet_title(collection_path), RECORD_COLUMNS)

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,
        )


class GoogleSheetsRecordStore(RecordStoreInterface):
    """
    Google Sheets implementation of the durable keyed store.

    Writes are not retried: a failed write surfaces to the caller, which
    keeps its local state and reports the failure.

    gspread calls run in worker threads. Commits to one collection are
    serialized so each read-modify-write sees the previous one.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._pollers: dict[int, asyncio.Task] = {}
        self._next_poller = 0
        # One read-modify-write per collection at a time
        self._locks: dict[str, asyncio.Lock] = {}

    def _read_documents(self, sheet: gspread.Worksheet) -> tuple[dict[str, Document], int]:
        """Documents in row order plus the number of data rows read."""
        rows = sheet.get_all_values()[1:]  # Skip header
        documents: dict[str, Document] = {}
        for row in rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                documents[row[0]] = json.loads(row[2])
            except (IndexError, json.JSONDecodeError):
                logger.warning("sheets_row_skipped", doc_id=row[0])
                continue
        return documents, len(rows)

    def _write_documents(
        self,
        sheet: gspread.Worksheet,
        documents: dict[str, Document],
        previous_rows: int,
    ) -> None:
        timestamp = datetime.utcnow().isoformat()
        values = [RECORD_COLUMNS]
        for doc_id, data in documents.items():
            values.append([doc_id, timestamp, json.dumps(data, sort_keys=True)])
        # Blank out rows left over from a longer previous version.
        blank = [""] * len(RECORD_COLUMNS)
        values.extend([blank] * max(0, previous_rows - len(documents)))
        if sheet.row_count < len(values):
            sheet.resize(rows=len(values))
        sheet.update(range_name="A1", values=values, value_input_option="RAW")

    def _commit_sync(self, collection_path: str, operations: list[RemoteOperation]) -> None:
        try:
            sheet = self._client.get_collection_sheet(collection_path)
            current, row_count = self._read_documents(sheet)
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {collection_path}: {e}")

        updated = apply_operations(current, operations)

        try:
            self._write_documents(sheet, updated, row_count)
        except Exception as e:
            raise StorageError(f"Failed to write {collection_path}: {e}")

    async def _commit(self, collection_path: str, operations: list[RemoteOperation]) -> None:
        lock = self._locks.setdefault(collection_path, asyncio.Lock())
        async with lock:
            await asyncio.to_thread(self._commit_sync, collection_path, operations)

    async def put(self, collection_path: str, doc_id: str, record: Document) -> None:
        await self._commit(collection_path, [RemoteOperation.put(doc_id, record)])

    async def update(self, collection_path: str, doc_id: str, partial: Document) -> None:
        try:
            await self._commit(collection_path, [RemoteOperation.update(doc_id, partial)])
        except BatchCommitError as e:
            raise NotFoundError(str(e))

    async def delete(self, collection_path: str, doc_id: str) -> None:
        await self._commit(collection_path, [RemoteOperation.delete(doc_id)])

    async def batch(self, collection_path: str, operations: list[RemoteOperation]) -> None:
        await self._commit(collection_path, list(operations))

    async def subscribe(
        self,
        collection_path: str,
        on_snapshot: SnapshotCallback,
    ) -> Unsubscribe:
        poller_id = self._next_poller
        self._next_poller += 1
        task = asyncio.get_running_loop().create_task(
            self._poll(collection_path, on_snapshot)
        )
        self._pollers[poller_id] = task

        def unsubscribe() -> None:
            poller = self._pollers.pop(poller_id, None)
            if poller is not None:
                poller.cancel()

        return unsubscribe

    def _read_collection(self, collection_path: str) -> dict[str, Document]:
        documents, _ = self._read_documents(self._client.get_collection_sheet(collection_path))
        return documents

    async def _poll(self, collection_path: str, on_snapshot: SnapshotCallback) -> None:
        """Deliver the collection now and whenever its content changes."""
        last_fingerprint: Optional[str] = None
        while True:
            try:
                documents = await asyncio.to_thread(self._read_collection, collection_path)
            except Exception as e:
                logger.warning("sheets_poll_failed", collection=collection_path, error=str(e))
            else:
                fingerprint = hashlib.sha256(
                    json.dumps(documents, sort_keys=True).encode("utf-8")
                ).hexdigest()
                if fingerprint != last_fingerprint:
                    last_fingerprint = fingerprint
                    snapshot = [{**data, "id": doc_id} for doc_id, data in documents.items()]
                    result = on_snapshot(snapshot)
                    if inspect.isawaitable(result):
                        await result
            await asyncio.sleep(self._client.poll_interval)


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """Append-only audit trail in its own worksheet, one event per row."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def _row_to_event(row: list) -> AuditEvent:
        cells = dict(zip(AUDIT_COLUMNS, row))

        def optional_uuid(column: str) -> Optional[UUID]:
            value = cells.get(column)
            return UUID(value) if value else None

        return AuditEvent(
            event_id=UUID(cells["event_id"]),
            timestamp=datetime.fromisoformat(cells["timestamp"]),
            event_type=AuditEventType(cells["event_type"]),
            severity=AuditSeverity(cells.get("severity") or AuditSeverity.INFO.value),
            entity_type=cells.get("entity_type") or None,
            entity_id=optional_uuid("entity_id"),
            correlation_id=optional_uuid("correlation_id"),
            description=cells.get("description", ""),
            details=json.loads(cells["details_json"]) if cells.get("details_json") else {},
            error_message=cells.get("error_message") or None,
            is_user_action=cells.get("is_user_action", "").lower() == "true",
        )

    def _read_events(self) -> list[AuditEvent]:
        events = []
        for row in self._client.get_audit_sheet().get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (KeyError, ValueError) as e:
                logger.warning("audit_row_skipped", event_id=row[0], error=str(e))
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _append_row(self, row: list) -> None:
        sheet = await asyncio.to_thread(self._client.get_audit_sheet)
        await asyncio.to_thread(sheet.append_row, row, value_input_option="RAW")

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            await self._append_row(event.to_sheets_row())
        except Exception as e:
            logger.warning("audit_append_failed", error=str(e), event_id=str(event.event_id))
            return False
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = await asyncio.to_thread(self._read_events)
        except Exception as e:
            raise StorageError(f"Could not read audit trail: {e}")
        return sorted(
            (event for event in events if event.correlation_id == correlation_id),
            key=lambda event: event.timestamp,
        )

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = await asyncio.to_thread(self._read_events)
        except Exception as e:
            raise StorageError(f"Could not read audit trail: {e}")
        return sorted(events, key=lambda event: event.timestamp, reverse=True)[:limit]
