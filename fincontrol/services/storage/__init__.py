"""
Storage Services Package

Provides the abstract record-store capability and concrete implementations.
Google Sheets is the production mirror; the in-memory store backs tests and
local-only runs.
"""

from fincontrol.services.storage.interface import (
    AuditStorageInterface,
    BatchCommitError,
    ConnectionError,
    Document,
    NotFoundError,
    OperationKind,
    RecordStoreInterface,
    RemoteOperation,
    StorageError,
    apply_operations,
)
from fincontrol.services.storage.memory import InMemoryRecordStore
from fincontrol.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    worksheet_title,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "Document",
    "OperationKind",
    "RecordStoreInterface",
    "RemoteOperation",
    "apply_operations",
    # Exceptions
    "BatchCommitError",
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryRecordStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
    "worksheet_title",
]
