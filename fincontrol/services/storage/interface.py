"""
Abstract Storage Interface

DESIGN DECISION: The remote mirror is consumed only as a capability:
"durably store records keyed by id, notify on change, support atomic
multi-record writes". This allows us to:
1. Swap Google Sheets for a document database later
2. Use in-memory storage for testing
3. Keep the sync engine decoupled from any client library

Records cross this boundary as plain JSON-compatible dicts. Stores reject
None values; callers strip them first (see fincontrol.sync.codec).
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from fincontrol.models.audit import AuditEvent


Document = dict[str, Any]
SnapshotCallback = Callable[[list[Document]], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]


class OperationKind(str, Enum):
    PUT = "put"
    UPDATE = "update"
    DELETE = "delete"


class RemoteOperation(BaseModel):
    """One write inside an atomic batch."""

    kind: OperationKind
    doc_id: str
    data: Document = Field(default_factory=dict)

    @classmethod
    def put(cls, doc_id: Union[str, UUID], data: Document) -> 'RemoteOperation':
        return cls(kind=OperationKind.PUT, doc_id=str(doc_id), data=data)

    @classmethod
    def update(cls, doc_id: Union[str, UUID], data: Document) -> 'RemoteOperation':
        return cls(kind=OperationKind.UPDATE, doc_id=str(doc_id), data=data)

    @classmethod
    def delete(cls, doc_id: Union[str, UUID]) -> 'RemoteOperation':
        return cls(kind=OperationKind.DELETE, doc_id=str(doc_id))


class RecordStoreInterface(ABC):
    """
    Abstract interface for the durable keyed store.

    Any remote implementation (Google Sheets, a document database, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def put(self, collection_path: str, doc_id: str, record: Document) -> None:
        """
        Create or overwrite a document.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update(self, collection_path: str, doc_id: str, partial: Document) -> None:
        """
        Merge fields into an existing document.

        Raises:
            NotFoundError: If the document doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, collection_path: str, doc_id: str) -> None:
        """Delete a document. Deleting a missing document is not an error."""
        pass

    @abstractmethod
    async def batch(self, collection_path: str, operations: list[RemoteOperation]) -> None:
        """
        Apply all operations atomically: either every one is visible or none.

        Raises:
            BatchCommitError: If any operation cannot be applied
        """
        pass

    @abstractmethod
    async def subscribe(
        self,
        collection_path: str,
        on_snapshot: SnapshotCallback,
    ) -> Unsubscribe:
        """
        Receive the full collection on subscription and after every change.

        Returns:
            A callable that tears the subscription down
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for one user action, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class BatchCommitError(StorageError):
    """An atomic batch was rejected; nothing was written."""

    def __init__(self, message: str, operation: Optional[RemoteOperation] = None):
        self.operation = operation
        super().__init__(message)


def _reject_none(data: Any, path: str = "") -> None:
    if data is None:
        raise StorageError(f"Unsupported field value None at '{path or '<root>'}'")
    if isinstance(data, dict):
        for key, value in data.items():
            _reject_none(value, f"{path}.{key}" if path else key)
    elif isinstance(data, list):
        for index, value in enumerate(data):
            _reject_none(value, f"{path}[{index}]")


def apply_operations(
    documents: dict[str, Document],
    operations: list[RemoteOperation],
) -> dict[str, Document]:
    """
    Apply operations to a copy of a collection.

    Validates every operation before returning, so a failure leaves the
    caller's collection untouched.
    """
    result = {doc_id: dict(data) for doc_id, data in documents.items()}
    for operation in operations:
        try:
            _reject_none(operation.data)
        except StorageError as e:
            raise BatchCommitError(str(e), operation) from e

        if operation.kind == OperationKind.PUT:
            result[operation.doc_id] = dict(operation.data)
        elif operation.kind == OperationKind.UPDATE:
            if operation.doc_id not in result:
                raise BatchCommitError(
                    f"Cannot update missing document: {operation.doc_id}",
                    operation,
                )
            result[operation.doc_id].update(operation.data)
        else:
            result.pop(operation.doc_id, None)
    return result
