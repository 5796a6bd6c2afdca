"""
Remote Document Codec

Converts transactions to and from the plain JSON documents the record
store holds. Stores reject None values, so every outbound document has its
nulls stripped here; a field that is absent remotely decodes back to None.

The document id is the store key and is not repeated inside the document.
Snapshots carry it back in an "id" field.
"""

from typing import Any, Optional

import structlog
from pydantic import ValidationError

from fincontrol.models.transaction import Transaction, TransactionUpdate
from fincontrol.services.storage.interface import Document, RemoteOperation


logger = structlog.get_logger(__name__)


def strip_none(value: Any) -> Any:
    """Recursively drop None values from dicts and lists."""
    if isinstance(value, dict):
        return {k: strip_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [strip_none(v) for v in value if v is not None]
    return value


def to_remote_document(record: Transaction) -> Document:
    document = strip_none(record.model_dump(mode="json"))
    document.pop("id", None)
    return document


def sanitize_changes(changes: dict[str, Any]) -> Document:
    """JSON-safe form of an edit's field changes, nulls removed."""
    if not changes:
        return {}
    update = TransactionUpdate(**changes)
    return update.model_dump(mode="json", include=set(changes), exclude_none=True)


def change_operation(record: Transaction, changes: dict[str, Any]) -> RemoteOperation:
    """
    The write that mirrors an edit of record.

    A cleared field cannot be expressed as a partial update without a null,
    so such edits overwrite the whole document instead.
    """
    if any(value is None for value in changes.values()):
        return RemoteOperation.put(record.id, to_remote_document(record))
    return RemoteOperation.update(record.id, sanitize_changes(changes))


def from_remote_document(document: Document) -> Optional[Transaction]:
    """Parse one snapshot document; malformed documents are logged and skipped."""
    try:
        return Transaction.model_validate(document)
    except ValidationError as e:
        logger.warning(
            "remote_document_skipped",
            doc_id=str(document.get("id")),
            errors=e.error_count(),
        )
        return None


def decode_snapshot(documents: list[Document]) -> tuple[list[Transaction], int]:
    """All parseable records of a snapshot plus the number skipped."""
    records = []
    skipped = 0
    for document in documents:
        record = from_remote_document(document)
        if record is None:
            skipped += 1
        else:
            records.append(record)
    return records, skipped
