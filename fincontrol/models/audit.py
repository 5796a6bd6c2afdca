"""
Audit Models for the Series Ledger

DESIGN DECISION: The audit trail is append-only. Events are written once
and never edited; a correction is a new event.

Events are built through AuditEventBuilder so each ledger action always
produces the same shape of details.
"""

import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


# Field order of an audit row in the spreadsheet
SHEET_FIELDS = (
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details",
    "error_message",
    "is_user_action",
)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Creation
    SERIES_PROJECTED = "series_projected"
    TRANSACTION_CREATED = "transaction_created"
    VALIDATION_FAILED = "validation_failed"

    # Mutation
    TRANSACTIONS_UPDATED = "transactions_updated"
    TRANSACTIONS_DELETED = "transactions_deleted"

    # Remote mirror
    REMOTE_WRITE_FAILED = "remote_write_failed"
    SNAPSHOT_APPLIED = "snapshot_applied"
    CLOUD_LINKED = "cloud_linked"
    CLOUD_UNLINKED = "cloud_unlinked"
    LOCAL_PUSH_COMPLETED = "local_push_completed"
    LOCAL_PUSH_FAILED = "local_push_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Maps onto the structlog level the event is logged at."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """One entry of the append-only audit trail."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="UTC, naive"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What the event is about: a transaction, a series, the whole ledger or a form
    entity_type: Optional[str] = None
    entity_id: Optional[UUID] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Shared by every event of one user action"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """Flat JSON-safe fields for structlog."""
        return self.model_dump(mode="json")

    def to_sheets_row(self) -> list:
        """Cells in audit sheet column order; None becomes an empty cell."""
        data = self.model_dump(mode="json")
        data["details"] = json.dumps(data["details"]) if data["details"] else ""
        data["is_user_action"] = str(self.is_user_action)
        return ["" if data[name] is None else data[name] for name in SHEET_FIELDS]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.series_projected(series_id, "installment_plan", 3)
        event = AuditEventBuilder.remote_write_failed("batch_delete", 4, str(exc))
    """

    @staticmethod
    def series_projected(
        series_id: UUID,
        series_kind: str,
        record_count: int,
        total_amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERIES_PROJECTED,
            entity_type="series",
            entity_id=series_id,
            correlation_id=correlation_id,
            description=f"Projected {series_kind} with {record_count} records",
            details={
                "series_kind": series_kind,
                "record_count": record_count,
                "total_amount": total_amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_created(
        transaction_id: UUID,
        kind: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction created: {kind} {amount}",
            details={
                "kind": kind,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="form",
            correlation_id=correlation_id,
            description=f"Transaction form rejected with {len(issues)} issues",
            details={"issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def transactions_updated(
        target_id: Optional[UUID],
        updated_ids: list[UUID],
        fields: list[str],
        propagated: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_UPDATED,
            entity_type="transaction",
            entity_id=target_id,
            correlation_id=correlation_id,
            description=f"Updated {len(updated_ids)} transactions",
            details={
                "updated_ids": [str(i) for i in updated_ids],
                "fields": fields,
                "propagated": propagated,
            },
            is_user_action=True,
        )

    @staticmethod
    def transactions_deleted(
        target_id: UUID,
        mode: str,
        deleted_ids: list[UUID],
        threshold: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_DELETED,
            entity_type="transaction",
            entity_id=target_id,
            correlation_id=correlation_id,
            description=f"Deleted {len(deleted_ids)} transactions ({mode})",
            details={
                "mode": mode,
                "deleted_ids": [str(i) for i in deleted_ids],
                "threshold": threshold.isoformat() if threshold else None,
            },
            is_user_action=True,
        )

    @staticmethod
    def remote_write_failed(
        operation: str,
        record_count: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMOTE_WRITE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="ledger",
            correlation_id=correlation_id,
            description=f"Remote {operation} failed; local state kept",
            error_message=error_message,
            details={
                "operation": operation,
                "record_count": record_count,
            },
        )

    @staticmethod
    def snapshot_applied(
        record_count: int,
        skipped_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_APPLIED,
            severity=AuditSeverity.DEBUG,
            entity_type="ledger",
            description=f"Remote snapshot replaced ledger with {record_count} records",
            details={
                "record_count": record_count,
                "skipped_count": skipped_count,
            },
        )

    @staticmethod
    def cloud_linked(user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CLOUD_LINKED,
            entity_type="ledger",
            description="Cloud subscription established",
            details={"user_id": user_id},
            is_user_action=True,
        )

    @staticmethod
    def cloud_unlinked(user_id: Optional[str], discarded_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CLOUD_UNLINKED,
            entity_type="ledger",
            description="Signed out; local transactions cleared",
            details={
                "user_id": user_id,
                "discarded_count": discarded_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def local_push_completed(record_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOCAL_PUSH_COMPLETED,
            entity_type="ledger",
            description=f"Uploaded {record_count} local transactions",
            details={"record_count": record_count},
            is_user_action=True,
        )

    @staticmethod
    def local_push_failed(record_count: int, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOCAL_PUSH_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="ledger",
            description="Upload of local transactions failed",
            error_message=error_message,
            details={"record_count": record_count},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
