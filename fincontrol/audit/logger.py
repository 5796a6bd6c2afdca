"""
Audit Logger

DESIGN DECISION: Every change to the ledger leaves an audit event, local
or mirrored. Series-wide edits and deletions touch many records at once,
and a failed remote write is never rolled back, so the trail is the only
record of what the user asked for versus what reached the cloud.

Audit logging itself must never fail a user action: storage errors are
logged and swallowed. Events from one user action share a correlation id.
"""

from datetime import date
from typing import Optional
from uuid import UUID, uuid4

import structlog

from fincontrol.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from fincontrol.services.storage import AuditStorageInterface


# JSON lines on the stdlib logging tree
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


_LOG_LEVELS = {
    AuditSeverity.DEBUG: "debug",
    AuditSeverity.INFO: "info",
    AuditSeverity.WARNING: "warning",
    AuditSeverity.ERROR: "error",
    AuditSeverity.CRITICAL: "error",
}


class AuditLogger:
    """Writes audit events to the structured log and, when given one, to audit storage."""

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Emit one event. The log level follows the event severity.

        Returns False only when a configured storage rejected the event.
        """
        level = _LOG_LEVELS.get(event.severity, "info")
        getattr(self._logger, level)("audit_event", **event.to_log_dict())

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_series_projected(
        self,
        series_id: UUID,
        series_kind: str,
        record_count: int,
        total_amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.series_projected(
            series_id=series_id,
            series_kind=series_kind,
            record_count=record_count,
            total_amount=total_amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_created(
        self,
        transaction_id: UUID,
        kind: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_created(
            transaction_id=transaction_id,
            kind=kind,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a rejected form."""
        event = AuditEventBuilder.validation_failed(
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transactions_updated(
        self,
        target_id: Optional[UUID],
        updated_ids: list[UUID],
        fields: list[str],
        propagated: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transactions_updated(
            target_id=target_id,
            updated_ids=updated_ids,
            fields=fields,
            propagated=propagated,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transactions_deleted(
        self,
        target_id: UUID,
        mode: str,
        deleted_ids: list[UUID],
        threshold: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transactions_deleted(
            target_id=target_id,
            mode=mode,
            deleted_ids=deleted_ids,
            threshold=threshold,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_remote_write_failed(
        self,
        operation: str,
        record_count: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a mirror write that failed while the local change was kept."""
        event = AuditEventBuilder.remote_write_failed(
            operation=operation,
            record_count=record_count,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_snapshot_applied(self, record_count: int, skipped_count: int) -> None:
        await self.log(AuditEventBuilder.snapshot_applied(record_count, skipped_count))

    async def log_cloud_linked(self, user_id: str) -> None:
        await self.log(AuditEventBuilder.cloud_linked(user_id))

    async def log_cloud_unlinked(self, user_id: Optional[str], discarded_count: int) -> None:
        await self.log(AuditEventBuilder.cloud_unlinked(user_id, discarded_count))

    async def log_local_push_completed(self, record_count: int) -> None:
        await self.log(AuditEventBuilder.local_push_completed(record_count))

    async def log_local_push_failed(self, record_count: int, error_message: str) -> None:
        await self.log(AuditEventBuilder.local_push_failed(record_count, error_message))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """One id per user action (a form submit, a series delete)."""
    return uuid4()
