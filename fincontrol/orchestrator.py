"""
Main Orchestrator for FinControl

This module ties together all the components and defines the
end-to-end flows for:
1. Transactions (form → validate → project → ledger → mirror)
2. Cloud link (sign in → snapshot replace, sign out → clear, manual push)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is created from a form that failed validation
- The ledger is only ever changed through the SyncEngine
- Every user action is audited under one correlation id

The pure series resolvers and the engine do the work; the flows add
auditing and user feedback around them.
"""

from datetime import date
from typing import Any, Optional, Union
from uuid import UUID

import structlog

from fincontrol.audit import AuditLogger, create_correlation_id
from fincontrol.config import get_settings
from fincontrol.ledger import TransactionLedger
from fincontrol.models.transaction import (
    DeletionMode,
    InstallmentPurchaseIntent,
    RecurringIncomeIntent,
    SeriesKind,
    SingleTransactionIntent,
    Transaction,
    TransactionUpdate,
)
from fincontrol.series import (
    DeletionPlan,
    EditResult,
    project_installment_plan,
    project_recurring_income,
    project_single_transaction,
)
from fincontrol.services.notifications import (
    LoggingNotificationSink,
    NotificationSeverity,
    NotificationSink,
)
from fincontrol.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    RecordStoreInterface,
)
from fincontrol.sync import SyncEngine
from fincontrol.validation import (
    IntentRejectedError,
    IntentValidator,
    TransactionFormData,
)


logger = structlog.get_logger(__name__)


class TransactionFlow:
    """
    Orchestrates creating, editing and deleting transactions.

    Flow for a new transaction:
    1. Validate → Two-stage form validation (reject on any error)
    2. Route → recurring income, installment purchase or single record
    3. Project → Pure expansion into dated records
    4. Apply → Ledger updated at once, remote mirror in the background
    5. Audit + notify
    """

    def __init__(
        self,
        engine: SyncEngine,
        validator: Optional[IntentValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        notifier: Optional[NotificationSink] = None,
    ):
        self._engine = engine
        self._validator = validator or IntentValidator()
        self._audit_logger = audit_logger or AuditLogger()
        self._notifier = notifier or LoggingNotificationSink()

    @property
    def records(self) -> list[Transaction]:
        return self._engine.ledger.records

    async def submit(
        self,
        form: Union[dict[str, Any], TransactionFormData],
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Validate a form and create whatever it describes.

        Returns:
            The created records (one, or a whole series)

        Raises:
            IntentRejectedError: If validation fails; nothing is created
        """
        correlation_id = correlation_id or create_correlation_id()

        result = self._validator.validate(form)
        if not result.is_valid:
            issues = [
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in result.issues
                if i.severity == "error"
            ]
            await self._audit_logger.log_validation_failed(
                issues=issues,
                correlation_id=correlation_id,
            )
            raise IntentRejectedError(result)

        intent = self._validator.build_intent(form)
        if isinstance(intent, RecurringIncomeIntent):
            return await self.create_recurring_income(intent, correlation_id)
        if isinstance(intent, InstallmentPurchaseIntent):
            return await self.create_installment_purchase(intent, correlation_id)
        return [await self.create_transaction(intent, correlation_id)]

    async def create_recurring_income(
        self,
        intent: RecurringIncomeIntent,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """Project a recurring income over twelve months."""
        records = self._engine.add_transactions(project_recurring_income(intent))

        await self._audit_logger.log_series_projected(
            series_id=records[0].series_recurring_id,
            series_kind=SeriesKind.RECURRING_INCOME.value,
            record_count=len(records),
            total_amount=str(sum(r.amount for r in records)),
            correlation_id=correlation_id,
        )
        self._notifier.notify(
            f"Recurring income projected for {len(records)} months",
            NotificationSeverity.SUCCESS,
        )
        return records

    async def create_installment_purchase(
        self,
        intent: InstallmentPurchaseIntent,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """Register a credit-card purchase as its installments."""
        records = self._engine.add_transactions(project_installment_plan(intent))
        first = records[0]

        await self._audit_logger.log_series_projected(
            series_id=first.installment_info.series_plan_id,
            series_kind=SeriesKind.INSTALLMENT_PLAN.value,
            record_count=len(records),
            total_amount=str(intent.total_amount),
            correlation_id=correlation_id,
        )
        self._notifier.notify(
            f"Purchase registered in {len(records)} installment(s), "
            f"first payment on {first.impact_date.isoformat()}",
            NotificationSeverity.SUCCESS,
        )
        return records

    async def create_transaction(
        self,
        intent: SingleTransactionIntent,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        record = self._engine.add_transaction(project_single_transaction(intent))

        await self._audit_logger.log_transaction_created(
            transaction_id=record.id,
            kind=record.kind.value,
            amount=str(record.amount),
            correlation_id=correlation_id,
        )
        self._notifier.notify("Transaction saved", NotificationSeverity.SUCCESS)
        return record

    async def edit_transaction(
        self,
        transaction_id: UUID,
        update: TransactionUpdate,
        apply_to_future: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> EditResult:
        """
        Edit one record; with apply_to_future, also the later members of
        its recurring series.

        Raises:
            TransactionNotFoundError: If the record does not exist
        """
        result = self._engine.update_transaction(transaction_id, update, apply_to_future)

        await self._audit_logger.log_transactions_updated(
            target_id=transaction_id,
            updated_ids=result.updated_ids,
            fields=sorted(update.changes()),
            propagated=result.propagated,
            correlation_id=correlation_id,
        )
        self._notifier.notify(
            "Transaction and future ones updated" if result.propagated
            else "Transaction updated",
            NotificationSeverity.SUCCESS,
        )
        return result

    async def schedule_future_change(
        self,
        series_recurring_id: UUID,
        from_date: date,
        update: TransactionUpdate,
        correlation_id: Optional[UUID] = None,
    ) -> EditResult:
        """Apply a change (typically a raise) from a date onwards, inclusive."""
        result = self._engine.update_recurring_future(series_recurring_id, from_date, update)

        await self._audit_logger.log_transactions_updated(
            target_id=None,
            updated_ids=result.updated_ids,
            fields=sorted(update.changes()),
            propagated=True,
            correlation_id=correlation_id,
        )
        self._notifier.notify(
            f"{len(result.updated_ids)} transactions updated from {from_date.isoformat()}",
            NotificationSeverity.SUCCESS if result.updated_ids else NotificationSeverity.INFO,
        )
        return result

    async def delete_transaction(
        self,
        transaction_id: UUID,
        mode: DeletionMode = DeletionMode.SINGLE,
        correlation_id: Optional[UUID] = None,
    ) -> DeletionPlan:
        """
        Delete one record, it and its later series members, or the whole series.

        Series deletions are confirmed by the engine once mirrored.

        Raises:
            TransactionNotFoundError: If the record does not exist
        """
        plan = self._engine.delete_transaction(transaction_id, mode)

        await self._audit_logger.log_transactions_deleted(
            target_id=transaction_id,
            mode=plan.mode.value,
            deleted_ids=plan.ids,
            threshold=plan.threshold,
            correlation_id=correlation_id,
        )
        if not plan.is_series_deletion:
            self._notifier.notify("Transaction deleted", NotificationSeverity.SUCCESS)
        return plan


class CloudSyncFlow:
    """
    Orchestrates the cloud link.

    State: anonymous (local only) → authenticated (remote snapshots replace
    the ledger) → anonymous (ledger cleared on sign-out).
    """

    def __init__(self, engine: SyncEngine):
        self._engine = engine

    async def sign_in(self, user_id: str) -> None:
        """
        Raises:
            CloudLinkError: If no remote store is configured
        """
        await self._engine.sign_in(user_id)

    async def sign_out(self) -> None:
        await self._engine.sign_out()

    async def push_local_to_cloud(self) -> bool:
        return await self._engine.push_local_to_cloud()

    def status(self) -> dict:
        return {
            "state": self._engine.state.value,
            "user_id": self._engine.user_id,
            "record_count": len(self._engine.ledger),
            "pending_writes": self._engine.pending_count,
            "is_syncing": self._engine.is_syncing,
        }


def create_app_components(
    use_storage: bool = True,
    notifier: Optional[NotificationSink] = None,
) -> tuple[TransactionFlow, CloudSyncFlow, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False for local-only use and testing.
        notifier: Where user-facing messages go (defaults to the log)

    Returns:
        (transaction_flow, cloud_sync_flow, sheets_client)
    """
    sheets_client = None
    record_store: Optional[RecordStoreInterface] = None
    audit_logger = None
    notifier = notifier or LoggingNotificationSink()

    if use_storage:
        try:
            _ = get_settings().google_sheets
            sheets_client = GoogleSheetsClient()
            record_store = GoogleSheetsRecordStore(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            record_store = None
            audit_logger = AuditLogger()  # Local-only logging
    else:
        audit_logger = AuditLogger()  # Local-only logging

    engine = SyncEngine(
        TransactionLedger(),
        store=record_store,
        notifier=notifier,
        audit_logger=audit_logger,
    )

    transaction_flow = TransactionFlow(
        engine,
        audit_logger=audit_logger,
        notifier=notifier,
    )
    cloud_sync_flow = CloudSyncFlow(engine)

    return transaction_flow, cloud_sync_flow, sheets_client
