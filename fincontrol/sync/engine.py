"""
Sync Reconciliation Engine

Keeps the local ledger and the remote record store convergent without
making the user wait on the network.

Every mutation:
1. Is applied to the ledger immediately (no await, so it is atomic on the loop)
2. Is mirrored remotely in a background task, one write for a single record,
   one atomic batch for anything touching several
3. Is never rolled back: a failed remote write leaves the ledger as it is and
   surfaces a warning

Independently, the store's subscription pushes full snapshots, and each one
REPLACES the ledger. The two paths are not coordinated: a snapshot taken
before an outbound write lands can drop that record until the write's own
echo arrives. This is accepted behavior.

DESIGN DECISION: Remote writes are fire-and-forget. Tasks are only kept so
they are not garbage collected and so shutdown (and tests) can wait for them.
Sign-out neither awaits nor cancels them.
"""

import asyncio
from datetime import date
from enum import Enum
from typing import Awaitable, Callable, Optional
from uuid import UUID

import structlog

from fincontrol.audit import AuditLogger
from fincontrol.ledger import TransactionLedger
from fincontrol.models.transaction import DeletionMode, Transaction, TransactionUpdate
from fincontrol.series import (
    DeletionPlan,
    EditResult,
    TransactionNotFoundError,
    apply_edit,
    resolve_deletion,
    schedule_future_change,
    select_series_members_for_deletion,
)
from fincontrol.services.notifications import (
    LoggingNotificationSink,
    NotificationSeverity,
    NotificationSink,
)
from fincontrol.services.storage.interface import (
    Document,
    OperationKind,
    RecordStoreInterface,
    RemoteOperation,
)
from fincontrol.sync.codec import change_operation, decode_snapshot, to_remote_document


REMOTE_FAILURE_MESSAGE = "Saved locally, cloud error"
FUTURE_DELETED_MESSAGE = "Future transactions deleted"
SERIES_DELETED_MESSAGE = "Series deleted"
PUSH_COMPLETED_MESSAGE = "Cloud sync completed"
PUSH_FAILED_MESSAGE = "Cloud sync failed"


class CloudLinkState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


class CloudLinkError(Exception):
    """The engine cannot link to the cloud (no store, or no user id)."""
    pass


def collection_path_for(user_id: str) -> str:
    return f"users/{user_id}/transactions"


async def _write_one(
    store: RecordStoreInterface,
    collection_path: str,
    operation: RemoteOperation,
) -> None:
    if operation.kind == OperationKind.PUT:
        await store.put(collection_path, operation.doc_id, operation.data)
    elif operation.kind == OperationKind.UPDATE:
        await store.update(collection_path, operation.doc_id, operation.data)
    else:
        await store.delete(collection_path, operation.doc_id)


class SyncEngine:
    """
    Single writer of a TransactionLedger.

    Without a store, or while anonymous, the engine is purely local.
    """

    def __init__(
        self,
        ledger: TransactionLedger,
        store: Optional[RecordStoreInterface] = None,
        notifier: Optional[NotificationSink] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.ledger = ledger
        self._store = store
        self._notifier = notifier or LoggingNotificationSink()
        self._audit = audit_logger or AuditLogger()
        self._logger = structlog.get_logger(__name__)

        self._state = CloudLinkState.ANONYMOUS
        self._user_id: Optional[str] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        # Bumped on every link change; snapshots from older subscriptions are dropped.
        self._generation = 0
        self._pending: set[asyncio.Task] = set()
        self.is_syncing = False

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> CloudLinkState:
        return self._state

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_linked(self) -> bool:
        return (
            self._state == CloudLinkState.AUTHENTICATED
            and self._store is not None
            and self._user_id is not None
        )

    @property
    def collection_path(self) -> Optional[str]:
        if self._user_id is None:
            return None
        return collection_path_for(self._user_id)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # =========================================================================
    # Local mutations (optimistic, mirrored in the background)
    # =========================================================================

    def add_transaction(self, record: Transaction) -> Transaction:
        self.ledger.add([record])
        self._dispatch(
            "put",
            [RemoteOperation.put(record.id, to_remote_document(record))],
        )
        return record

    def add_transactions(self, records: list[Transaction]) -> list[Transaction]:
        """Add several records; mirrored as one atomic batch."""
        if not records:
            return []
        self.ledger.add(records)
        self._dispatch(
            "batch_put",
            [RemoteOperation.put(r.id, to_remote_document(r)) for r in records],
            atomic=True,
        )
        return list(records)

    def update_transaction(
        self,
        target_id: UUID,
        update: TransactionUpdate,
        apply_to_future: bool = False,
    ) -> EditResult:
        """
        Edit one record and optionally its later recurring-series members.

        Raises:
            TransactionNotFoundError: If target_id is not in the ledger
        """
        result = apply_edit(self.ledger.records, target_id, update, apply_to_future)
        self._apply_edit_result(result)
        self._dispatch(
            "batch_update" if apply_to_future else "update",
            self._edit_operations(result),
            atomic=apply_to_future,
        )
        return result

    def update_recurring_future(
        self,
        series_recurring_id: UUID,
        from_date: date,
        update: TransactionUpdate,
    ) -> EditResult:
        """Replace fields on every series member dated on or after from_date."""
        result = schedule_future_change(
            self.ledger.records,
            series_recurring_id,
            from_date,
            update,
        )
        self._apply_edit_result(result)
        self._dispatch("batch_update", self._edit_operations(result), atomic=True)
        return result

    def remove_transaction(self, target_id: UUID) -> UUID:
        """
        Remove exactly one record.

        Raises:
            TransactionNotFoundError: If target_id is not in the ledger
        """
        if target_id not in self.ledger:
            raise TransactionNotFoundError(target_id)
        self.ledger.remove([target_id])
        self._dispatch("delete", [RemoteOperation.delete(target_id)])
        return target_id

    def delete_series(
        self,
        series_id: UUID,
        from_date: Optional[date] = None,
    ) -> list[UUID]:
        """
        Remove series members dated on or after from_date, or all of them.

        Returns the removed ids; mirrored as one atomic batch.
        """
        ids = select_series_members_for_deletion(self.ledger.records, series_id, from_date)
        if not ids:
            return []
        removed = self.ledger.remove(ids)
        self._dispatch(
            "batch_delete",
            [RemoteOperation.delete(i) for i in removed],
            atomic=True,
            success_message=(
                FUTURE_DELETED_MESSAGE if from_date is not None else SERIES_DELETED_MESSAGE
            ),
        )
        return removed

    def delete_transaction(
        self,
        target_id: UUID,
        mode: DeletionMode = DeletionMode.SINGLE,
    ) -> DeletionPlan:
        """Delete in single, future or all mode; non-series records degrade to single."""
        plan = resolve_deletion(self.ledger.records, target_id, mode)
        if plan.is_series_deletion:
            self.delete_series(plan.series_id, plan.threshold)
        else:
            self.remove_transaction(target_id)
        return plan

    def reset_local(self) -> None:
        """Clear the ledger without touching the remote store."""
        self.ledger.clear()

    def _apply_edit_result(self, result: EditResult) -> None:
        changed = [r for r in result.records if r.id in result.changes]
        self.ledger.replace(changed)

    def _edit_operations(self, result: EditResult) -> list[RemoteOperation]:
        by_id = {r.id: r for r in result.records}
        return [
            change_operation(by_id[record_id], changes)
            for record_id, changes in result.changes.items()
            if changes
        ]

    # =========================================================================
    # Remote mirroring
    # =========================================================================

    def _dispatch(
        self,
        operation: str,
        operations: list[RemoteOperation],
        atomic: bool = False,
        success_message: Optional[str] = None,
    ) -> Optional[asyncio.Task]:
        if not operations:
            return None
        if not self.is_linked:
            if success_message:
                self._notifier.notify(success_message, NotificationSeverity.SUCCESS)
            return None

        # Store and path are bound now; a later sign-out does not redirect the write.
        store, path = self._store, self.collection_path
        if atomic or len(operations) > 1:
            write = store.batch(path, operations)
        else:
            write = _write_one(store, path, operations[0])

        return self._track(
            self._mirror(operation, len(operations), write, success_message)
        )

    async def _mirror(
        self,
        operation: str,
        record_count: int,
        write: Awaitable[None],
        success_message: Optional[str],
    ) -> bool:
        try:
            await write
        except Exception as e:
            self._logger.warning(
                "remote_write_failed",
                operation=operation,
                record_count=record_count,
                error=str(e),
            )
            self._notifier.notify(REMOTE_FAILURE_MESSAGE, NotificationSeverity.WARNING)
            await self._audit.log_remote_write_failed(
                operation=operation,
                record_count=record_count,
                error_message=str(e),
            )
            return False

        if success_message:
            self._notifier.notify(success_message, NotificationSeverity.SUCCESS)
        return True

    def _track(self, coroutine: Awaitable) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coroutine)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def wait_for_pending(self) -> None:
        """Wait for every dispatched background task, including ones they spawn."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # =========================================================================
    # Cloud link
    # =========================================================================

    async def sign_in(self, user_id: str) -> None:
        """
        Link to the user's remote collection.

        The first snapshot replaces the ledger, so records created while
        anonymous disappear unless they were pushed first.

        Raises:
            CloudLinkError: If no store is configured or user_id is empty
        """
        if self._store is None:
            raise CloudLinkError("No remote record store is configured")
        if not user_id:
            raise CloudLinkError("A user id is required to link the cloud")

        if self._unsubscribe is not None:
            self._teardown()

        self._generation += 1
        self._user_id = user_id
        self._state = CloudLinkState.AUTHENTICATED
        try:
            self._unsubscribe = await self._store.subscribe(
                collection_path_for(user_id),
                self._snapshot_handler(self._generation),
            )
        except Exception:
            self._state = CloudLinkState.ANONYMOUS
            self._user_id = None
            self._generation += 1
            raise

        self._logger.info("cloud_linked", user_id=user_id)
        await self._audit.log_cloud_linked(user_id)

    async def sign_out(self) -> None:
        """Tear down the subscription and clear the ledger."""
        user_id = self._user_id
        discarded = len(self.ledger)

        self._teardown()
        self.ledger.clear()

        self._logger.info("cloud_unlinked", user_id=user_id, discarded=discarded)
        await self._audit.log_cloud_unlinked(user_id, discarded)

    def _teardown(self) -> None:
        self._generation += 1
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._state = CloudLinkState.ANONYMOUS
        self._user_id = None

    def _snapshot_handler(self, generation: int) -> Callable[[list[Document]], None]:
        def on_snapshot(documents: list[Document]) -> None:
            if generation != self._generation:
                self._logger.debug("stale_snapshot_ignored", generation=generation)
                return
            self._apply_snapshot(documents)

        return on_snapshot

    def _apply_snapshot(self, documents: list[Document]) -> None:
        records, skipped = decode_snapshot(documents)
        self.ledger.replace_all(records)
        self._logger.debug(
            "snapshot_applied",
            record_count=len(records),
            skipped=skipped,
        )
        self._track(self._audit.log_snapshot_applied(len(records), skipped))

    async def push_local_to_cloud(self) -> bool:
        """
        Upload the whole ledger as one atomic batch.

        Used to seed the remote collection from data created while offline.
        Returns True on success.
        """
        if not self.is_linked:
            self._notifier.notify(
                "Sign in to sync with the cloud",
                NotificationSeverity.INFO,
            )
            return False
        if self.is_syncing:
            return False

        # Capture before the first await; the ledger may change meanwhile.
        records = self.ledger.records
        if not records:
            self._notifier.notify(
                "No local transactions to upload",
                NotificationSeverity.INFO,
            )
            return False

        path = self.collection_path
        operations = [RemoteOperation.put(r.id, to_remote_document(r)) for r in records]

        self.is_syncing = True
        try:
            await self._store.batch(path, operations)
        except Exception as e:
            self._logger.error("local_push_failed", record_count=len(records), error=str(e))
            self._notifier.notify(PUSH_FAILED_MESSAGE, NotificationSeverity.ERROR)
            await self._audit.log_local_push_failed(len(records), str(e))
            return False
        finally:
            self.is_syncing = False

        self._notifier.notify(PUSH_COMPLETED_MESSAGE, NotificationSeverity.SUCCESS)
        await self._audit.log_local_push_completed(len(records))
        return True
