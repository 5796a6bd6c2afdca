"""
In-Memory Record Store

A complete implementation of RecordStoreInterface held in process memory.
It behaves like a push-capable document store:
- every commit is atomic and fans a full snapshot out to subscribers
- snapshots are delivered asynchronously, on a later loop iteration
- writes can be delayed (write_delay) or made to fail (fail_with)

server_put/server_delete write directly on the "server side", the way
another device's writes arrive, bypassing delay and failure injection.
"""

import asyncio
import inspect
from itertools import count
from typing import Optional

import structlog

from fincontrol.services.storage.interface import (
    BatchCommitError,
    Document,
    NotFoundError,
    RecordStoreInterface,
    RemoteOperation,
    SnapshotCallback,
    Unsubscribe,
    apply_operations,
)


logger = structlog.get_logger(__name__)


class InMemoryRecordStore(RecordStoreInterface):
    """Document store keyed by collection path, then document id."""

    def __init__(self, write_delay: float = 0.0):
        self.write_delay = write_delay
        self.fail_with: Optional[Exception] = None
        self._collections: dict[str, dict[str, Document]] = {}
        self._subscribers: dict[str, dict[int, SnapshotCallback]] = {}
        self._subscription_ids = count(1)
        self.commit_count = 0

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def documents(self, collection_path: str) -> dict[str, Document]:
        """A copy of the collection's current documents."""
        return {
            doc_id: dict(data)
            for doc_id, data in self._collections.get(collection_path, {}).items()
        }

    def subscriber_count(self, collection_path: str) -> int:
        return len(self._subscribers.get(collection_path, {}))

    # ------------------------------------------------------------------
    # RecordStoreInterface
    # ------------------------------------------------------------------

    async def put(self, collection_path: str, doc_id: str, record: Document) -> None:
        await self._write(collection_path, [RemoteOperation.put(doc_id, record)])

    async def update(self, collection_path: str, doc_id: str, partial: Document) -> None:
        await self._before_write()
        if doc_id not in self._collections.get(collection_path, {}):
            raise NotFoundError(f"Document not found: {collection_path}/{doc_id}")
        self._commit(collection_path, [RemoteOperation.update(doc_id, partial)])

    async def delete(self, collection_path: str, doc_id: str) -> None:
        await self._write(collection_path, [RemoteOperation.delete(doc_id)])

    async def batch(self, collection_path: str, operations: list[RemoteOperation]) -> None:
        await self._write(collection_path, list(operations))

    async def subscribe(
        self,
        collection_path: str,
        on_snapshot: SnapshotCallback,
    ) -> Unsubscribe:
        subscription_id = next(self._subscription_ids)
        self._subscribers.setdefault(collection_path, {})[subscription_id] = on_snapshot
        self._schedule_delivery(collection_path, [on_snapshot])

        def unsubscribe() -> None:
            self._subscribers.get(collection_path, {}).pop(subscription_id, None)

        return unsubscribe

    # ------------------------------------------------------------------
    # Server-side writes (other devices)
    # ------------------------------------------------------------------

    def server_put(self, collection_path: str, doc_id: str, record: Document) -> None:
        self._commit(collection_path, [RemoteOperation.put(doc_id, record)])

    def server_delete(self, collection_path: str, doc_id: str) -> None:
        self._commit(collection_path, [RemoteOperation.delete(doc_id)])

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _before_write(self) -> None:
        if self.write_delay:
            await asyncio.sleep(self.write_delay)
        if self.fail_with is not None:
            raise self.fail_with

    async def _write(self, collection_path: str, operations: list[RemoteOperation]) -> None:
        await self._before_write()
        self._commit(collection_path, operations)

    def _commit(self, collection_path: str, operations: list[RemoteOperation]) -> None:
        current = self._collections.get(collection_path, {})
        try:
            updated = apply_operations(current, operations)
        except BatchCommitError:
            logger.warning(
                "memory_store_commit_rejected",
                collection=collection_path,
                operations=len(operations),
            )
            raise
        self._collections[collection_path] = updated
        self.commit_count += 1
        self._schedule_delivery(
            collection_path,
            list(self._subscribers.get(collection_path, {}).values()),
        )

    def _schedule_delivery(
        self,
        collection_path: str,
        callbacks: list[SnapshotCallback],
    ) -> None:
        if not callbacks:
            return
        snapshot = [
            {**data, "id": doc_id}
            for doc_id, data in self._collections.get(collection_path, {}).items()
        ]
        loop = asyncio.get_running_loop()
        for callback in callbacks:
            loop.call_soon(self._deliver, callback, [dict(doc) for doc in snapshot])

    def _deliver(self, callback: SnapshotCallback, snapshot: list[Document]) -> None:
        try:
            result = callback(snapshot)
            if inspect.isawaitable(result):
                asyncio.ensure_future(result)
        except Exception as e:
            logger.error("snapshot_callback_failed", error=str(e))

