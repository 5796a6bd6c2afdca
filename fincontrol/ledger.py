"""
Local Transaction Ledger

The in-memory record set that the UI renders from. It is the single source
of truth locally and has exactly one writer: the sync engine that owns it.

DESIGN DECISION: The ledger is an explicit object handed to the engine
rather than a module-level global, so tests and multiple accounts can hold
independent ledgers. No method awaits anything, so every mutation is atomic
with respect to the event loop.
"""

from typing import Iterable, Iterator, Optional
from uuid import UUID

from fincontrol.models.transaction import Transaction


class TransactionLedger:
    """Ordered, id-keyed collection of transactions."""

    def __init__(self, records: Iterable[Transaction] = ()):
        self._records: dict[UUID, Transaction] = {}
        self._revision = 0
        self.add(records)

    @property
    def records(self) -> list[Transaction]:
        """A snapshot copy of the current records, in insertion order."""
        return list(self._records.values())

    @property
    def revision(self) -> int:
        """Incremented on every mutation; lets callers detect changes."""
        return self._revision

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Transaction]:
        return iter(self.records)

    def __contains__(self, transaction_id: object) -> bool:
        return transaction_id in self._records

    def get(self, transaction_id: UUID) -> Optional[Transaction]:
        return self._records.get(transaction_id)

    def add(self, records: Iterable[Transaction]) -> None:
        """Add records; an existing id is overwritten (set semantics)."""
        for record in records:
            self._records[record.id] = record
        self._revision += 1

    def replace(self, records: Iterable[Transaction]) -> None:
        """Swap in new versions of existing records, keeping their order."""
        for record in records:
            if record.id in self._records:
                self._records[record.id] = record
        self._revision += 1

    def remove(self, ids: Iterable[UUID]) -> list[UUID]:
        """Remove records by id; returns the ids that were present."""
        removed = []
        for transaction_id in ids:
            if self._records.pop(transaction_id, None) is not None:
                removed.append(transaction_id)
        self._revision += 1
        return removed

    def replace_all(self, records: Iterable[Transaction]) -> None:
        """Wholesale overwrite, used for remote snapshots."""
        self._records = {record.id: record for record in records}
        self._revision += 1

    def clear(self) -> None:
        self._records = {}
        self._revision += 1
