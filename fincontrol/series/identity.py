"""
Series Identity Model

There is no series entity. Two records are in the same series iff they
carry the same non-null series id, taken from series_recurring_id for
recurring income or installment_info.series_plan_id for installment plans.
Everything here is a pure lookup over a flat record collection.
"""

from typing import Iterable, Optional
from uuid import UUID

from fincontrol.models.transaction import SeriesKind, Transaction


class TransactionNotFoundError(LookupError):
    """No record with the requested id exists in the ledger."""

    def __init__(self, transaction_id: UUID):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


def series_id(record: Transaction) -> Optional[UUID]:
    if record.series_recurring_id is not None:
        return record.series_recurring_id
    if record.installment_info is not None:
        return record.installment_info.series_plan_id
    return None


def series_kind(record: Transaction) -> Optional[SeriesKind]:
    if record.series_recurring_id is not None:
        return SeriesKind.RECURRING_INCOME
    if record.installment_info is not None:
        return SeriesKind.INSTALLMENT_PLAN
    return None


def is_series_member(record: Transaction) -> bool:
    return series_id(record) is not None


def same_series(a: Transaction, b: Transaction) -> bool:
    sid = series_id(a)
    return sid is not None and sid == series_id(b)


def series_members(
    records: Iterable[Transaction],
    sid: Optional[UUID],
) -> list[Transaction]:
    """Members of a series ordered by impact date, then position."""
    if sid is None:
        return []
    members = [r for r in records if series_id(r) == sid]
    members.sort(
        key=lambda r: (
            r.impact_date,
            r.installment_info.position if r.installment_info else 0,
        )
    )
    return members


def find_transaction(
    records: Iterable[Transaction],
    transaction_id: UUID,
) -> Transaction:
    for record in records:
        if record.id == transaction_id:
            return record
    raise TransactionNotFoundError(transaction_id)
