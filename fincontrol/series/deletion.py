"""
Series Deletion Resolver

Computes which records a deletion removes. The future/all distinction only
applies to records that belong to a series; anything else is deleted as a
single record.
"""

from datetime import date
from typing import Iterable, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from fincontrol.models.transaction import DeletionMode, Transaction
from fincontrol.series.identity import find_transaction, series_id


class DeletionPlan(BaseModel):
    """The exact set of records a deletion will permanently remove."""
    model_config = ConfigDict(frozen=True)

    target_id: UUID
    requested_mode: DeletionMode
    mode: DeletionMode
    series_id: Optional[UUID] = None
    threshold: Optional[date] = None
    ids: list[UUID]

    @property
    def is_series_deletion(self) -> bool:
        return self.mode != DeletionMode.SINGLE


def select_series_members_for_deletion(
    records: Iterable[Transaction],
    sid: UUID,
    from_date: Optional[date] = None,
) -> list[UUID]:
    """
    Ids of series members to delete.

    With from_date, members dated on or after it (inclusive); without it,
    the whole series.
    """
    return [
        record.id
        for record in records
        if series_id(record) == sid
        and (from_date is None or record.impact_date >= from_date)
    ]


def resolve_deletion(
    records: Sequence[Transaction],
    target_id: UUID,
    mode: DeletionMode = DeletionMode.SINGLE,
) -> DeletionPlan:
    target = find_transaction(records, target_id)
    sid = series_id(target)

    if mode == DeletionMode.SINGLE or sid is None:
        return DeletionPlan(
            target_id=target_id,
            requested_mode=mode,
            mode=DeletionMode.SINGLE,
            series_id=sid,
            ids=[target_id],
        )

    threshold = target.impact_date if mode == DeletionMode.FUTURE else None
    return DeletionPlan(
        target_id=target_id,
        requested_mode=mode,
        mode=mode,
        series_id=sid,
        threshold=threshold,
        ids=select_series_members_for_deletion(records, sid, threshold),
    )
