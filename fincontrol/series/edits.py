"""
Series Edit Resolver

Two ways to change a recurring series, kept deliberately distinct:

- apply_edit: edit one record; with apply_to_future, merge the same fields
  into every member of its recurring-income series dated STRICTLY AFTER the
  edited record (exclusive).
- schedule_future_change: replace fields on every member dated ON OR AFTER
  a threshold date (inclusive), for changes that take effect from a date.

Installment plans are never touched by propagation. Both functions are
pure: they return a new record list and never add or remove records.
"""

from datetime import date
from typing import Any, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from fincontrol.models.transaction import Transaction, TransactionUpdate
from fincontrol.series.identity import find_transaction


class EditResult(BaseModel):
    """Outcome of an edit: the new record list and what changed per record."""
    model_config = ConfigDict(frozen=True)

    records: list[Transaction]
    target: Optional[Transaction] = None
    changes: dict[UUID, dict[str, Any]] = Field(default_factory=dict)

    @property
    def updated_ids(self) -> list[UUID]:
        return list(self.changes)

    @property
    def propagated(self) -> bool:
        target_id = self.target.id if self.target else None
        return any(record_id != target_id for record_id in self.changes)


def apply_edit(
    records: Sequence[Transaction],
    target_id: UUID,
    update: TransactionUpdate,
    apply_to_future: bool = False,
) -> EditResult:
    target = find_transaction(records, target_id)
    target_changes = update.changes()

    recurring_id = target.series_recurring_id
    reference_date = target.impact_date
    propagate = apply_to_future and recurring_id is not None
    future_changes = update.propagated_changes() if propagate else {}

    changes: dict[UUID, dict[str, Any]] = {}
    result = []
    for record in records:
        if record.id == target_id:
            record = record.model_copy(update=target_changes)
            target = record
            changes[record.id] = target_changes
        elif (
            future_changes
            and record.series_recurring_id == recurring_id
            and record.impact_date > reference_date
        ):
            record = record.model_copy(update=future_changes)
            changes[record.id] = future_changes
        result.append(record)

    return EditResult(records=result, target=target, changes=changes)


def schedule_future_change(
    records: Sequence[Transaction],
    series_recurring_id: UUID,
    from_date: date,
    update: TransactionUpdate,
) -> EditResult:
    replacement = update.changes()

    changes: dict[UUID, dict[str, Any]] = {}
    result = []
    for record in records:
        if (
            replacement
            and record.series_recurring_id == series_recurring_id
            and record.impact_date >= from_date
        ):
            record = record.model_copy(update=replacement)
            changes[record.id] = replacement
        result.append(record)

    return EditResult(records=result, changes=changes)
