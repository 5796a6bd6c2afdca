"""
Series Lifecycle Package

Pure functions that project, edit and delete recurring series over a flat
list of transaction records.
"""

from fincontrol.series.deletion import (
    DeletionPlan,
    resolve_deletion,
    select_series_members_for_deletion,
)
from fincontrol.series.edits import (
    EditResult,
    apply_edit,
    schedule_future_change,
)
from fincontrol.series.identity import (
    TransactionNotFoundError,
    find_transaction,
    is_series_member,
    same_series,
    series_id,
    series_kind,
    series_members,
)
from fincontrol.series.projection import (
    INSTALLMENT_PAYMENT_DAY,
    RECURRING_INCOME_MONTHS,
    STATEMENT_CLOSING_DAY,
    first_payment_date,
    project_installment_plan,
    project_recurring_income,
    project_single_transaction,
)

__all__ = [
    # Identity
    "TransactionNotFoundError",
    "find_transaction",
    "is_series_member",
    "same_series",
    "series_id",
    "series_kind",
    "series_members",
    # Projection
    "INSTALLMENT_PAYMENT_DAY",
    "RECURRING_INCOME_MONTHS",
    "STATEMENT_CLOSING_DAY",
    "first_payment_date",
    "project_installment_plan",
    "project_recurring_income",
    "project_single_transaction",
    # Edits
    "EditResult",
    "apply_edit",
    "schedule_future_change",
    # Deletion
    "DeletionPlan",
    "resolve_deletion",
    "select_series_members_for_deletion",
]
