"""
Core Data Models for the Series Ledger

These models define the strict schemas for every transaction record and
for the user intents that create them. They are designed to:
1. Enforce type safety at runtime
2. Reject malformed amounts before anything is projected
3. Be serializable for the remote mirror and for logging

DESIGN DECISION: There is no "series" entity. A series is the set of
records sharing a series id, so membership is carried on each record
(series_recurring_id for recurring income, installment_info for plans).
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


MAX_INSTALLMENTS = 24


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of the cash flow."""
    INCOME = "income"
    EXPENSE = "expense"


class PaymentMethod(str, Enum):
    """How a transaction is paid."""
    CASH = "cash"
    DEBIT_CARD = "debit_card"
    CREDIT_CARD = "credit_card"
    TRANSFER = "transfer"


class ExpenseType(str, Enum):
    """Expense sub-type."""
    FIXED = "fixed"
    VARIABLE = "variable"


class IncomeType(str, Enum):
    """Income sub-type."""
    FIXED = "fixed"
    VARIABLE = "variable"


class SeriesKind(str, Enum):
    """The two kinds of series a record can belong to."""
    RECURRING_INCOME = "recurring_income"
    INSTALLMENT_PLAN = "installment_plan"


class DeletionMode(str, Enum):
    """
    Scope of a deletion.

    SINGLE removes one record, FUTURE removes the record and every later
    member of its series, ALL removes the whole series.
    """
    SINGLE = "single"
    FUTURE = "future"
    ALL = "all"


def _require_finite(value: Optional[Decimal]) -> Optional[Decimal]:
    if value is not None and not value.is_finite():
        raise ValueError("Amount must be a finite number")
    return value


# =============================================================================
# CORE TRANSACTION MODEL
# =============================================================================

class InstallmentInfo(BaseModel):
    """Position of a record inside a credit-card installment plan."""

    position: int = Field(
        ...,
        ge=1,
        le=MAX_INSTALLMENTS,
        description="1-based installment number"
    )
    total: int = Field(
        ...,
        ge=1,
        le=MAX_INSTALLMENTS,
        description="Number of installments in the plan"
    )
    series_plan_id: UUID = Field(
        ...,
        description="Shared id of every installment of the plan"
    )

    @model_validator(mode='after')
    def validate_position(self) -> 'InstallmentInfo':
        if self.position > self.total:
            raise ValueError("Installment position cannot exceed the total count")
        return self


class Transaction(BaseModel):
    """
    A single income or expense record.

    impact_date is when the record affects cash flow (the payment date).
    original_date is when the economic event happened; for credit-card
    installments it is the purchase date and precedes impact_date.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )
    kind: TransactionType
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Positive amount in the ledger currency"
    )
    description: str = Field(
        ...,
        max_length=300,
    )
    category: str = Field(
        ...,
        description="Category reference"
    )

    # Dates
    impact_date: date = Field(
        ...,
        description="Date the record affects cash flow"
    )
    original_date: Optional[date] = Field(
        default=None,
        description="Date of the underlying purchase or decision"
    )

    payment_method: PaymentMethod = PaymentMethod.CASH
    expense_type: Optional[ExpenseType] = None
    income_type: Optional[IncomeType] = None
    is_paid: bool = True
    created_at: datetime = Field(
        default_factory=datetime.utcnow
    )

    # Series linkage
    series_recurring_id: Optional[UUID] = Field(
        default=None,
        description="Shared id of a recurring income series"
    )
    installment_info: Optional[InstallmentInfo] = None

    @field_validator('amount')
    @classmethod
    def validate_finite_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return _require_finite(v)

    @model_validator(mode='after')
    def validate_single_series(self) -> 'Transaction':
        """A record belongs to at most one series kind."""
        if self.series_recurring_id and self.installment_info:
            raise ValueError(
                "A transaction cannot belong to a recurring series and an installment plan"
            )
        return self


# =============================================================================
# PARTIAL UPDATES
# =============================================================================

# Fields that a "this and future" edit copies onto later series members.
PROPAGATED_FIELDS = (
    "amount",
    "category",
    "description",
    "payment_method",
    "expense_type",
    "income_type",
)

_REQUIRED_FIELDS = frozenset({
    "amount",
    "category",
    "description",
    "payment_method",
    "impact_date",
    "is_paid",
})


class TransactionUpdate(BaseModel):
    """
    A partial field update.

    Only fields explicitly set by the caller are applied. Dates and the
    paid flag only ever apply to the edited record itself.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Optional[Decimal] = Field(default=None, gt=0)
    category: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=300)
    payment_method: Optional[PaymentMethod] = None
    expense_type: Optional[ExpenseType] = None
    income_type: Optional[IncomeType] = None
    impact_date: Optional[date] = None
    original_date: Optional[date] = None
    is_paid: Optional[bool] = None

    @field_validator('amount')
    @classmethod
    def validate_finite_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return _require_finite(v)

    def changes(self) -> dict[str, Any]:
        """
        Every field the caller set.

        An explicit null clears an optional field (e.g. expense_type);
        nulls on required fields are dropped.
        """
        changes = {}
        for name in sorted(self.model_fields_set):
            value = getattr(self, name)
            if value is None and name in _REQUIRED_FIELDS:
                continue
            changes[name] = value
        return changes

    def propagated_changes(self) -> dict[str, Any]:
        """Fields copied to later members; nulls keep the member's value."""
        return {
            name: value
            for name, value in self.changes().items()
            if name in PROPAGATED_FIELDS and value is not None
        }

    @property
    def is_empty(self) -> bool:
        return not self.model_fields_set


# =============================================================================
# CREATION INTENTS
# =============================================================================

class RecurringIncomeIntent(BaseModel):
    """
    A fixed income (e.g. salary) projected over the next twelve months.

    The start is given as separate year/month/day so that a day that does
    not exist in the start month (31 in April) is still a valid intent.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=300)
    category: str = Field(..., min_length=1)
    start_year: int = Field(..., ge=1, le=9998)
    start_month: int = Field(..., ge=1, le=12)
    start_day: int = Field(..., ge=1, le=31)
    income_type: Optional[IncomeType] = IncomeType.FIXED

    @field_validator('amount')
    @classmethod
    def validate_finite_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return _require_finite(v)

    @classmethod
    def starting_on(
        cls,
        start: date,
        amount: Decimal,
        description: str,
        category: str,
        **kwargs: Any,
    ) -> 'RecurringIncomeIntent':
        return cls(
            amount=amount,
            description=description,
            category=category,
            start_year=start.year,
            start_month=start.month,
            start_day=start.day,
            **kwargs,
        )


class InstallmentPurchaseIntent(BaseModel):
    """A credit-card purchase paid in N monthly installments."""
    model_config = ConfigDict(str_strip_whitespace=True)

    total_amount: Decimal = Field(..., gt=0)
    installments: int = Field(
        default=1,
        ge=1,
        le=MAX_INSTALLMENTS,
        description="Number of monthly installments"
    )
    description: str = Field(..., min_length=1, max_length=300)
    category: str = Field(..., min_length=1)
    purchase_date: date
    expense_type: ExpenseType = ExpenseType.VARIABLE

    @field_validator('total_amount')
    @classmethod
    def validate_finite_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return _require_finite(v)


class SingleTransactionIntent(BaseModel):
    """A one-off income or expense."""
    model_config = ConfigDict(str_strip_whitespace=True)

    kind: TransactionType
    amount: Decimal = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=300)
    category: str = Field(..., min_length=1)
    transaction_date: date
    payment_method: PaymentMethod = PaymentMethod.CASH
    expense_type: Optional[ExpenseType] = None
    income_type: Optional[IncomeType] = None

    @field_validator('amount')
    @classmethod
    def validate_finite_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return _require_finite(v)

    @model_validator(mode='after')
    def validate_sub_type(self) -> 'SingleTransactionIntent':
        if self.kind == TransactionType.INCOME and self.expense_type:
            raise ValueError("Income cannot carry an expense type")
        if self.kind == TransactionType.EXPENSE and self.income_type:
            raise ValueError("Expense cannot carry an income type")
        return self
