"""
Two-Stage Form Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking
- Required field presence
- Ranges (amount > 0, installments 1-24, recurring day 1-31)

STAGE 2 - SEMANTIC VALIDATION:
- Combinations that make no sense (recurring expense, installments
  on a cash payment, an income sub-type on an expense)

Stage 2 only runs when stage 1 passes.

IMPORTANT: Validation NEVER silently fixes issues. A rejected form creates
nothing; the caller gets every issue back.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from fincontrol.models.transaction import (
    MAX_INSTALLMENTS,
    ExpenseType,
    IncomeType,
    InstallmentPurchaseIntent,
    PaymentMethod,
    RecurringIncomeIntent,
    SingleTransactionIntent,
    TransactionType,
)
from fincontrol.models.validation import ValidationIssue, ValidationResult


CreationIntent = Union[
    RecurringIncomeIntent,
    InstallmentPurchaseIntent,
    SingleTransactionIntent,
]


class TransactionFormData(BaseModel):
    """Raw input of the transaction form, as the user typed it."""
    model_config = ConfigDict(str_strip_whitespace=True)

    kind: TransactionType
    amount: Decimal = Field(..., gt=0)
    description: str = Field(..., min_length=3, max_length=300)
    category: str = Field(..., min_length=1)
    transaction_date: date
    is_recurring: bool = False
    recurring_day: Optional[int] = Field(
        default=None,
        ge=1,
        le=31,
        description="Day of month for recurring income; defaults to the transaction date's day"
    )
    payment_method: PaymentMethod = PaymentMethod.CASH
    expense_type: Optional[ExpenseType] = None
    income_type: Optional[IncomeType] = None
    installments: int = Field(default=1, ge=1, le=MAX_INSTALLMENTS)

    @field_validator('amount')
    @classmethod
    def validate_finite_amount(cls, v: Decimal) -> Decimal:
        if not v.is_finite():
            raise ValueError("Amount must be a finite number")
        return v


class IntentRejectedError(Exception):
    """The form failed validation; nothing was created."""

    def __init__(self, result: ValidationResult):
        self.result = result
        first = result.first_error()
        super().__init__(first.message if first else "Transaction form is invalid")


class IntentValidator:
    """
    Validates form input and turns it into a creation intent.

    Stage 1: Schema validation (pydantic)
    Stage 2: Semantic validation
    """

    def _validate_schema(
        self,
        raw: Union[dict[str, Any], TransactionFormData],
    ) -> tuple[Optional[TransactionFormData], list[ValidationIssue]]:
        if isinstance(raw, TransactionFormData):
            return raw, []
        try:
            return TransactionFormData.model_validate(raw), []
        except ValidationError as e:
            issues = [
                ValidationIssue(
                    field=".".join(str(part) for part in error["loc"]) or "form",
                    issue_type=error["type"],
                    message=error["msg"],
                    severity="error",
                )
                for error in e.errors()
            ]
            return None, issues

    def _validate_semantic(self, form: TransactionFormData) -> list[ValidationIssue]:
        issues = []

        if form.is_recurring and form.kind != TransactionType.INCOME:
            issues.append(ValidationIssue(
                field="is_recurring",
                issue_type="not_allowed",
                message="Only income can be projected as recurring",
                severity="error",
            ))

        if form.installments > 1 and not (
            form.kind == TransactionType.EXPENSE
            and form.payment_method == PaymentMethod.CREDIT_CARD
        ):
            issues.append(ValidationIssue(
                field="installments",
                issue_type="not_allowed",
                message="Installments are only available for credit-card expenses",
                severity="error",
            ))

        if form.kind == TransactionType.INCOME and form.expense_type is not None:
            issues.append(ValidationIssue(
                field="expense_type",
                issue_type="not_allowed",
                message="Income cannot carry an expense type",
                severity="error",
            ))
        if form.kind == TransactionType.EXPENSE and form.income_type is not None:
            issues.append(ValidationIssue(
                field="income_type",
                issue_type="not_allowed",
                message="Expense cannot carry an income type",
                severity="error",
            ))

        if form.recurring_day is not None and not form.is_recurring:
            issues.append(ValidationIssue(
                field="recurring_day",
                issue_type="ignored",
                message="Recurring day is ignored for non-recurring transactions",
                severity="info",
            ))

        return issues

    def validate(
        self,
        raw: Union[dict[str, Any], TransactionFormData],
    ) -> ValidationResult:
        """
        Run the full two-stage pipeline.

        Returns:
            ValidationResult with all issues found
        """
        form, issues = self._validate_schema(raw)
        schema_valid = form is not None

        semantic_valid = False
        if form is not None:
            semantic_issues = self._validate_semantic(form)
            issues.extend(semantic_issues)
            semantic_valid = not any(i.severity == "error" for i in semantic_issues)

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            issues=issues,
        )

    def to_intent(self, form: TransactionFormData) -> CreationIntent:
        """
        Route a valid form to the intent that creates it.

        - recurring income -> RecurringIncomeIntent
        - credit-card expense -> InstallmentPurchaseIntent (1 or more installments)
        - anything else -> SingleTransactionIntent
        """
        if form.kind == TransactionType.INCOME and form.is_recurring:
            return RecurringIncomeIntent(
                amount=form.amount,
                description=form.description,
                category=form.category,
                start_year=form.transaction_date.year,
                start_month=form.transaction_date.month,
                start_day=form.recurring_day or form.transaction_date.day,
                income_type=form.income_type or IncomeType.FIXED,
            )

        if (
            form.kind == TransactionType.EXPENSE
            and form.payment_method == PaymentMethod.CREDIT_CARD
        ):
            return InstallmentPurchaseIntent(
                total_amount=form.amount,
                installments=form.installments,
                description=form.description,
                category=form.category,
                purchase_date=form.transaction_date,
                expense_type=form.expense_type or ExpenseType.VARIABLE,
            )

        return SingleTransactionIntent(
            kind=form.kind,
            amount=form.amount,
            description=form.description,
            category=form.category,
            transaction_date=form.transaction_date,
            payment_method=form.payment_method,
            expense_type=form.expense_type,
            income_type=form.income_type,
        )

    def build_intent(
        self,
        raw: Union[dict[str, Any], TransactionFormData],
    ) -> CreationIntent:
        """
        Validate and convert in one step.

        Raises:
            IntentRejectedError: If either stage reports an error
        """
        result = self.validate(raw)
        if not result.is_valid:
            raise IntentRejectedError(result)
        form = raw if isinstance(raw, TransactionFormData) else TransactionFormData.model_validate(raw)
        return self.to_intent(form)

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Short text listing what to fix, for display next to the form."""
        if result.is_valid:
            return "All checks passed."

        lines = ["Please fix the following:"]
        for issue in result.issues:
            if issue.severity == "error":
                lines.append(f"  - {issue.field}: {issue.message}")
        return "\n".join(lines)
