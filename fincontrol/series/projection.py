"""
Projection Generator

Expands one creation intent into concrete transaction records.

- Recurring income: twelve monthly records on the start day-of-month,
  clamped to the end of shorter months.
- Installment plan: N records on day 10 of consecutive months, starting
  the month after the purchase, or two months after when the purchase
  happened after the statement closing day.
- Single transaction: one record, no series id.

Intents are validated on construction, so a projection is never partially
applied.
"""

from datetime import date, datetime, timedelta
from typing import Optional
from uuid import uuid4

from fincontrol.models.transaction import (
    InstallmentInfo,
    InstallmentPurchaseIntent,
    PaymentMethod,
    RecurringIncomeIntent,
    SingleTransactionIntent,
    Transaction,
    TransactionType,
)
from fincontrol.series.calendar import add_months


RECURRING_INCOME_MONTHS = 12

# Purchases after this day-of-month miss the current card statement.
STATEMENT_CLOSING_DAY = 28
INSTALLMENT_PAYMENT_DAY = 10

INCOME_PAYMENT_METHOD = PaymentMethod.TRANSFER


def _timestamps(now: Optional[datetime], count: int) -> list[datetime]:
    base = now or datetime.utcnow()
    return [base + timedelta(milliseconds=i) for i in range(count)]


def project_recurring_income(
    intent: RecurringIncomeIntent,
    now: Optional[datetime] = None,
) -> list[Transaction]:
    recurring_id = uuid4()
    created = _timestamps(now, RECURRING_INCOME_MONTHS)

    records = []
    for i in range(RECURRING_INCOME_MONTHS):
        impact = add_months(
            intent.start_year,
            intent.start_month,
            i,
            desired_day=intent.start_day,
        )
        description = (
            intent.description if i == 0
            else f"{intent.description} (Month {i + 1})"
        )
        records.append(Transaction(
            kind=TransactionType.INCOME,
            amount=intent.amount,
            description=description,
            category=intent.category,
            impact_date=impact,
            original_date=impact,
            payment_method=INCOME_PAYMENT_METHOD,
            income_type=intent.income_type,
            is_paid=True,
            created_at=created[i],
            series_recurring_id=recurring_id,
        ))
    return records


def first_payment_date(purchase_date: date) -> date:
    """Payment date of the first installment for a purchase."""
    offset = 2 if purchase_date.day > STATEMENT_CLOSING_DAY else 1
    return add_months(
        purchase_date.year,
        purchase_date.month,
        offset,
        desired_day=INSTALLMENT_PAYMENT_DAY,
    )


def project_installment_plan(
    intent: InstallmentPurchaseIntent,
    now: Optional[datetime] = None,
) -> list[Transaction]:
    count = intent.installments
    plan_id = uuid4()
    # total / N as-is; the remainder drift (100 / 3) is not corrected.
    installment_amount = intent.total_amount / count
    first = first_payment_date(intent.purchase_date)
    created = _timestamps(now, count)

    records = []
    for i in range(count):
        description = (
            f"{intent.description} (Installment {i + 1}/{count})" if count > 1
            else intent.description
        )
        records.append(Transaction(
            kind=TransactionType.EXPENSE,
            amount=installment_amount,
            description=description,
            category=intent.category,
            impact_date=add_months(
                first.year,
                first.month,
                i,
                desired_day=INSTALLMENT_PAYMENT_DAY,
            ),
            original_date=intent.purchase_date,
            payment_method=PaymentMethod.CREDIT_CARD,
            expense_type=intent.expense_type,
            is_paid=False,
            created_at=created[i],
            installment_info=InstallmentInfo(
                position=i + 1,
                total=count,
                series_plan_id=plan_id,
            ),
        ))
    return records


def project_single_transaction(
    intent: SingleTransactionIntent,
    now: Optional[datetime] = None,
) -> Transaction:
    return Transaction(
        kind=intent.kind,
        amount=intent.amount,
        description=intent.description,
        category=intent.category,
        impact_date=intent.transaction_date,
        original_date=intent.transaction_date,
        payment_method=intent.payment_method,
        expense_type=intent.expense_type,
        income_type=intent.income_type,
        is_paid=True,
        created_at=now or datetime.utcnow(),
    )
