"""
Monthly Summaries

DESIGN DECISION: Summaries are DETERMINISTIC functions over the ledger's
records. Nothing is cached or stored; the dashboard recomputes them from
the current record set after every change or snapshot.

Two dates matter:
- impact_date drives cash flow (income, expense, balance, card payments)
- original_date drives credit-card consumption (debt generated by the
  purchases made in a month, whatever month the installments fall in)
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional

from fincontrol.config import AppSettings, get_settings
from fincontrol.models.summary import HealthStatus, MonthlySummary, MonthlyTrendPoint
from fincontrol.models.transaction import PaymentMethod, Transaction, TransactionType
from fincontrol.series.calendar import month_key, shift_month


ZERO = Decimal("0")
HUNDRED = Decimal("100")


def _in_month(records: Iterable[Transaction], year: int, month: int) -> list[Transaction]:
    return [r for r in records if month_key(r.impact_date) == (year, month)]


def _total(records: Iterable[Transaction], kind: TransactionType) -> Decimal:
    return sum((r.amount for r in records if r.kind == kind), ZERO)


def _is_credit_card_expense(record: Transaction) -> bool:
    return (
        record.kind == TransactionType.EXPENSE
        and record.payment_method == PaymentMethod.CREDIT_CARD
    )


def credit_card_consumption(records: Iterable[Transaction], year: int, month: int) -> Decimal:
    """Credit-card expenses whose purchase (original) date falls in the month."""
    return sum(
        (
            r.amount for r in records
            if _is_credit_card_expense(r)
            and r.original_date is not None
            and month_key(r.original_date) == (year, month)
        ),
        ZERO,
    )


def credit_card_payments(records: Iterable[Transaction], year: int, month: int) -> Decimal:
    """Credit-card expenses due (by impact date) in the month."""
    return sum(
        (r.amount for r in _in_month(records, year, month) if _is_credit_card_expense(r)),
        ZERO,
    )


def health_for(usage: Decimal, settings: AppSettings) -> HealthStatus:
    if usage > Decimal(str(settings.usage_critical_percent)):
        return HealthStatus.RED
    if usage > Decimal(str(settings.usage_warning_percent)):
        return HealthStatus.YELLOW
    return HealthStatus.GREEN


def monthly_summary(
    records: Iterable[Transaction],
    year: int,
    month: int,
    settings: Optional[AppSettings] = None,
) -> MonthlySummary:
    """
    Cash-flow totals and health for one month.

    Usage is expense as a percentage of income; a month with expenses and
    no income counts as fully used (100).
    """
    settings = settings or get_settings().app
    records = list(records)
    in_month = _in_month(records, year, month)

    income = _total(in_month, TransactionType.INCOME)
    expense = _total(in_month, TransactionType.EXPENSE)

    if income > 0:
        usage = expense / income * HUNDRED
    elif expense > 0:
        usage = HUNDRED
    else:
        usage = ZERO

    return MonthlySummary(
        year=year,
        month=month,
        total_income=income,
        total_expense=expense,
        balance=income - expense,
        usage_percentage=usage,
        health=health_for(usage, settings),
        credit_card_consumption=credit_card_consumption(records, year, month),
    )


def month_view(
    records: Iterable[Transaction],
    year: int,
    month: int,
    kind: Optional[TransactionType] = None,
    search: str = "",
) -> list[Transaction]:
    """
    Records to list for a month, newest first.

    Besides everything due in the month, credit-card purchases made in the
    month are shown once (their first installment), even though they are
    paid later.
    """
    needle = search.strip().lower()

    def visible(record: Transaction) -> bool:
        if month_key(record.impact_date) == (year, month):
            return True
        if record.payment_method != PaymentMethod.CREDIT_CARD or record.original_date is None:
            return False
        is_first = record.installment_info is None or record.installment_info.position == 1
        return is_first and month_key(record.original_date) == (year, month)

    selected = [
        r for r in records
        if visible(r)
        and (kind is None or r.kind == kind)
        and needle in r.description.lower()
    ]
    selected.sort(key=lambda r: (r.impact_date, r.created_at), reverse=True)
    return selected


def category_totals(
    records: Iterable[Transaction],
    year: int,
    month: int,
) -> dict[str, Decimal]:
    """Expense totals per category for the month, largest first."""
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for record in _in_month(records, year, month):
        if record.kind == TransactionType.EXPENSE:
            totals[record.category] += record.amount
    return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))


def monthly_trend(
    records: Iterable[Transaction],
    year: int,
    month: int,
    months_back: int = 2,
    months_forward: int = 9,
) -> list[MonthlyTrendPoint]:
    """One point per month from months_back before to months_forward after (year, month)."""
    records = list(records)
    points = []
    for offset in range(-months_back, months_forward + 1):
        y, m = shift_month(year, month, offset)
        in_month = _in_month(records, y, m)
        income = _total(in_month, TransactionType.INCOME)
        expense = _total(in_month, TransactionType.EXPENSE)
        points.append(MonthlyTrendPoint(
            year=y,
            month=m,
            total_income=income,
            total_expense=expense,
            balance=income - expense,
            credit_card_consumption=credit_card_consumption(records, y, m),
            credit_card_payments=credit_card_payments(in_month, y, m),
        ))
    return points
