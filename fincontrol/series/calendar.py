"""Month arithmetic shared by the projection rules."""

from datetime import date


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def add_months(year: int, month: int, months: int, *, desired_day: int) -> date:
    """
    Date `months` after (year, month) on `desired_day`.

    Days past the end of the target month are clamped to its last day, so
    day 31 lands on Feb 28/29, Apr 30 and so on.
    """
    total_months = month - 1 + months
    target_year = year + total_months // 12
    target_month = total_months % 12 + 1

    dim = days_in_month(target_year, target_month)
    return date(target_year, target_month, min(desired_day, dim))


def month_key(value: date) -> tuple[int, int]:
    return value.year, value.month


def shift_month(year: int, month: int, months: int) -> tuple[int, int]:
    """(year, month) moved by a signed number of months."""
    total_months = year * 12 + (month - 1) + months
    return total_months // 12, total_months % 12 + 1
