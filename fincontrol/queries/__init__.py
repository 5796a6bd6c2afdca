"""Ledger queries package."""

from fincontrol.queries.summary import (
    category_totals,
    credit_card_consumption,
    credit_card_payments,
    health_for,
    month_view,
    monthly_summary,
    monthly_trend,
)

__all__ = [
    "category_totals",
    "credit_card_consumption",
    "credit_card_payments",
    "health_for",
    "month_view",
    "monthly_summary",
    "monthly_trend",
]
