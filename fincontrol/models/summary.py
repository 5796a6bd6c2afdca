"""
Summary Models

Aggregates computed over the ledger for one calendar month.
"""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    """How much of the month's income is already committed."""
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


class MonthlySummary(BaseModel):
    """Cash-flow totals for one month, by impact date."""

    year: int
    month: int = Field(ge=1, le=12)
    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    usage_percentage: Decimal = Field(
        default=Decimal("0"),
        description="Expenses as a percentage of income"
    )
    health: HealthStatus = HealthStatus.GREEN
    credit_card_consumption: Decimal = Field(
        default=Decimal("0"),
        description="Credit-card debt generated by purchases made this month"
    )


class MonthlyTrendPoint(BaseModel):
    """One month of a trend series."""

    year: int
    month: int = Field(ge=1, le=12)
    total_income: Decimal
    total_expense: Decimal
    balance: Decimal
    credit_card_consumption: Decimal
    credit_card_payments: Decimal
