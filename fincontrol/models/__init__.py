"""
Data Models Package

This package contains all Pydantic models used by the series ledger.
All data flowing through the system must conform to these schemas.
"""

from fincontrol.models.transaction import (
    MAX_INSTALLMENTS,
    PROPAGATED_FIELDS,
    DeletionMode,
    ExpenseType,
    IncomeType,
    InstallmentInfo,
    InstallmentPurchaseIntent,
    PaymentMethod,
    RecurringIncomeIntent,
    SeriesKind,
    SingleTransactionIntent,
    Transaction,
    TransactionType,
    TransactionUpdate,
)
from fincontrol.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from fincontrol.models.summary import (
    HealthStatus,
    MonthlySummary,
    MonthlyTrendPoint,
)
from fincontrol.models.validation import (
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    # Transaction models
    "MAX_INSTALLMENTS",
    "PROPAGATED_FIELDS",
    "DeletionMode",
    "ExpenseType",
    "IncomeType",
    "InstallmentInfo",
    "InstallmentPurchaseIntent",
    "PaymentMethod",
    "RecurringIncomeIntent",
    "SeriesKind",
    "SingleTransactionIntent",
    "Transaction",
    "TransactionType",
    "TransactionUpdate",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Summary models
    "HealthStatus",
    "MonthlySummary",
    "MonthlyTrendPoint",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
]
