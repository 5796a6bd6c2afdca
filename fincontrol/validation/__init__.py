"""Form validation package."""

from fincontrol.validation.validator import (
    CreationIntent,
    IntentRejectedError,
    IntentValidator,
    TransactionFormData,
)

__all__ = [
    "CreationIntent",
    "IntentRejectedError",
    "IntentValidator",
    "TransactionFormData",
]
