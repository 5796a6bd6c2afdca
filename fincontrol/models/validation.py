"""
Validation Models

Results of the two-stage form validation. Validation NEVER silently fixes
input; it reports issues so the caller can block the action.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(..., description="Form field, or \"form\" for whole-form issues")
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'out_of_range', 'not_allowed')"
    )
    message: str
    # only "error" blocks creation
    severity: Literal["error", "warning", "info"]


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (types, ranges, required fields)
    Stage 2: Semantic validation (combinations that make no sense)
    """

    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    schema_valid: bool
    semantic_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.schema_valid and self.semantic_valid and not self.has_errors

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    def first_error(self) -> Optional[ValidationIssue]:
        return next(
            (issue for issue in self.issues if issue.severity == "error"),
            None,
        )
