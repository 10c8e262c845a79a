"""
Validation Result Models

Produced by the request validator before anything is queued.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from hms_finance.models.requests import RequestKind, RequestPayload


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'not_found')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """
    Result of the two-stage request validation.

    Stage 1: Schema validation (shape of the payload for its kind)
    Stage 2: Semantic validation (does the target exist, is it sensible)
    """

    kind: Optional[RequestKind] = None
    validated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool

    # Parsed payload, present once schema validation passed
    payload: Optional[RequestPayload] = None

    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")
