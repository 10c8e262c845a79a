"""
Two-Stage Request Validation

DESIGN DECISION: A request is validated before it reaches the queue,
in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Known request kind
- Required fields present for that kind
- Numeric, non-negative amount; valid type and date

STAGE 2 - SEMANTIC VALIDATION:
- Target event exists (and target transaction, for update/delete)
- Future date detection
- Absurd amount detection
- Duplicate active event names

Errors block submission: nothing half-written ever reaches the queue.
Warnings are reported but do not block.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional, Union

from pydantic import BaseModel, TypeAdapter, ValidationError

from hms_finance.config import get_settings
from hms_finance.models.ledger import Event, TransactionFields
from hms_finance.models.requests import (
    AddTransactionPayload,
    CreateEventPayload,
    DeleteTransactionPayload,
    RequestKind,
    RequestPayload,
    UpdateTransactionPayload,
)
from hms_finance.models.validation import ValidationIssue, ValidationResult
from hms_finance.services.storage import EventStoreInterface, NotFoundError

_payload_adapter = TypeAdapter(RequestPayload)


class InvalidPayloadError(ValueError):
    """A request payload failed validation and was not queued."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(i.message for i in result.issues if i.severity == "error")
        super().__init__(f"Invalid request payload: {messages}")

    @property
    def issues(self) -> list[ValidationIssue]:
        return self.result.issues


class RequestValidator:
    """
    Validates proposed request payloads through a two-stage pipeline.

    Stage 1: Schema validation (can run without storage)
    Stage 2: Semantic validation (needs the committed store)
    """

    def __init__(self, event_store: Optional[EventStoreInterface] = None):
        """
        Initialize validator.

        Args:
            event_store: Committed store used for target checks.
                         If None, stage 2 only runs the store-free checks.
        """
        self._store = event_store
        self._settings = get_settings().app

    def _validate_schema(
        self,
        kind: Union[RequestKind, str],
        raw: Union[dict, BaseModel],
    ) -> tuple[Optional[RequestPayload], list[ValidationIssue]]:
        """
        Stage 1: parse ``raw`` as the payload variant for ``kind``.

        Returns: (payload_or_None, list_of_issues)
        """
        try:
            kind = RequestKind(kind)
        except ValueError:
            return None, [ValidationIssue(
                field="type",
                issue_type="unknown_kind",
                message=f"Unknown request kind: {kind}",
                severity="error",
            )]

        if isinstance(raw, BaseModel):
            raw = raw.model_dump(by_alias=True)
        if not isinstance(raw, dict):
            return None, [ValidationIssue(
                field="data",
                issue_type="invalid_type",
                message="Request payload must be an object",
                severity="error",
            )]

        if raw.get("kind", kind.value) != kind.value:
            return None, [ValidationIssue(
                field="data.kind",
                issue_type="kind_mismatch",
                message=f"Payload kind '{raw.get('kind')}' does not match '{kind.value}'",
                severity="error",
            )]

        try:
            payload = _payload_adapter.validate_python({**raw, "kind": kind.value})
        except ValidationError as e:
            issues = []
            for error in e.errors():
                # Drop the union tag from the error location
                loc = [str(part) for part in error["loc"] if part != kind.value]
                issues.append(ValidationIssue(
                    field=".".join(loc) or "data",
                    issue_type=error["type"],
                    message=f"{'.'.join(loc) or 'data'}: {error['msg']}",
                    severity="error",
                ))
            return None, issues

        return payload, []

    def _check_transaction_fields(self, fields: TransactionFields) -> list[ValidationIssue]:
        issues = []
        today = date.today()

        max_future = today + timedelta(days=self._settings.future_date_tolerance_days)
        if fields.date > max_future:
            issues.append(ValidationIssue(
                field="transaction.date",
                issue_type="future_date",
                message=f"Transaction date ({fields.date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        max_amount = Decimal(str(self._settings.max_transaction_amount))
        if fields.amount > max_amount:
            issues.append(ValidationIssue(
                field="transaction.amount",
                issue_type="suspicious_value",
                message=f"Amount ({fields.amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        if fields.amount == 0:
            issues.append(ValidationIssue(
                field="transaction.amount",
                issue_type="suspicious_value",
                message="Amount is zero",
                severity="warning",
            ))

        return issues

    async def _load_event(self, event_id: str) -> Optional[Event]:
        try:
            return await self._store.get_event(event_id)
        except NotFoundError:
            return None

    async def _validate_semantic(
        self,
        payload: RequestPayload,
    ) -> list[ValidationIssue]:
        """
        Stage 2: Semantic validation.

        StoreUnavailableError propagates: a submission that cannot be
        checked is not queued.
        """
        issues = []

        if isinstance(payload, (AddTransactionPayload, UpdateTransactionPayload)):
            issues.extend(self._check_transaction_fields(payload.transaction))

        if self._store is None:
            return issues

        if isinstance(payload, CreateEventPayload):
            active = await self._store.list_events(include_deleted=False)
            if any(e.name.lower() == payload.name.lower() for e in active):
                issues.append(ValidationIssue(
                    field="name",
                    issue_type="duplicate_name",
                    message=f'An event named "{payload.name}" already exists',
                    severity="warning",
                    suggested_fix="Choose a different name",
                ))
            return issues

        event = await self._load_event(payload.event_id)
        if event is None:
            issues.append(ValidationIssue(
                field="event_id",
                issue_type="not_found",
                message=f"Event not found: {payload.event_id}",
                severity="error",
            ))
            return issues

        if event.is_deleted:
            issues.append(ValidationIssue(
                field="event_id",
                issue_type="deleted",
                message=f'Event "{event.name}" is in the recycle bin',
                severity="warning",
            ))

        if isinstance(payload, (UpdateTransactionPayload, DeleteTransactionPayload)):
            target = (
                payload.transaction.id
                if isinstance(payload, UpdateTransactionPayload)
                else payload.transaction_id
            )
            if event.find_transaction(target) is None:
                issues.append(ValidationIssue(
                    field="transaction_id",
                    issue_type="not_found",
                    message=f'Transaction not found in "{event.name}": {target}',
                    severity="error",
                ))

        return issues

    async def validate(
        self,
        kind: Union[RequestKind, str],
        raw: Union[dict, BaseModel, Any],
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Args:
            kind: Request kind the payload is proposed for
            raw: Payload as a dict or a payload model

        Returns:
            ValidationResult with all issues found; ``payload`` is set
            when the schema stage passed
        """
        payload, issues = self._validate_schema(kind, raw)
        schema_valid = payload is not None

        semantic_valid = False
        if schema_valid:
            semantic_issues = await self._validate_semantic(payload)
            issues.extend(semantic_issues)
            semantic_valid = not any(i.severity == "error" for i in semantic_issues)

        return ValidationResult(
            kind=RequestKind(payload.kind) if payload is not None else None,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            payload=payload,
            issues=issues,
            warnings=[i.message for i in issues if i.severity == "warning"],
        )

    async def validate_or_raise(
        self,
        kind: Union[RequestKind, str],
        raw: Union[dict, BaseModel, Any],
    ) -> ValidationResult:
        """Validate and raise InvalidPayloadError on any error-level issue."""
        result = await self.validate(kind, raw)
        if not result.is_valid:
            raise InvalidPayloadError(result)
        return result

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """Generate a user-friendly summary of validation results."""
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []

        if result.has_errors:
            lines.append("The request could not be sent:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
