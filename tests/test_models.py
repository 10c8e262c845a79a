"""
Tests for HMS Finance

Test strategy:
1. Unit tests for individual components (models, merge, validators)
2. Integration tests for flows (in-memory stores, faked external services)
3. No real API calls in tests
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from pydantic import ValidationError

from hms_finance.models import (
    AddTransactionPayload,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    CreateEventPayload,
    DeleteEventPayload,
    DeleteTransactionPayload,
    DisplayTransaction,
    Event,
    FinancialSummary,
    PendingAction,
    PendingRequest,
    RequestKind,
    Transaction,
    TransactionFields,
    TransactionType,
    UpdateTransactionPayload,
    ValidationIssue,
    ValidationResult,
)


def _transaction(**overrides) -> Transaction:
    values = dict(
        id="t1",
        name="Tickets",
        amount=Decimal("500"),
        type=TransactionType.COLLECTION,
        date=date(2024, 3, 1),
    )
    values.update(overrides)
    return Transaction(**values)


class TestLedgerModels:
    """Tests for committed ledger models."""

    def test_transaction_strips_whitespace(self):
        """Test that whitespace is stripped from the name."""
        assert _transaction(name="  Tickets  ").name == "Tickets"

    def test_transaction_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValueError):
            _transaction(amount=Decimal("-1"))

    def test_transaction_rejects_empty_name(self):
        with pytest.raises(ValueError):
            _transaction(name="   ")

    def test_transaction_amount_from_string(self):
        """Amounts written as text are parsed exactly."""
        assert _transaction(amount="12.50").amount == Decimal("12.50")

    def test_from_fields_keeps_given_id(self):
        fields = TransactionFields(
            name="Hall rent",
            amount=Decimal("2000"),
            type=TransactionType.EXPENSE,
            date=date(2024, 3, 2),
        )
        t = Transaction.from_fields("abc", fields)
        assert t.id == "abc"
        assert t.name == "Hall rent"
        assert t.type == TransactionType.EXPENSE

    def test_event_accepts_persisted_alias(self):
        """Test that isDeleted is accepted as well as is_deleted."""
        event = Event.model_validate({"id": "e1", "name": "Gala", "isDeleted": True})
        assert event.is_deleted is True
        assert event.model_dump(by_alias=True)["isDeleted"] is True

    def test_event_generates_id(self):
        assert Event(name="Gala").id != Event(name="Gala").id

    def test_find_transaction_and_receipts(self):
        event = Event(
            name="Gala",
            transactions=[
                _transaction(id="t1", image="https://img/1.jpg"),
                _transaction(id="t2"),
            ],
        )
        assert event.find_transaction("t2").id == "t2"
        assert event.find_transaction("missing") is None
        assert event.receipt_images() == ["https://img/1.jpg"]


class TestRequestModels:
    """Tests for pending request models."""

    def test_payload_parsed_by_kind(self):
        """Test that the payload variant is chosen by its kind."""
        request = PendingRequest(
            type=RequestKind.DELETE_TRANSACTION,
            data={
                "kind": "delete_transaction",
                "eventId": "e1",
                "eventName": "Gala",
                "transactionId": "t1",
                "transactionName": "Tickets",
            },
            requestedBy="asst",
        )
        assert isinstance(request.data, DeleteTransactionPayload)
        assert request.data.transaction_id == "t1"
        assert request.event_id == "e1"
        assert request.target_transaction_id == "t1"

    def test_untagged_payload_takes_kind_from_type(self):
        """Stored payloads without a kind still parse."""
        request = PendingRequest(
            type="create_event",
            data={"name": "Gala"},
            requested_by="asst",
        )
        assert isinstance(request.data, CreateEventPayload)
        assert request.event_id is None
        assert request.target_transaction_id is None

    def test_kind_mismatch_rejected(self):
        """Test that a payload of another kind is refused."""
        with pytest.raises(ValidationError):
            PendingRequest(
                type=RequestKind.CREATE_EVENT,
                data=DeleteEventPayload(event_id="e1"),
                requested_by="asst",
            )

    def test_update_payload_requires_target_id(self):
        with pytest.raises(ValidationError):
            PendingRequest(
                type="update_transaction",
                data={
                    "eventId": "e1",
                    "transaction": {
                        "name": "Tickets",
                        "amount": "10",
                        "type": "collection",
                        "date": "2024-03-01",
                    },
                },
                requested_by="asst",
            )

    def test_defaults(self):
        request = PendingRequest(
            type=RequestKind.CREATE_EVENT,
            data=CreateEventPayload(name="Gala"),
            requested_by="asst",
        )
        assert request.is_read is False
        assert request.id
        assert request.timestamp.tzinfo is not None

    def test_naive_timestamp_assumed_utc(self):
        request = PendingRequest(
            type=RequestKind.CREATE_EVENT,
            data=CreateEventPayload(name="Gala"),
            requested_by="asst",
            timestamp=datetime(2024, 3, 1, 12, 0),
        )
        assert request.timestamp == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def test_dump_uses_persisted_names(self):
        request = PendingRequest(
            type=RequestKind.ADD_TRANSACTION,
            data=AddTransactionPayload(
                event_id="e1",
                event_name="Gala",
                transaction=TransactionFields(
                    name="Tickets",
                    amount=Decimal("500"),
                    type=TransactionType.COLLECTION,
                    date=date(2024, 3, 1),
                ),
            ),
            requested_by="asst",
        )
        dumped = request.model_dump(mode="json", by_alias=True)
        assert dumped["requestedBy"] == "asst"
        assert dumped["isRead"] is False
        assert dumped["data"]["eventId"] == "e1"
        assert dumped["data"]["kind"] == "add_transaction"

        restored = PendingRequest.model_validate(dumped)
        assert restored == request

    def test_to_log_dict(self):
        request = PendingRequest(
            type=RequestKind.DELETE_EVENT,
            data=DeleteEventPayload(event_id="e1", event_name="Gala"),
            requested_by="asst",
        )
        log_dict = request.to_log_dict()
        assert log_dict["request_type"] == "delete_event"
        assert log_dict["event_id"] == "e1"


class TestOverlayModels:
    """Tests for display projections."""

    def test_committed_row_is_not_pending(self):
        row = DisplayTransaction.committed(_transaction())
        assert row.is_pending is False
        assert row.request_id is None
        assert row.effective == _transaction()

    def test_effective_prefers_proposed_record(self):
        proposed = _transaction(amount=Decimal("800"))
        row = DisplayTransaction(
            **_transaction().model_dump(),
            pending_action=PendingAction.UPDATE,
            pending_data=proposed,
        )
        assert row.is_pending is True
        assert row.amount == Decimal("500")
        assert row.effective.amount == Decimal("800")


class TestReportModels:
    """Tests for summary models."""

    def test_balance_excludes_loans(self):
        summary = FinancialSummary(
            collections=Decimal("1000"),
            expenses=Decimal("300"),
            loans=Decimal("5000"),
        )
        assert summary.balance == Decimal("700")


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.EVENT_CREATED,
            description="Event created",
        )
        assert event.event_type == AuditEventType.EVENT_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            description="Transaction added",
            details={"event_id": "e1"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "transaction_added"
        assert log_dict["details"]["event_id"] == "e1"

    def test_builder_request_approved(self):
        """Test AuditEventBuilder.request_approved."""
        request = PendingRequest(
            type=RequestKind.CREATE_EVENT,
            data=CreateEventPayload(name="Gala"),
            description='Create Event: "Gala"',
            requested_by="asst",
        )
        event = AuditEventBuilder.request_approved(request, "admin", "applied")
        assert event.event_type == AuditEventType.REQUEST_APPROVED
        assert event.entity_id == request.id
        assert event.actor == "admin"
        assert event.severity == AuditSeverity.INFO

        voided = AuditEventBuilder.request_approved(request, "admin", "target_missing")
        assert voided.severity == AuditSeverity.WARNING

    def test_builder_resolved_without_effect(self):
        rejected = AuditEventBuilder.request_resolved_without_effect("r1", "admin", cancelled=False)
        cancelled = AuditEventBuilder.request_resolved_without_effect("r1", "asst", cancelled=True)
        assert rejected.event_type == AuditEventType.REQUEST_REJECTED
        assert cancelled.event_type == AuditEventType.REQUEST_CANCELLED


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            schema_valid=False,
            semantic_valid=False,
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="transaction.amount",
                    issue_type="missing",
                    message="Amount required",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            schema_valid=True,
            semantic_valid=True,
            is_valid=True,
            issues=[
                ValidationIssue(
                    field="transaction.date",
                    issue_type="future_date",
                    message="Date in future",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0

    def test_issue_severity_is_constrained(self):
        with pytest.raises(ValueError):
            ValidationIssue(field="x", issue_type="y", message="z", severity="fatal")


class TestRequestKinds:
    """Tests for the request kind enum."""

    def test_all_kinds_exist(self):
        expected = [
            "create_event", "delete_event", "add_transaction",
            "update_transaction", "delete_transaction",
        ]
        for kind in expected:
            assert RequestKind(kind) is not None

    def test_update_payload_exposes_target(self):
        payload = UpdateTransactionPayload(event_id="e1", transaction=_transaction(id="t9"))
        assert payload.transaction_id == "t9"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
