"""
Data Models Package

This package contains all Pydantic models used in HMS Finance.
All data flowing through the system must conform to these schemas.
"""

from hms_finance.models.actor import Actor, Role
from hms_finance.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from hms_finance.models.ledger import (
    Event,
    Transaction,
    TransactionFields,
    TransactionType,
    new_id,
)
from hms_finance.models.overlay import (
    DashboardView,
    DisplayEvent,
    DisplayTransaction,
    MergedEventView,
    PendingAction,
)
from hms_finance.models.report import ActivityEntry, FinancialSummary, ReportRow
from hms_finance.models.requests import (
    AddTransactionPayload,
    CreateEventPayload,
    DeleteEventPayload,
    DeleteTransactionPayload,
    PendingRequest,
    RequestKind,
    RequestPayload,
    UpdateTransactionPayload,
    utc_now,
)
from hms_finance.models.validation import ValidationIssue, ValidationResult

__all__ = [
    # Actors
    "Actor",
    "Role",
    # Ledger models
    "Event",
    "Transaction",
    "TransactionFields",
    "TransactionType",
    "new_id",
    # Request models
    "AddTransactionPayload",
    "CreateEventPayload",
    "DeleteEventPayload",
    "DeleteTransactionPayload",
    "PendingRequest",
    "RequestKind",
    "RequestPayload",
    "UpdateTransactionPayload",
    "utc_now",
    # Overlay models
    "DashboardView",
    "DisplayEvent",
    "DisplayTransaction",
    "MergedEventView",
    "PendingAction",
    # Report models
    "ActivityEntry",
    "FinancialSummary",
    "ReportRow",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
