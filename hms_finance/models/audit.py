"""
Audit Models for HMS Finance

Every significant action in the approval workflow produces a structured
audit event. Events go to the structured log only; resolved requests
are deleted, not archived.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from hms_finance.models.ledger import new_id
from hms_finance.models.requests import PendingRequest


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Request lifecycle
    REQUEST_SUBMITTED = "request_submitted"
    REQUEST_EDITED = "request_edited"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    REQUEST_CANCELLED = "request_cancelled"
    REQUESTS_MARKED_READ = "requests_marked_read"

    # Direct changes by a full-trust actor
    EVENT_CREATED = "event_created"
    EVENT_DELETED = "event_deleted"
    EVENT_RESTORED = "event_restored"
    EVENT_PURGED = "event_purged"
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_REMOVED = "transaction_removed"

    # Failures
    VALIDATION_FAILED = "validation_failed"
    PERMISSION_DENIED = "permission_denied"
    STORE_ERROR = "store_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """A single audit event."""

    event_id: str = Field(default_factory=new_id)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'request', 'event', 'transaction', 'image')"
    )
    entity_id: Optional[str] = None

    actor: Optional[str] = Field(
        default=None,
        description="Username of whoever triggered the event"
    )
    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor": self.actor,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.request_submitted(request)
        event = AuditEventBuilder.request_approved(request, "admin", "applied")
    """

    @staticmethod
    def request_submitted(request: PendingRequest) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REQUEST_SUBMITTED,
            entity_type="request",
            entity_id=request.id,
            actor=request.requested_by,
            description=f"Request submitted: {request.description}"[:500],
            details=request.to_log_dict(),
        )

    @staticmethod
    def request_edited(request: PendingRequest) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REQUEST_EDITED,
            entity_type="request",
            entity_id=request.id,
            actor=request.requested_by,
            description=f"Request edited: {request.description}"[:500],
            details=request.to_log_dict(),
        )

    @staticmethod
    def request_approved(
        request: PendingRequest,
        approved_by: str,
        outcome: str,
    ) -> AuditEvent:
        severity = AuditSeverity.INFO if outcome == "applied" else AuditSeverity.WARNING
        return AuditEvent(
            event_type=AuditEventType.REQUEST_APPROVED,
            severity=severity,
            entity_type="request",
            entity_id=request.id,
            actor=approved_by,
            description=f"Request approved ({outcome}): {request.description}"[:500],
            details={**request.to_log_dict(), "outcome": outcome},
        )

    @staticmethod
    def request_resolved_without_effect(
        request_id: str,
        resolved_by: str,
        cancelled: bool,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.REQUEST_CANCELLED
            if cancelled
            else AuditEventType.REQUEST_REJECTED
        )
        verb = "cancelled" if cancelled else "rejected"
        return AuditEvent(
            event_type=event_type,
            entity_type="request",
            entity_id=request_id,
            actor=resolved_by,
            description=f"Request {verb}",
        )

    @staticmethod
    def ledger_changed(
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        actor: str,
        description: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            actor=actor,
            description=description[:500],
            details=details or {},
        )

    @staticmethod
    def validation_failed(
        actor: str,
        issues: list[dict],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            actor=actor,
            description=f"Request rejected before queueing with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def permission_denied(
        actor: str,
        role: str,
        operation: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERMISSION_DENIED,
            severity=AuditSeverity.WARNING,
            actor=actor,
            description=f"Permission denied: {role} may not {operation}",
            details={"role": role, "operation": operation},
        )

    @staticmethod
    def store_error(
        operation: str,
        error_message: str,
        entity_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_ERROR,
            severity=AuditSeverity.ERROR,
            entity_id=entity_id,
            description=f"Store error during {operation}",
            error_message=error_message,
            details={"operation": operation},
        )
