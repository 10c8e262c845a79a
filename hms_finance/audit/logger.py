"""
Audit Logger

DESIGN DECISION: Every request lifecycle step and every direct change
to the ledger is logged as a structured event.

The audit logger:
- Is async so flows can await it uniformly
- Gracefully handles failures (doesn't crash the app if logging fails)
- Writes to the structured log only. Resolved requests are deleted,
  so the log is the only trace an approval leaves behind.
"""

from typing import Optional

import structlog

from hms_finance.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from hms_finance.models.requests import PendingRequest


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def get_logger(name: Optional[str] = None):
    """Module-level structured logger."""
    return structlog.get_logger(name)


class AuditLogger:
    """Central audit logging service."""

    def __init__(self):
        self._logger = structlog.get_logger("hms_finance.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns False if the event could not be written. Never raises.
        """
        log_dict = event.to_log_dict()
        try:
            if event.severity.value == "error":
                self._logger.error("audit_event", **log_dict)
            elif event.severity.value == "warning":
                self._logger.warning("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception:
            return False
        return True

    async def log_request_submitted(self, request: PendingRequest) -> None:
        await self.log(AuditEventBuilder.request_submitted(request))

    async def log_request_edited(self, request: PendingRequest) -> None:
        await self.log(AuditEventBuilder.request_edited(request))

    async def log_request_approved(
        self,
        request: PendingRequest,
        approved_by: str,
        outcome: str,
    ) -> None:
        await self.log(AuditEventBuilder.request_approved(request, approved_by, outcome))

    async def log_request_rejected(self, request_id: str, rejected_by: str) -> None:
        await self.log(
            AuditEventBuilder.request_resolved_without_effect(
                request_id=request_id,
                resolved_by=rejected_by,
                cancelled=False,
            )
        )

    async def log_request_cancelled(self, request_id: str, cancelled_by: str) -> None:
        await self.log(
            AuditEventBuilder.request_resolved_without_effect(
                request_id=request_id,
                resolved_by=cancelled_by,
                cancelled=True,
            )
        )

    async def log_ledger_change(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        actor: str,
        description: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log a direct change made by a full-trust actor."""
        await self.log(
            AuditEventBuilder.ledger_changed(
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                actor=actor,
                description=description,
                details=details,
            )
        )

    async def log_validation_failed(self, actor: str, issues: list[dict]) -> None:
        await self.log(AuditEventBuilder.validation_failed(actor, issues))

    async def log_permission_denied(self, actor: str, role: str, operation: str) -> None:
        await self.log(AuditEventBuilder.permission_denied(actor, role, operation))

    async def log_store_error(
        self,
        operation: str,
        error_message: str,
        entity_id: Optional[str] = None,
    ) -> None:
        await self.log(AuditEventBuilder.store_error(operation, error_message, entity_id))
