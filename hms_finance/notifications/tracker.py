"""
Notification Tracker

Operators get a badge counting requests they have not looked at yet.
The read flag lives on each request; an edit by the proposer clears it
so the change shows up again.
"""

from typing import Optional

from hms_finance.audit import AuditLogger
from hms_finance.models.audit import AuditEventType
from hms_finance.services.storage import RequestQueueInterface


class NotificationTracker:
    """Unread counter over the request queue."""

    def __init__(
        self,
        request_queue: RequestQueueInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._queue = request_queue
        self._audit = audit_logger or AuditLogger()

    async def unread_count(self) -> int:
        requests = await self._queue.list_requests()
        return sum(1 for r in requests if not r.is_read)

    async def mark_all_read(self, actor: str = "system") -> int:
        """
        Flag every queued request as read.

        Returns:
            Number of requests that were unread
        """
        updated = await self._queue.mark_all_read()
        if updated:
            await self._audit.log_ledger_change(
                event_type=AuditEventType.REQUESTS_MARKED_READ,
                entity_type="request",
                entity_id="*",
                actor=actor,
                description=f"Marked {updated} requests as read",
                details={"count": updated},
            )
        return updated
