"""
Main Orchestrator for HMS Finance

This module ties together all the components and defines the
end-to-end flows for:
1. Ledger (read merged views, mutate directly or by request)
2. Approval center (operator inbox: review, approve, reject)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Only full-trust actors touch the committed store directly
- Limited-trust actors only ever produce pending requests
- Every read any role sees is committed data with proposals folded in
- Every step is audited

This is the "glue" that callers (UI, scripts) talk to; none of them
need to know which role maps to which path.
"""

from typing import Optional, Union

from hms_finance.access import (
    PermissionDeniedError,
    ensure_can_mutate_directly,
    ensure_can_resolve,
    ensure_can_submit,
)
from hms_finance.approval import ApprovalCoordinator, ApprovalResult
from hms_finance.audit import AuditLogger, get_logger
from hms_finance.models.actor import Actor
from hms_finance.models.audit import AuditEventType
from hms_finance.models.ledger import Event, Transaction, TransactionFields
from hms_finance.models.overlay import DashboardView, MergedEventView
from hms_finance.models.report import ActivityEntry, FinancialSummary, ReportRow
from hms_finance.models.requests import (
    AddTransactionPayload,
    CreateEventPayload,
    DeleteEventPayload,
    DeleteTransactionPayload,
    PendingRequest,
    RequestKind,
    UpdateTransactionPayload,
)
from hms_finance.notifications import NotificationTracker
from hms_finance.overlay import merge_dashboard, merge_for_event, sort_for_display
from hms_finance.reports import recent_activity, report_rows, summarize, summarize_events
from hms_finance.services.image import (
    BlobStoreInterface,
    CloudinaryBlobStore,
    ImageUploadError,
    compress_receipt_image,
)
from hms_finance.services.storage import (
    EventStoreInterface,
    GoogleSheetsClient,
    GoogleSheetsEventStore,
    GoogleSheetsRequestQueue,
    InMemoryEventStore,
    InMemoryRequestQueue,
    NotFoundError,
    RequestQueueInterface,
    release_receipts,
)


logger = get_logger(__name__)


class EventLedgerFlow:
    """
    Role-aware facade over events and transactions.

    Reads:
        Every role sees the same merged view.

    Writes:
        ADMIN      applied to the committed store immediately
        ASSISTANT  turned into a pending request; edits and deletes of
                   its own pending rows amend or cancel that request
                   instead of stacking a second one
        USER       PermissionDeniedError
    """

    def __init__(
        self,
        event_store: EventStoreInterface,
        request_queue: RequestQueueInterface,
        coordinator: Optional[ApprovalCoordinator] = None,
        audit_logger: Optional[AuditLogger] = None,
        blob_store: Optional[BlobStoreInterface] = None,
    ):
        self._store = event_store
        self._queue = request_queue
        self._audit = audit_logger or AuditLogger()
        self._coordinator = coordinator or ApprovalCoordinator(
            event_store, request_queue, audit_logger=self._audit
        )
        self._blob_store = blob_store

    # =========================================================================
    # Reads
    # =========================================================================

    async def list_events(self) -> list[Event]:
        """Active committed events."""
        return await self._store.list_events(include_deleted=False)

    async def deleted_events(self) -> list[Event]:
        """Soft-deleted events (the recycle bin)."""
        events = await self._store.list_events(include_deleted=True)
        return [e for e in events if e.is_deleted]

    async def dashboard(self) -> DashboardView:
        events = await self._store.list_events(include_deleted=False)
        requests = await self._queue.list_requests()
        return merge_dashboard(events, requests)

    async def event_view(self, event_id: str) -> MergedEventView:
        """
        One event with its pending requests folded in, rows in display order.

        Raises:
            NotFoundError: If the event doesn't exist
        """
        event = await self._store.get_event(event_id)
        requests = await self._queue.list_requests(event_id)
        view = merge_for_event(event, requests)
        view.transactions = sort_for_display(view.transactions)
        return view

    async def summary(self, event_id: Optional[str] = None) -> FinancialSummary:
        """Committed totals for one event, or across all active events."""
        if event_id is None:
            return summarize_events(await self.list_events())
        event = await self._store.get_event(event_id)
        return summarize(event.transactions)

    async def recent_activity(self, limit: int = 7) -> list[ActivityEntry]:
        return recent_activity(await self.list_events(), limit=limit)

    async def report(self, event_id: str) -> list[ReportRow]:
        """Rows for a printable report of one event."""
        event = await self._store.get_event(event_id)
        return report_rows(event.transactions)

    # =========================================================================
    # Event mutations
    # =========================================================================

    async def create_event(
        self,
        actor: Actor,
        name: str,
    ) -> Union[Event, PendingRequest]:
        if not actor.is_admin:
            return await self._coordinator.submit(actor, CreateEventPayload(name=name))

        event = await self._store.create_event(name)
        await self._audit.log_ledger_change(
            event_type=AuditEventType.EVENT_CREATED,
            entity_type="event",
            entity_id=event.id,
            actor=actor.username,
            description=f'Event created: "{event.name}"',
        )
        return event

    async def delete_event(
        self,
        actor: Actor,
        event_id: str,
    ) -> Union[bool, PendingRequest]:
        """Soft delete an event (moves it to the recycle bin)."""
        event = await self._store.get_event(event_id)

        if not actor.is_admin:
            return await self._coordinator.submit(
                actor,
                DeleteEventPayload(event_id=event.id, event_name=event.name),
            )

        deleted = await self._store.set_deleted(event_id, True)
        if deleted:
            await self._audit.log_ledger_change(
                event_type=AuditEventType.EVENT_DELETED,
                entity_type="event",
                entity_id=event_id,
                actor=actor.username,
                description=f'Event moved to recycle bin: "{event.name}"',
            )
        return deleted

    async def restore_event(self, actor: Actor, event_id: str) -> bool:
        await self._require_direct(actor, "restore events")

        restored = await self._store.restore_event(event_id)
        if restored:
            await self._audit.log_ledger_change(
                event_type=AuditEventType.EVENT_RESTORED,
                entity_type="event",
                entity_id=event_id,
                actor=actor.username,
                description="Event restored from recycle bin",
            )
        return restored

    async def purge_event(self, actor: Actor, event_id: str) -> bool:
        """Permanently delete an event and release its receipt images."""
        await self._require_direct(actor, "permanently delete events")

        purged = await self._store.purge_event(event_id)
        if purged:
            await self._audit.log_ledger_change(
                event_type=AuditEventType.EVENT_PURGED,
                entity_type="event",
                entity_id=event_id,
                actor=actor.username,
                description="Event permanently deleted",
            )
        return purged

    # =========================================================================
    # Transaction mutations
    # =========================================================================

    async def add_transaction(
        self,
        actor: Actor,
        event_id: str,
        fields: TransactionFields,
        receipt: Optional[bytes] = None,
    ) -> Union[Transaction, PendingRequest]:
        """
        Record a transaction, optionally uploading a receipt photo first.

        The receipt is only uploaded for actors allowed to write, and is
        released again if the write that would reference it fails.

        Raises:
            NotFoundError: If the event doesn't exist
            InvalidPayloadError: If an assistant's proposal fails validation
        """
        event = await self._store.get_event(event_id)
        await self._require_writer(actor)
        fields, uploaded = await self._attach_receipt(fields, receipt)

        try:
            if not actor.is_admin:
                return await self._coordinator.submit(
                    actor,
                    AddTransactionPayload(
                        event_id=event.id,
                        event_name=event.name,
                        transaction=fields,
                    ),
                )
            transaction = await self._store.append_transaction(event_id, fields)
        except Exception:
            await release_receipts(self._blob_store, uploaded)
            raise

        await self._audit.log_ledger_change(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type="transaction",
            entity_id=transaction.id,
            actor=actor.username,
            description=f'Transaction added to "{event.name}": "{transaction.name}"',
            details={"event_id": event_id},
        )
        return transaction

    async def update_transaction(
        self,
        actor: Actor,
        event_id: str,
        row_id: str,
        fields: TransactionFields,
        receipt: Optional[bytes] = None,
    ) -> Union[bool, PendingRequest]:
        """
        Edit a displayed row.

        ``row_id`` is the id shown in the merged view: a committed
        transaction id, or a request id for a pending addition.
        """
        event = await self._store.get_event(event_id)
        await self._require_writer(actor)
        fields, uploaded = await self._attach_receipt(fields, receipt)

        try:
            if not actor.is_admin:
                return await self._propose_update(actor, event, row_id, fields)
            replaced = await self._store.replace_transaction(event_id, row_id, fields)
            if not replaced:
                raise NotFoundError(f"Transaction not found: {row_id}")
        except Exception:
            await release_receipts(self._blob_store, uploaded)
            raise

        await self._audit.log_ledger_change(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=row_id,
            actor=actor.username,
            description=f'Transaction updated in "{event.name}": "{fields.name}"',
            details={"event_id": event_id},
        )
        return True

    async def _propose_update(
        self,
        actor: Actor,
        event: Event,
        row_id: str,
        fields: TransactionFields,
    ) -> PendingRequest:
        """
        Turn an assistant's edit into exactly one pending request per row.

        Own pending addition or update: amended in place.
        Own pending deletion: superseded by the update, then cancelled.
        """
        own = await self._own_request_for_row(actor, event.id, row_id)
        if own is not None and own.type == RequestKind.ADD_TRANSACTION:
            return await self._coordinator.edit_pending(
                actor,
                own.id,
                AddTransactionPayload(
                    event_id=event.id,
                    event_name=event.name,
                    transaction=TransactionFields(**fields.field_values()),
                ),
            )

        payload = UpdateTransactionPayload(
            event_id=event.id,
            event_name=event.name,
            transaction=Transaction.from_fields(row_id, fields),
        )
        if own is not None and own.type == RequestKind.UPDATE_TRANSACTION:
            return await self._coordinator.edit_pending(actor, own.id, payload)

        request = await self._coordinator.submit(actor, payload)
        if own is not None and own.type == RequestKind.DELETE_TRANSACTION:
            # The deletion stays queued if the submit above fails
            await self._coordinator.cancel(actor, own.id)
        return request

    async def delete_transaction(
        self,
        actor: Actor,
        event_id: str,
        row_id: str,
    ) -> Union[bool, PendingRequest]:
        """
        Delete a displayed row.

        Deleting a row that stands for one's own pending request cancels
        that request. Admins deleting a pending addition cancel it too.
        """
        event = await self._store.get_event(event_id)

        if not actor.is_admin:
            own = await self._own_request_for_row(actor, event_id, row_id)
            if own is not None:
                return await self._coordinator.cancel(actor, own.id)

            transaction = event.find_transaction(row_id)
            return await self._coordinator.submit(
                actor,
                DeleteTransactionPayload(
                    event_id=event.id,
                    event_name=event.name,
                    transaction_id=row_id,
                    transaction_name=transaction.name if transaction else "",
                ),
            )

        if event.find_transaction(row_id) is None:
            pending = await self._queue.get(row_id)
            if pending is not None and pending.type == RequestKind.ADD_TRANSACTION:
                return await self._coordinator.cancel(actor, row_id)

        removed = await self._store.remove_transaction(event_id, row_id)
        if removed:
            await self._audit.log_ledger_change(
                event_type=AuditEventType.TRANSACTION_REMOVED,
                entity_type="transaction",
                entity_id=row_id,
                actor=actor.username,
                description=f'Transaction removed from "{event.name}"',
                details={"event_id": event_id},
            )
        return removed

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _require_direct(self, actor: Actor, operation: str) -> None:
        try:
            ensure_can_mutate_directly(actor, operation)
        except PermissionDeniedError:
            await self._audit.log_permission_denied(
                actor.username, actor.role.value, operation
            )
            raise

    async def _require_writer(self, actor: Actor) -> None:
        try:
            ensure_can_submit(actor)
        except PermissionDeniedError as e:
            await self._audit.log_permission_denied(
                actor.username, actor.role.value, e.operation
            )
            raise

    async def _own_request_for_row(
        self,
        actor: Actor,
        event_id: str,
        row_id: str,
    ) -> Optional[PendingRequest]:
        """
        The actor's latest pending request displayed on ``row_id``.

        Matches a pending addition by its request id, or an update or
        delete anchored on the committed transaction ``row_id``.
        """
        requests = await self._queue.list_requests(event_id)
        matches = [
            r for r in requests
            if r.requested_by == actor.username
            and (
                (r.id == row_id and r.type == RequestKind.ADD_TRANSACTION)
                or r.target_transaction_id == row_id
            )
        ]
        if not matches:
            return None
        return max(matches, key=lambda r: r.timestamp)

    async def _attach_receipt(
        self,
        fields: TransactionFields,
        receipt: Optional[bytes],
    ) -> tuple[TransactionFields, list[str]]:
        """Upload ``receipt`` and point ``fields`` at it; also returns the new URLs."""
        if receipt is None:
            return fields, []
        if self._blob_store is None:
            raise ImageUploadError("No blob store configured for receipt uploads")

        url = await self._blob_store.store(compress_receipt_image(receipt))
        return fields.model_copy(update={"image": url}), [url]


class ApprovalCenterFlow:
    """
    Operator inbox.

    Flow:
    1. Badge → unread_count
    2. Open  → list requests, mark them all read
    3. Resolve each → approve (apply + remove) or reject (remove)
    """

    def __init__(
        self,
        request_queue: RequestQueueInterface,
        coordinator: ApprovalCoordinator,
        tracker: Optional[NotificationTracker] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._queue = request_queue
        self._coordinator = coordinator
        self._audit = audit_logger or AuditLogger()
        self._tracker = tracker or NotificationTracker(request_queue, self._audit)

    async def _require_operator(self, actor: Actor) -> None:
        try:
            ensure_can_resolve(actor, "review pending requests")
        except PermissionDeniedError:
            await self._audit.log_permission_denied(
                actor.username, actor.role.value, "review pending requests"
            )
            raise

    async def pending_requests(self, actor: Actor) -> list[PendingRequest]:
        """Queued requests, newest first."""
        await self._require_operator(actor)
        requests = await self._queue.list_requests()
        return sorted(requests, key=lambda r: r.timestamp, reverse=True)

    async def unread_count(self, actor: Actor) -> int:
        await self._require_operator(actor)
        return await self._tracker.unread_count()

    async def open_inbox(self, actor: Actor) -> list[PendingRequest]:
        """
        List requests and clear the unread badge.

        Returned requests keep the read flags they had when opened, so
        new arrivals can still be highlighted.
        """
        requests = await self.pending_requests(actor)
        await self._tracker.mark_all_read(actor.username)
        return requests

    async def approve(
        self,
        actor: Actor,
        request: Union[PendingRequest, str],
    ) -> ApprovalResult:
        return await self._coordinator.approve(actor, request)

    async def reject(self, actor: Actor, request_id: str) -> bool:
        return await self._coordinator.reject(actor, request_id)


def create_app_components(
    use_storage: bool = True,
) -> tuple[EventLedgerFlow, ApprovalCenterFlow, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run on in-memory stores.

    Returns:
        (ledger_flow, approval_flow, sheets_client)
    """
    sheets_client = None
    blob_store = None
    audit_logger = AuditLogger()

    try:
        blob_store = CloudinaryBlobStore()
    except Exception as e:
        # Receipts disabled until Cloudinary is configured
        logger.warning("blob_store_not_configured", error=str(e))

    event_store = None
    request_queue = None
    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            event_store = GoogleSheetsEventStore(sheets_client, blob_store=blob_store)
            request_queue = GoogleSheetsRequestQueue(sheets_client)
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None

    if event_store is None:
        event_store = InMemoryEventStore(blob_store=blob_store)
        request_queue = InMemoryRequestQueue()

    coordinator = ApprovalCoordinator(event_store, request_queue, audit_logger=audit_logger)

    ledger_flow = EventLedgerFlow(
        event_store,
        request_queue,
        coordinator=coordinator,
        audit_logger=audit_logger,
        blob_store=blob_store,
    )
    approval_flow = ApprovalCenterFlow(
        request_queue,
        coordinator,
        audit_logger=audit_logger,
    )

    return ledger_flow, approval_flow, sheets_client
