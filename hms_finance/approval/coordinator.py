"""
Approval Coordinator

DESIGN DECISION: The committed store and the request queue are separate
collections with no shared transaction. Every resolution is ordered so
that a failure at any point leaves the system recoverable:

    approve:  apply effect  ->  delete request
    reject:   delete request
    cancel:   delete request

If the effect fails because the store is unreachable, the request stays
queued and the operator can simply approve again. If the effect's target
has vanished (deleted directly by an operator, or by an earlier approval)
the request is removed anyway: retrying could never succeed.

The coordinator never holds a lock across the two stores. Concurrent
resolutions of the same request are tolerated: the second one finds the
request gone and becomes a no-op.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel

from hms_finance.access import (
    PermissionDeniedError,
    ensure_can_cancel,
    ensure_can_resolve,
    ensure_can_submit,
    ensure_owns_request,
)
from hms_finance.audit import AuditLogger, get_logger
from hms_finance.config import get_settings
from hms_finance.models.actor import Actor
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
from hms_finance.services.storage import (
    EventStoreInterface,
    NotFoundError,
    RequestQueueInterface,
    StorageError,
)
from hms_finance.validation import InvalidPayloadError, RequestValidator


logger = get_logger(__name__)


class ApprovalOutcome(str, Enum):
    """What an approval did to the committed store."""
    APPLIED = "applied"
    TARGET_MISSING = "target_missing"
    ALREADY_RESOLVED = "already_resolved"


class ApprovalResult(BaseModel):
    request_id: str
    outcome: ApprovalOutcome
    created_id: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.outcome == ApprovalOutcome.APPLIED


def _format_amount(amount: Decimal) -> str:
    if amount == amount.to_integral_value():
        return f"{amount:.0f}"
    return f"{amount:.2f}"


def describe_payload(payload: RequestPayload, currency: str = "PKR") -> str:
    """Human-readable one-liner shown in the approval inbox."""
    if isinstance(payload, CreateEventPayload):
        return f'Create Event: "{payload.name}"'
    if isinstance(payload, DeleteEventPayload):
        return f'Delete Event: "{payload.event_name or payload.event_id}"'
    if isinstance(payload, AddTransactionPayload):
        t = payload.transaction
        return (
            f'Add Transaction: "{t.name}" ({currency} {_format_amount(t.amount)}) '
            f'to "{payload.event_name}"'
        )
    if isinstance(payload, UpdateTransactionPayload):
        return f'Update Transaction: "{payload.transaction.name}" in "{payload.event_name}"'
    return (
        f'Delete Transaction: "{payload.transaction_name or payload.transaction_id}" '
        f'from "{payload.event_name}"'
    )


class ApprovalCoordinator:
    """
    Submits, edits and resolves pending requests.

    All collaborators are injected; nothing here is a singleton.
    """

    def __init__(
        self,
        event_store: EventStoreInterface,
        request_queue: RequestQueueInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[RequestValidator] = None,
    ):
        self._store = event_store
        self._queue = request_queue
        self._audit = audit_logger or AuditLogger()
        self._validator = validator or RequestValidator(event_store)
        self._currency = get_settings().app.currency

    async def _authorize(self, actor: Actor, check, *args) -> None:
        try:
            check(actor, *args)
        except PermissionDeniedError as e:
            await self._audit.log_permission_denied(
                actor.username, actor.role.value, e.operation
            )
            raise

    async def _validated_payload(
        self,
        actor: Actor,
        kind: Union[RequestKind, str],
        raw: Any,
    ) -> RequestPayload:
        result = await self._validator.validate(kind, raw)
        if not result.is_valid:
            await self._audit.log_validation_failed(
                actor.username,
                [issue.model_dump() for issue in result.issues],
            )
            raise InvalidPayloadError(result)
        return result.payload

    # =========================================================================
    # Proposer operations
    # =========================================================================

    async def submit(
        self,
        actor: Actor,
        payload: Union[RequestPayload, dict],
        description: Optional[str] = None,
    ) -> PendingRequest:
        """
        Queue a new request.

        The payload is validated first; an invalid payload raises
        InvalidPayloadError and nothing is written.
        """
        await self._authorize(actor, ensure_can_submit)

        kind = payload.get("kind", "") if isinstance(payload, dict) else payload.kind
        data = await self._validated_payload(actor, kind, payload)

        request = PendingRequest(
            type=RequestKind(data.kind),
            data=data,
            description=description or describe_payload(data, self._currency),
            requested_by=actor.username,
        )
        await self._queue.add(request)
        await self._audit.log_request_submitted(request)

        logger.info(
            "request_submitted",
            request_id=request.id,
            request_type=request.type.value,
            requested_by=actor.username,
        )
        return request

    async def edit_pending(
        self,
        actor: Actor,
        request_id: str,
        new_payload: Union[RequestPayload, dict],
        new_description: Optional[str] = None,
    ) -> PendingRequest:
        """
        Replace the payload of one's own pending request in place.

        The id, kind and requester never change. The timestamp moves to
        now and the request is marked unread again.

        Raises:
            NotFoundError: If the request has already been resolved
            InvalidPayloadError: If the payload is invalid or of another kind
        """
        request = await self._queue.get(request_id)
        if request is None:
            raise NotFoundError(f"Request not found: {request_id}")

        await self._authorize(actor, ensure_owns_request, request, "edit this request")

        data = await self._validated_payload(actor, request.type, new_payload)

        updated = request.model_copy(update={
            "data": data,
            "description": new_description or describe_payload(data, self._currency),
            "timestamp": utc_now(),
            "is_read": False,
        })
        if not await self._queue.replace(updated):
            raise NotFoundError(f"Request not found: {request_id}")

        await self._audit.log_request_edited(updated)
        return updated

    async def cancel(self, actor: Actor, request_id: str) -> bool:
        """
        Withdraw a pending request without effect.

        Returns False when the request was already resolved.
        """
        request = await self._queue.get(request_id)
        if request is None:
            return False

        await self._authorize(actor, ensure_can_cancel, request)

        deleted = await self._queue.delete(request_id)
        if deleted:
            await self._audit.log_request_cancelled(request_id, actor.username)
        return deleted

    # =========================================================================
    # Operator operations
    # =========================================================================

    async def reject(self, actor: Actor, request_id: str) -> bool:
        """
        Discard a request without effect.

        Returns False when the request was already resolved.
        """
        await self._authorize(actor, ensure_can_resolve)

        deleted = await self._queue.delete(request_id)
        if deleted:
            await self._audit.log_request_rejected(request_id, actor.username)
        return deleted

    async def approve(
        self,
        actor: Actor,
        request: Union[PendingRequest, str],
    ) -> ApprovalResult:
        """
        Apply a request's effect to the committed store, then remove it.

        Given a PendingRequest, the payload as held by the caller is
        applied even if the stored copy was edited since it was read.

        Raises:
            StorageError: The store could not apply the effect, or the
                queue could not drop the request afterwards; either way
                the request is still queued and approval can be retried
        """
        await self._authorize(actor, ensure_can_resolve)

        if isinstance(request, str):
            request_id = request
            request = await self._queue.get(request_id)
        else:
            request_id = request.id
            if await self._queue.get(request_id) is None:
                request = None

        if request is None:
            logger.info("approve_skipped", request_id=request_id, reason="already_resolved")
            return ApprovalResult(
                request_id=request_id,
                outcome=ApprovalOutcome.ALREADY_RESOLVED,
            )

        try:
            outcome, created_id = await self._apply(request.data)
        except StorageError as e:
            await self._audit.log_store_error("approve", str(e), request_id)
            raise

        try:
            await self._queue.delete(request_id)
        except StorageError as e:
            # Effect is in the store; the request stays queued for another approve
            await self._audit.log_store_error("approve_dequeue", str(e), request_id)
            raise

        await self._audit.log_request_approved(request, actor.username, outcome.value)

        if outcome == ApprovalOutcome.TARGET_MISSING:
            logger.warning(
                "request_voided",
                request_id=request_id,
                request_type=request.type.value,
                event_id=request.event_id,
            )

        return ApprovalResult(
            request_id=request_id,
            outcome=outcome,
            created_id=created_id,
        )

    async def _apply(
        self,
        payload: RequestPayload,
    ) -> tuple[ApprovalOutcome, Optional[str]]:
        """Dispatch one payload to its single-record store operation."""
        try:
            if isinstance(payload, CreateEventPayload):
                event = await self._store.create_event(payload.name)
                return ApprovalOutcome.APPLIED, event.id

            if isinstance(payload, DeleteEventPayload):
                ok = await self._store.set_deleted(payload.event_id, True)

            elif isinstance(payload, AddTransactionPayload):
                transaction = await self._store.append_transaction(
                    payload.event_id, payload.transaction
                )
                return ApprovalOutcome.APPLIED, transaction.id

            elif isinstance(payload, UpdateTransactionPayload):
                ok = await self._store.replace_transaction(
                    payload.event_id,
                    payload.transaction.id,
                    payload.transaction,
                )

            else:
                ok = await self._store.remove_transaction(
                    payload.event_id, payload.transaction_id
                )
        except NotFoundError:
            return ApprovalOutcome.TARGET_MISSING, None

        return (ApprovalOutcome.APPLIED if ok else ApprovalOutcome.TARGET_MISSING), None
