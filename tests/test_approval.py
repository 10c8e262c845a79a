"""
Tests for the approval coordinator.

Covers the request lifecycle (submit, edit, cancel, reject, approve),
the effect-then-delete ordering under failure, and the two documented
races that are tolerated rather than prevented.
"""

import asyncio
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from hms_finance.access import PermissionDeniedError
from hms_finance.approval import ApprovalCoordinator, ApprovalOutcome, describe_payload
from hms_finance.audit import AuditLogger
from hms_finance.models import (
    AddTransactionPayload,
    CreateEventPayload,
    DeleteEventPayload,
    DeleteTransactionPayload,
    RequestKind,
    Transaction,
    TransactionType,
    UpdateTransactionPayload,
)
from hms_finance.services.storage import NotFoundError, StoreUnavailableError
from hms_finance.validation import InvalidPayloadError

from tests.factories import BASE_TIME, add_request, make_fields, make_request


async def _seed(event_store, image=None):
    event = await event_store.create_event("Gala")
    await event_store.append_transaction(event.id, make_fields(image=image))
    return await event_store.get_event(event.id)


async def _snapshot(event_store) -> list[dict]:
    events = await event_store.list_events(include_deleted=True)
    return [e.model_dump() for e in events]


def _add_payload(event, **field_overrides) -> AddTransactionPayload:
    return AddTransactionPayload(
        event_id=event.id,
        event_name=event.name,
        transaction=make_fields(**field_overrides),
    )


def _update_payload(event, amount: str) -> UpdateTransactionPayload:
    target = event.transactions[0]
    return UpdateTransactionPayload(
        event_id=event.id,
        event_name=event.name,
        transaction=target.model_copy(update={"amount": Decimal(amount)}),
    )


class TestSubmit:
    """Tests for queueing new requests."""

    @pytest.mark.asyncio
    async def test_submit_queues_request(self, coordinator, event_store, request_queue, assistant):
        event = await _seed(event_store)

        request = await coordinator.submit(assistant, _add_payload(event))

        queued = await request_queue.list_requests()
        assert [r.id for r in queued] == [request.id]
        assert request.type == RequestKind.ADD_TRANSACTION
        assert request.requested_by == "asst"
        assert request.is_read is False
        assert request.description == 'Add Transaction: "Tickets" (PKR 500) to "Gala"'

    @pytest.mark.asyncio
    async def test_submit_accepts_plain_dict(self, coordinator, event_store, assistant):
        event = await _seed(event_store)

        request = await coordinator.submit(
            assistant,
            {
                "kind": "add_transaction",
                "eventId": event.id,
                "eventName": event.name,
                "transaction": {
                    "name": "Raffle",
                    "amount": "75.5",
                    "type": "collection",
                    "date": "2024-03-05",
                },
            },
        )

        assert request.data.transaction.amount == Decimal("75.5")
        assert request.data.transaction.date == date(2024, 3, 5)

    @pytest.mark.asyncio
    async def test_explicit_description_kept(self, coordinator, assistant):
        request = await coordinator.submit(
            assistant, CreateEventPayload(name="Picnic"), description="Please add"
        )
        assert request.description == "Please add"

    @pytest.mark.asyncio
    async def test_invalid_amount_queues_nothing(self, coordinator, event_store, request_queue, assistant):
        event = await _seed(event_store)

        with pytest.raises(InvalidPayloadError) as exc_info:
            await coordinator.submit(
                assistant,
                {
                    "kind": "add_transaction",
                    "eventId": event.id,
                    "transaction": {
                        "name": "Raffle",
                        "amount": "lots",
                        "type": "collection",
                        "date": "2024-03-05",
                    },
                },
            )

        assert exc_info.value.result.schema_valid is False
        assert await request_queue.list_requests() == []

    @pytest.mark.asyncio
    async def test_unknown_kind_rejected(self, coordinator, request_queue, assistant):
        with pytest.raises(InvalidPayloadError):
            await coordinator.submit(assistant, {"kind": "rename_event", "name": "x"})
        assert await request_queue.list_requests() == []

    @pytest.mark.asyncio
    async def test_missing_event_rejected(self, coordinator, request_queue, assistant):
        payload = AddTransactionPayload(
            event_id="nope", event_name="Ghost", transaction=make_fields()
        )
        with pytest.raises(InvalidPayloadError) as exc_info:
            await coordinator.submit(assistant, payload)

        assert exc_info.value.issues[0].issue_type == "not_found"
        assert await request_queue.list_requests() == []

    @pytest.mark.asyncio
    async def test_queue_failure_leaves_nothing_queued(self, coordinator, event_store, request_queue, assistant):
        event = await _seed(event_store)
        request_queue.add = AsyncMock(side_effect=StoreUnavailableError("down"))

        with pytest.raises(StoreUnavailableError):
            await coordinator.submit(assistant, _add_payload(event))

        del request_queue.add
        assert await request_queue.list_requests() == []
        assert len((await event_store.get_event(event.id)).transactions) == 1

    @pytest.mark.asyncio
    async def test_viewer_cannot_submit(self, coordinator, request_queue, viewer):
        with pytest.raises(PermissionDeniedError):
            await coordinator.submit(viewer, CreateEventPayload(name="Picnic"))
        assert await request_queue.list_requests() == []

    @pytest.mark.asyncio
    async def test_concurrent_submits_lose_nothing(self, coordinator, request_queue, assistant):
        await asyncio.gather(*[
            coordinator.submit(assistant, CreateEventPayload(name=f"Event {i}"))
            for i in range(20)
        ])
        assert len(await request_queue.list_requests()) == 20


class TestDescribePayload:
    """Tests for generated request descriptions."""

    def test_descriptions(self):
        assert describe_payload(CreateEventPayload(name="Gala")) == 'Create Event: "Gala"'
        assert (
            describe_payload(DeleteEventPayload(event_id="e1", event_name="Gala"))
            == 'Delete Event: "Gala"'
        )
        assert (
            describe_payload(
                DeleteTransactionPayload(
                    event_id="e1",
                    event_name="Gala",
                    transaction_id="t1",
                    transaction_name="Tickets",
                )
            )
            == 'Delete Transaction: "Tickets" from "Gala"'
        )

    def test_fractional_amount(self):
        payload = AddTransactionPayload(
            event_id="e1",
            event_name="Gala",
            transaction=make_fields(amount="12.5"),
        )
        assert "(USD 12.50)" in describe_payload(payload, currency="USD")


class TestApprove:
    """Tests for applying approved requests."""

    @pytest.mark.asyncio
    async def test_add_transaction(self, coordinator, event_store, request_queue, assistant, admin):
        event = await _seed(event_store)
        request = await coordinator.submit(
            assistant,
            _add_payload(event, name="Tickets", amount="500", on=date(2024, 5, 1)),
        )

        result = await coordinator.approve(admin, request)

        after = await event_store.get_event(event.id)
        assert len(after.transactions) == 2
        added = after.transactions[-1]
        assert added.id == result.created_id
        assert added.id != request.id
        assert added.name == "Tickets"
        assert added.amount == Decimal("500")
        assert added.type == TransactionType.COLLECTION
        assert added.date == date(2024, 5, 1)
        assert result.outcome == ApprovalOutcome.APPLIED
        assert await request_queue.get(request.id) is None

    @pytest.mark.asyncio
    async def test_update_transaction_replaces_fields(self, coordinator, event_store, request_queue, assistant, admin):
        event = await _seed(event_store)
        payload = _update_payload(event, "750")
        request = await coordinator.submit(assistant, payload)

        result = await coordinator.approve(admin, request)

        after = await event_store.get_event(event.id)
        assert after.transactions[0] == payload.transaction
        assert result.applied

    @pytest.mark.asyncio
    async def test_approving_twice_is_noop(self, coordinator, event_store, assistant, admin):
        event = await _seed(event_store)
        request = await coordinator.submit(assistant, _update_payload(event, "750"))

        await coordinator.approve(admin, request)
        before_retry = await _snapshot(event_store)
        retry = await coordinator.approve(admin, request)

        assert retry.outcome == ApprovalOutcome.ALREADY_RESOLVED
        assert await _snapshot(event_store) == before_retry

    @pytest.mark.asyncio
    async def test_approve_by_id(self, coordinator, event_store, request_queue, assistant, admin):
        request = await coordinator.submit(assistant, CreateEventPayload(name="Picnic"))

        result = await coordinator.approve(admin, request.id)

        created = await event_store.get_event(result.created_id)
        assert created.name == "Picnic"
        assert await request_queue.list_requests() == []

    @pytest.mark.asyncio
    async def test_approve_unknown_id(self, coordinator, admin):
        result = await coordinator.approve(admin, "missing")
        assert result.outcome == ApprovalOutcome.ALREADY_RESOLVED

    @pytest.mark.asyncio
    async def test_delete_transaction_releases_receipt(self, coordinator, event_store, blob_store, assistant, admin):
        event = await _seed(event_store, image="https://img/receipt.jpg")
        target = event.transactions[0]
        request = await coordinator.submit(
            assistant,
            DeleteTransactionPayload(
                event_id=event.id,
                event_name=event.name,
                transaction_id=target.id,
                transaction_name=target.name,
            ),
        )

        await coordinator.approve(admin, request)

        assert (await event_store.get_event(event.id)).transactions == []
        assert blob_store.deleted == ["https://img/receipt.jpg"]

    @pytest.mark.asyncio
    async def test_delete_event_then_purge(self, coordinator, event_store, blob_store, assistant, admin):
        event = await _seed(event_store, image="https://img/receipt.jpg")
        request = await coordinator.submit(
            assistant, DeleteEventPayload(event_id=event.id, event_name=event.name)
        )

        await coordinator.approve(admin, request)

        assert event.id not in [e.id for e in await event_store.list_events(False)]
        assert event.id in [e.id for e in await event_store.list_events(True)]
        assert (await event_store.get_event(event.id)).is_deleted is True

        assert await event_store.purge_event(event.id) is True
        assert await event_store.list_events(True) == []
        assert blob_store.deleted == ["https://img/receipt.jpg"]

    @pytest.mark.asyncio
    async def test_vanished_transaction_voids_request(self, coordinator, event_store, request_queue, assistant, admin):
        event = await _seed(event_store)
        request = await coordinator.submit(assistant, _update_payload(event, "750"))
        await event_store.remove_transaction(event.id, event.transactions[0].id)

        result = await coordinator.approve(admin, request)

        assert result.outcome == ApprovalOutcome.TARGET_MISSING
        assert await request_queue.get(request.id) is None
        assert (await event_store.get_event(event.id)).transactions == []

    @pytest.mark.asyncio
    async def test_vanished_event_voids_request(self, coordinator, event_store, request_queue, assistant, admin):
        event = await _seed(event_store)
        request = await coordinator.submit(assistant, _add_payload(event))
        await event_store.purge_event(event.id)

        result = await coordinator.approve(admin, request)

        assert result.outcome == ApprovalOutcome.TARGET_MISSING
        assert await request_queue.list_requests() == []

    @pytest.mark.asyncio
    async def test_store_failure_keeps_request(self, coordinator, event_store, request_queue, assistant, admin):
        event = await _seed(event_store)
        request = await coordinator.submit(assistant, _add_payload(event))
        event_store.append_transaction = AsyncMock(side_effect=StoreUnavailableError("down"))

        with pytest.raises(StoreUnavailableError):
            await coordinator.approve(admin, request)

        assert await request_queue.get(request.id) is not None

    @pytest.mark.asyncio
    async def test_dequeue_failure_keeps_request_and_retry_converges(self, coordinator, event_store, request_queue, assistant, admin):
        event = await _seed(event_store)
        payload = _update_payload(event, "750")
        request = await coordinator.submit(assistant, payload)
        request_queue.delete = AsyncMock(side_effect=StoreUnavailableError("down"))

        with pytest.raises(StoreUnavailableError):
            await coordinator.approve(admin, request.id)

        assert await request_queue.get(request.id) is not None
        assert (await event_store.get_event(event.id)).transactions == [payload.transaction]

        del request_queue.delete
        result = await coordinator.approve(admin, request.id)

        assert result.outcome == ApprovalOutcome.APPLIED
        assert await request_queue.list_requests() == []
        assert (await event_store.get_event(event.id)).transactions == [payload.transaction]

    @pytest.mark.asyncio
    async def test_dequeue_failure_is_audited(self, event_store, request_queue, assistant, admin):
        audit = AsyncMock(spec=AuditLogger)
        coordinator = ApprovalCoordinator(event_store, request_queue, audit_logger=audit)
        request = await coordinator.submit(assistant, CreateEventPayload(name="Picnic"))
        request_queue.delete = AsyncMock(side_effect=StoreUnavailableError("down"))

        with pytest.raises(StoreUnavailableError):
            await coordinator.approve(admin, request)

        audit.log_store_error.assert_awaited_once()
        audit.log_request_approved.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_assistant_cannot_approve(self, coordinator, event_store, request_queue, assistant):
        request = await coordinator.submit(assistant, CreateEventPayload(name="Picnic"))

        with pytest.raises(PermissionDeniedError):
            await coordinator.approve(assistant, request)

        assert await request_queue.get(request.id) is not None
        assert await event_store.list_events() == []

    @pytest.mark.asyncio
    async def test_outcome_is_audited(self, event_store, request_queue, assistant, admin):
        audit = AsyncMock(spec=AuditLogger)
        coordinator = ApprovalCoordinator(event_store, request_queue, audit_logger=audit)
        request = await coordinator.submit(assistant, CreateEventPayload(name="Picnic"))

        await coordinator.approve(admin, request)

        audit.log_request_submitted.assert_awaited_once()
        audit.log_request_approved.assert_awaited_once()
        args = audit.log_request_approved.await_args.args
        assert args[1] == "admin"
        assert args[2] == "applied"


class TestRejectAndCancel:
    """Tests for resolving requests without effect."""

    @pytest.mark.asyncio
    async def test_reject_leaves_store_unchanged(self, coordinator, event_store, request_queue, assistant, admin):
        event = await _seed(event_store)
        request = await coordinator.submit(assistant, _update_payload(event, "750"))
        before = await _snapshot(event_store)

        assert await coordinator.reject(admin, request.id) is True

        assert await request_queue.list_requests() == []
        assert await _snapshot(event_store) == before

    @pytest.mark.asyncio
    async def test_reject_missing_is_noop(self, coordinator, admin):
        assert await coordinator.reject(admin, "missing") is False

    @pytest.mark.asyncio
    async def test_assistant_cannot_reject(self, coordinator, request_queue, assistant):
        request = await coordinator.submit(assistant, CreateEventPayload(name="Picnic"))
        with pytest.raises(PermissionDeniedError):
            await coordinator.reject(assistant, request.id)
        assert await request_queue.get(request.id) is not None

    @pytest.mark.asyncio
    async def test_owner_cancels(self, coordinator, event_store, request_queue, assistant):
        event = await _seed(event_store)
        request = await coordinator.submit(assistant, _add_payload(event))
        before = await _snapshot(event_store)

        assert await coordinator.cancel(assistant, request.id) is True

        assert await request_queue.list_requests() == []
        assert await _snapshot(event_store) == before

    @pytest.mark.asyncio
    async def test_other_assistant_cannot_cancel(self, coordinator, request_queue, assistant, other_assistant):
        request = await coordinator.submit(assistant, CreateEventPayload(name="Picnic"))
        with pytest.raises(PermissionDeniedError):
            await coordinator.cancel(other_assistant, request.id)
        assert await request_queue.get(request.id) is not None

    @pytest.mark.asyncio
    async def test_admin_may_cancel(self, coordinator, assistant, admin):
        request = await coordinator.submit(assistant, CreateEventPayload(name="Picnic"))
        assert await coordinator.cancel(admin, request.id) is True

    @pytest.mark.asyncio
    async def test_cancel_resolved_request_is_noop(self, coordinator, assistant, admin):
        request = await coordinator.submit(assistant, CreateEventPayload(name="Picnic"))
        await coordinator.approve(admin, request)
        assert await coordinator.cancel(assistant, request.id) is False


class TestEditPending:
    """Tests for a proposer amending its own request."""

    @pytest.mark.asyncio
    async def test_edit_replaces_payload(self, coordinator, event_store, request_queue, assistant):
        event = await _seed(event_store)
        original = add_request(event, make_fields(name="Raffle"), minutes=0)
        original = original.model_copy(update={"is_read": True})
        await request_queue.add(original)

        edited = await coordinator.edit_pending(
            assistant, original.id, _add_payload(event, name="Raffle", amount="80")
        )

        stored = await request_queue.get(original.id)
        assert stored == edited
        assert stored.id == original.id
        assert stored.type == RequestKind.ADD_TRANSACTION
        assert stored.requested_by == "asst"
        assert stored.data.transaction.amount == Decimal("80")
        assert stored.timestamp > BASE_TIME
        assert stored.is_read is False
        assert stored.description == 'Add Transaction: "Raffle" (PKR 80) to "Gala"'
        assert len(await request_queue.list_requests()) == 1

    @pytest.mark.asyncio
    async def test_edit_cannot_change_kind(self, coordinator, event_store, request_queue, assistant):
        event = await _seed(event_store)
        request = await coordinator.submit(assistant, _add_payload(event))

        with pytest.raises(InvalidPayloadError):
            await coordinator.edit_pending(
                assistant,
                request.id,
                DeleteEventPayload(event_id=event.id, event_name=event.name),
            )

        assert await request_queue.get(request.id) == request

    @pytest.mark.asyncio
    async def test_only_requester_may_edit(self, coordinator, event_store, assistant, other_assistant, admin):
        event = await _seed(event_store)
        request = await coordinator.submit(assistant, _add_payload(event))

        for actor in (other_assistant, admin):
            with pytest.raises(PermissionDeniedError):
                await coordinator.edit_pending(actor, request.id, _add_payload(event, amount="1"))

    @pytest.mark.asyncio
    async def test_edit_missing_request(self, coordinator, event_store, assistant):
        event = await _seed(event_store)
        with pytest.raises(NotFoundError):
            await coordinator.edit_pending(assistant, "missing", _add_payload(event))


class TestDocumentedRaces:
    """Races inherent to having no per-record locking."""

    @pytest.mark.asyncio
    async def test_two_approvals_on_same_transaction_later_wins(self, coordinator, event_store, assistant, other_assistant, admin):
        event = await _seed(event_store)
        first = await coordinator.submit(assistant, _update_payload(event, "600"))
        second = await coordinator.submit(other_assistant, _update_payload(event, "900"))

        await coordinator.approve(admin, second)
        await coordinator.approve(admin, first)

        after = await event_store.get_event(event.id)
        assert after.transactions[0].amount == Decimal("600")

    @pytest.mark.asyncio
    async def test_approve_uses_payload_read_at_call_time(self, coordinator, event_store, request_queue, assistant, admin):
        event = await _seed(event_store)
        request = await coordinator.submit(assistant, _update_payload(event, "600"))
        stale = await request_queue.get(request.id)

        await coordinator.edit_pending(assistant, request.id, _update_payload(event, "900"))
        await coordinator.approve(admin, stale)

        after = await event_store.get_event(event.id)
        assert after.transactions[0].amount == Decimal("600")
        assert await request_queue.get(request.id) is None

    @pytest.mark.asyncio
    async def test_edit_after_approval_finds_nothing(self, coordinator, event_store, assistant, admin):
        event = await _seed(event_store)
        request = await coordinator.submit(assistant, _update_payload(event, "600"))

        await coordinator.approve(admin, request)

        with pytest.raises(NotFoundError):
            await coordinator.edit_pending(assistant, request.id, _update_payload(event, "900"))


class TestOrphanedRequests:
    """Requests whose target vanished before they were resolved."""

    @pytest.mark.asyncio
    async def test_orphaned_delete_is_voided(self, coordinator, event_store, request_queue, admin):
        event = await _seed(event_store)
        orphan = make_request(
            DeleteTransactionPayload(
                event_id=event.id,
                event_name=event.name,
                transaction_id="never-existed",
            )
        )
        await request_queue.add(orphan)

        result = await coordinator.approve(admin, orphan.id)

        assert result.outcome == ApprovalOutcome.TARGET_MISSING
        assert await request_queue.list_requests() == []
        assert len((await event_store.get_event(event.id)).transactions) == 1

    @pytest.mark.asyncio
    async def test_replace_keeps_transaction_id(self, coordinator, event_store, assistant, admin):
        event = await _seed(event_store)
        target = event.transactions[0]
        proposed = Transaction.from_fields(target.id, make_fields(name="Renamed"))
        request = await coordinator.submit(
            assistant,
            UpdateTransactionPayload(event_id=event.id, event_name=event.name, transaction=proposed),
        )

        await coordinator.approve(admin, request)

        after = await event_store.get_event(event.id)
        assert [t.id for t in after.transactions] == [target.id]
        assert after.transactions[0].name == "Renamed"
