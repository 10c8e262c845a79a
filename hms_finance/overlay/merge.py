"""
Overlay Merge Engine

Blends committed data with pending proposals so every role sees the
same "current + proposed" view.

CRITICAL: Merging is a pure projection. Inputs are copied before they
are decorated, so the committed store and the request queue are never
touched and the functions are safe to call repeatedly and concurrently.

ORDERING: requests are applied in timestamp order (stable for equal
timestamps). When two requests address the same transaction the one
applied last wins the displayed overlay.
"""

from typing import Iterable, Optional

from hms_finance.models.ledger import Event, Transaction
from hms_finance.models.overlay import (
    DashboardView,
    DisplayEvent,
    DisplayTransaction,
    MergedEventView,
    PendingAction,
)
from hms_finance.models.requests import (
    AddTransactionPayload,
    CreateEventPayload,
    DeleteEventPayload,
    DeleteTransactionPayload,
    PendingRequest,
    UpdateTransactionPayload,
)


def _in_submission_order(requests: Iterable[PendingRequest]) -> list[PendingRequest]:
    return sorted(requests, key=lambda r: r.timestamp)


def _find(rows: list[DisplayTransaction], transaction_id: str) -> Optional[DisplayTransaction]:
    for row in rows:
        if row.id == transaction_id and row.pending_action != PendingAction.ADD:
            return row
    return None


def merge_for_event(
    event: Event,
    requests: Iterable[PendingRequest],
) -> MergedEventView:
    """
    Fold the pending requests that target ``event`` into its transactions.

    Args:
        event: Committed event
        requests: Any set of pending requests; those for other events are ignored

    Returns:
        MergedEventView with committed rows first (in committed order),
        synthetic rows for pending additions after them, and orphaned
        update/delete requests listed separately
    """
    relevant = _in_submission_order(
        r.model_copy(deep=True) for r in requests if r.event_id == event.id
    )

    rows = [DisplayTransaction.committed(t) for t in event.transactions]
    orphans: list[PendingRequest] = []

    for request in relevant:
        payload = request.data

        if isinstance(payload, AddTransactionPayload):
            rows.append(
                DisplayTransaction(
                    id=request.id,
                    **payload.transaction.field_values(),
                    pending_action=PendingAction.ADD,
                    request=request,
                )
            )

        elif isinstance(payload, UpdateTransactionPayload):
            row = _find(rows, payload.transaction.id)
            if row is None:
                orphans.append(request)
                continue
            row.pending_action = PendingAction.UPDATE
            row.pending_data = payload.transaction
            row.request = request

        elif isinstance(payload, DeleteTransactionPayload):
            row = _find(rows, payload.transaction_id)
            if row is None:
                orphans.append(request)
                continue
            row.pending_action = PendingAction.DELETE
            row.pending_data = None
            row.request = request

        # delete_event requests target the event itself; the dashboard shows them

    return MergedEventView(
        event=event.model_copy(deep=True),
        transactions=rows,
        orphans=orphans,
    )


def merge_dashboard(
    events: Iterable[Event],
    requests: Iterable[PendingRequest],
) -> DashboardView:
    """
    Fold event-level proposals into a list of events.

    Pending deletions flag their event; pending creations appear as
    synthetic events keyed by request id, after the committed ones.
    Transaction-level requests are ignored here.
    """
    cards = [
        DisplayEvent(
            id=e.id,
            name=e.name,
            is_deleted=e.is_deleted,
            transaction_count=len(e.transactions),
        )
        for e in events
    ]
    by_id = {card.id: card for card in cards}
    orphans: list[PendingRequest] = []

    for request in _in_submission_order(r.model_copy(deep=True) for r in requests):
        payload = request.data

        if isinstance(payload, CreateEventPayload):
            cards.append(
                DisplayEvent(
                    id=request.id,
                    name=payload.name,
                    pending_action=PendingAction.ADD,
                    request=request,
                )
            )

        elif isinstance(payload, DeleteEventPayload):
            card = by_id.get(payload.event_id)
            if card is None:
                orphans.append(request)
                continue
            card.pending_action = PendingAction.DELETE
            card.request = request

    return DashboardView(events=cards, orphans=orphans)


def sort_for_display(rows: list[DisplayTransaction]) -> list[DisplayTransaction]:
    """
    Presentation order: date descending, most recently added first on ties.

    Merge output position stands in for "recently added": synthetic rows
    follow committed ones and committed rows keep insertion order.
    """
    positioned = list(enumerate(rows))
    positioned.sort(key=lambda pair: (pair[1].date, pair[0]), reverse=True)
    return [row for _, row in positioned]


def committed_rows(rows: Iterable[DisplayTransaction]) -> list[Transaction]:
    """
    Rows that exist in the committed store, as plain transactions.

    Pending additions are dropped; rows with a pending update or delete
    keep their committed values.
    """
    return [
        Transaction(**row.model_dump(include=set(Transaction.model_fields)))
        for row in rows
        if row.pending_action != PendingAction.ADD
    ]
