"""
Overlay View Models

These are read-only projections: committed records decorated with the
pending proposal that affects them. They are never persisted.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from hms_finance.models.ledger import Event, Transaction, TransactionFields
from hms_finance.models.requests import PendingRequest


class PendingAction(str, Enum):
    """What a pending request would do to the row it is attached to."""
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


class DisplayTransaction(Transaction):
    """
    A transaction row as shown to any role.

    For committed rows the displayed fields are the committed values,
    even when an update is pending; the proposed record sits in
    ``pending_data`` so old and new can be rendered side by side.
    Synthetic rows for pending additions use the request id as their id.
    """

    pending_action: Optional[PendingAction] = None
    pending_data: Optional[Transaction] = None
    request: Optional[PendingRequest] = None

    @property
    def is_pending(self) -> bool:
        return self.pending_action is not None

    @property
    def request_id(self) -> Optional[str]:
        return self.request.id if self.request else None

    @property
    def effective(self) -> TransactionFields:
        """The record this row will hold once its proposal is approved."""
        if self.pending_action == PendingAction.UPDATE and self.pending_data is not None:
            return self.pending_data
        return Transaction(**self.model_dump(include=set(Transaction.model_fields)))

    @classmethod
    def committed(cls, transaction: Transaction) -> "DisplayTransaction":
        return cls(**transaction.model_dump())


class MergedEventView(BaseModel):
    """
    Committed event plus every pending request targeting it.

    ``orphans`` holds update/delete requests whose target transaction
    no longer exists; they have no row to attach to.
    """

    event: Event
    transactions: list[DisplayTransaction] = Field(default_factory=list)
    orphans: list[PendingRequest] = Field(default_factory=list)

    @property
    def pending_count(self) -> int:
        return sum(1 for t in self.transactions if t.is_pending) + len(self.orphans)


class DisplayEvent(BaseModel):
    """An event card on the dashboard, possibly a pending creation."""

    id: str
    name: str
    is_deleted: bool = False
    transaction_count: int = 0
    pending_action: Optional[PendingAction] = None
    request: Optional[PendingRequest] = None

    @property
    def is_pending(self) -> bool:
        return self.pending_action is not None


class DashboardView(BaseModel):
    """Every visible event with event-level proposals folded in."""

    events: list[DisplayEvent] = Field(default_factory=list)
    orphans: list[PendingRequest] = Field(default_factory=list)
