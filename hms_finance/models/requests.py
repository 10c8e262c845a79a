"""
Pending Change Request Models

A PendingRequest is a proposal from a limited-trust user that has not
been applied yet. Its payload is a tagged union keyed by ``kind``:
one model per request kind, so no code ever has to sniff the shape
of an untyped dict.

CRITICAL: A payload fully determines the post-approval state of its
target. Update and delete payloads carry denormalized names so they
still render after the underlying record has changed or vanished.

Lifecycle:
    Pending --(self edit)--> Pending' --(approve | reject | cancel)--> deleted

There is no retained "approved" or "rejected" state.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from hms_finance.models.ledger import Transaction, TransactionFields, new_id


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RequestKind(str, Enum):
    """Every change a limited-trust user may propose."""
    CREATE_EVENT = "create_event"
    DELETE_EVENT = "delete_event"
    ADD_TRANSACTION = "add_transaction"
    UPDATE_TRANSACTION = "update_transaction"
    DELETE_TRANSACTION = "delete_transaction"


class _Payload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)


class CreateEventPayload(_Payload):
    kind: Literal["create_event"] = "create_event"
    name: str = Field(..., min_length=1, max_length=200)


class _EventScopedPayload(_Payload):
    """Payloads that target an existing event."""

    event_id: str = Field(..., min_length=1, alias="eventId")
    event_name: str = Field(
        default="",
        alias="eventName",
        description="Denormalized for display"
    )


class DeleteEventPayload(_EventScopedPayload):
    kind: Literal["delete_event"] = "delete_event"


class AddTransactionPayload(_EventScopedPayload):
    kind: Literal["add_transaction"] = "add_transaction"
    transaction: TransactionFields


class UpdateTransactionPayload(_EventScopedPayload):
    kind: Literal["update_transaction"] = "update_transaction"
    transaction: Transaction = Field(
        ...,
        description="Full proposed record, including the target's existing id"
    )

    @property
    def transaction_id(self) -> str:
        return self.transaction.id


class DeleteTransactionPayload(_EventScopedPayload):
    kind: Literal["delete_transaction"] = "delete_transaction"
    transaction_id: str = Field(..., min_length=1, alias="transactionId")
    transaction_name: str = Field(default="", alias="transactionName")


RequestPayload = Annotated[
    Union[
        CreateEventPayload,
        DeleteEventPayload,
        AddTransactionPayload,
        UpdateTransactionPayload,
        DeleteTransactionPayload,
    ],
    Field(discriminator="kind"),
]


class PendingRequest(BaseModel):
    """
    A proposed change awaiting approval.

    The id doubles as the display id of the synthetic row shown for a
    pending addition.
    """
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    id: str = Field(default_factory=new_id, min_length=1)
    type: RequestKind
    data: RequestPayload
    description: str = Field(
        default="",
        max_length=500,
        description="Human-readable summary"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="Creation (or last edit) time, UTC"
    )
    requested_by: str = Field(..., min_length=1, alias="requestedBy")
    is_read: bool = Field(default=False, alias="isRead")

    @model_validator(mode="before")
    @classmethod
    def tag_untagged_payload(cls, values):
        """Stored payloads written without a ``kind`` take it from ``type``."""
        if isinstance(values, dict):
            data = values.get("data")
            kind = values.get("type")
            if isinstance(data, dict) and "kind" not in data and kind is not None:
                values = {**values, "data": {**data, "kind": getattr(kind, "value", kind)}}
        return values

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def check_kind_matches(self) -> "PendingRequest":
        if self.data.kind != self.type.value:
            raise ValueError(
                f"Payload kind '{self.data.kind}' does not match request type '{self.type.value}'"
            )
        return self

    @property
    def event_id(self) -> Optional[str]:
        """Event this request targets, None for event creation."""
        return getattr(self.data, "event_id", None)

    @property
    def target_transaction_id(self) -> Optional[str]:
        """Committed transaction an update or delete is anchored on."""
        if isinstance(self.data, UpdateTransactionPayload):
            return self.data.transaction.id
        if isinstance(self.data, DeleteTransactionPayload):
            return self.data.transaction_id
        return None

    def to_log_dict(self) -> dict:
        return {
            "request_id": self.id,
            "request_type": self.type.value,
            "event_id": self.event_id,
            "requested_by": self.requested_by,
            "timestamp": self.timestamp.isoformat(),
        }
