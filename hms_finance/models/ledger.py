"""
Committed Ledger Models

These models describe the durable ground truth: events and the
transactions recorded against them. Only approved state lives here.

DESIGN DECISION: A transaction is always written as a whole record.
Updates replace every field except the id, so a retried write
leaves the same result as the first one.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def new_id() -> str:
    """Mint a globally unique opaque identifier."""
    return str(uuid4())


class TransactionType(str, Enum):
    """
    Kinds of money movement tracked per event.

    Loans are tracked but never count towards the balance.
    """
    COLLECTION = "collection"
    EXPENSE = "expense"
    LOAN = "loan"


class TransactionFields(BaseModel):
    """
    Every transaction field except the identifier.

    This is the shape of a proposed addition: the store mints the id
    when the record is appended.
    """
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Display name"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Monetary amount (non-negative)"
    )
    type: TransactionType = Field(
        ...,
        description="collection, expense or loan"
    )
    date: dt.date = Field(
        ...,
        description="Calendar date of the transaction"
    )
    description: Optional[str] = Field(
        default=None,
        max_length=1000,
    )
    image: Optional[str] = Field(
        default=None,
        description="Opaque URL of a stored receipt image"
    )

    def field_values(self) -> dict:
        """Field values without the id, suitable for building a new record."""
        return self.model_dump(exclude={"id"})


class Transaction(TransactionFields):
    """A committed transaction. Owned exclusively by its event."""

    id: str = Field(
        ...,
        min_length=1,
        description="Identifier, unique within the owning event"
    )

    @classmethod
    def from_fields(cls, transaction_id: str, fields: TransactionFields) -> "Transaction":
        return cls(id=transaction_id, **fields.field_values())


class Event(BaseModel):
    """
    A named group of transactions.

    Soft-deleted events are hidden from normal listings but stay
    addressable by id until they are purged.
    """
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    id: str = Field(
        default_factory=new_id,
        min_length=1,
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
    )
    is_deleted: bool = Field(
        default=False,
        alias="isDeleted",
        description="Soft delete flag"
    )
    transactions: list[Transaction] = Field(default_factory=list)

    def find_transaction(self, transaction_id: str) -> Optional[Transaction]:
        for transaction in self.transactions:
            if transaction.id == transaction_id:
                return transaction
        return None

    def receipt_images(self) -> list[str]:
        """URLs of every receipt image referenced by this event."""
        return [t.image for t in self.transactions if t.image]
