"""
In-Memory Storage Implementation

Process-local stores used for tests and for running without Google
Sheets credentials. Each instance is isolated, so tests can build as
many independent stores as they need.

Records are copied on the way in and on the way out: callers never hold
a reference into the store's own state.
"""

import asyncio
from typing import Optional

from hms_finance.models.ledger import Event, Transaction, TransactionFields, new_id
from hms_finance.models.requests import PendingRequest
from hms_finance.services.image import BlobStoreInterface
from hms_finance.services.storage.interface import (
    DuplicateError,
    EventStoreInterface,
    NotFoundError,
    RequestQueueInterface,
    release_receipts,
)


class InMemoryEventStore(EventStoreInterface):
    """Committed store held in a dict keyed by event id."""

    def __init__(self, blob_store: Optional[BlobStoreInterface] = None):
        self._events: dict[str, Event] = {}
        self._lock = asyncio.Lock()
        self._blob_store = blob_store

    def _require(self, event_id: str) -> Event:
        event = self._events.get(event_id)
        if event is None:
            raise NotFoundError(f"Event not found: {event_id}")
        return event

    async def list_events(self, include_deleted: bool = False) -> list[Event]:
        return [
            event.model_copy(deep=True)
            for event in self._events.values()
            if include_deleted or not event.is_deleted
        ]

    async def get_event(self, event_id: str) -> Event:
        return self._require(event_id).model_copy(deep=True)

    async def create_event(self, name: str) -> Event:
        event = Event(name=name)
        async with self._lock:
            self._events[event.id] = event
        return event.model_copy(deep=True)

    async def set_deleted(self, event_id: str, deleted: bool) -> bool:
        async with self._lock:
            event = self._events.get(event_id)
            if event is None:
                return False
            event.is_deleted = deleted
            return True

    async def purge_event(self, event_id: str) -> bool:
        async with self._lock:
            event = self._events.pop(event_id, None)
        if event is None:
            return False
        await release_receipts(self._blob_store, event.receipt_images())
        return True

    async def append_transaction(
        self,
        event_id: str,
        fields: TransactionFields,
    ) -> Transaction:
        transaction = Transaction.from_fields(new_id(), fields)
        async with self._lock:
            self._require(event_id).transactions.append(transaction)
        return transaction.model_copy(deep=True)

    async def replace_transaction(
        self,
        event_id: str,
        transaction_id: str,
        fields: TransactionFields,
    ) -> bool:
        replacement = Transaction.from_fields(transaction_id, fields)
        async with self._lock:
            event = self._require(event_id)
            for idx, existing in enumerate(event.transactions):
                if existing.id == transaction_id:
                    event.transactions[idx] = replacement
                    return True
        return False

    async def remove_transaction(self, event_id: str, transaction_id: str) -> bool:
        async with self._lock:
            event = self._require(event_id)
            removed = event.find_transaction(transaction_id)
            if removed is None:
                return False
            event.transactions = [t for t in event.transactions if t.id != transaction_id]
        if removed.image:
            await release_receipts(self._blob_store, [removed.image])
        return True


class InMemoryRequestQueue(RequestQueueInterface):
    """Request queue held in an insertion-ordered dict."""

    def __init__(self):
        self._requests: dict[str, PendingRequest] = {}
        self._lock = asyncio.Lock()

    async def add(self, request: PendingRequest) -> PendingRequest:
        async with self._lock:
            if request.id in self._requests:
                raise DuplicateError(f"Request already exists: {request.id}")
            self._requests[request.id] = request.model_copy(deep=True)
        return request

    async def get(self, request_id: str) -> Optional[PendingRequest]:
        request = self._requests.get(request_id)
        return request.model_copy(deep=True) if request else None

    async def list_requests(self, event_id: Optional[str] = None) -> list[PendingRequest]:
        return [
            request.model_copy(deep=True)
            for request in self._requests.values()
            if event_id is None or request.event_id == event_id
        ]

    async def replace(self, request: PendingRequest) -> bool:
        async with self._lock:
            if request.id not in self._requests:
                return False
            self._requests[request.id] = request.model_copy(deep=True)
            return True

    async def delete(self, request_id: str) -> bool:
        async with self._lock:
            return self._requests.pop(request_id, None) is not None

    async def mark_all_read(self) -> int:
        async with self._lock:
            unread = [r for r in self._requests.values() if not r.is_read]
            for request in unread:
                request.is_read = True
            return len(unread)
