"""
Abstract Storage Interfaces

DESIGN DECISION: We define abstract interfaces for the two stores.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep approval logic decoupled from storage implementation

The committed store and the request queue are independent collections.
No operation spans both; the approval coordinator orders its calls so
that a failure between them leaves a request that can be retried.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from hms_finance.audit import get_logger
from hms_finance.models.ledger import Event, Transaction, TransactionFields
from hms_finance.models.requests import PendingRequest
from hms_finance.services.image import BlobStoreInterface


class EventStoreInterface(ABC):
    """
    Abstract interface for the committed store.

    Every mutation is a single-record operation. Methods that target a
    transaction raise NotFoundError when the owning event is missing and
    report a missing transaction as a soft failure (False).
    """

    @abstractmethod
    async def list_events(self, include_deleted: bool = False) -> list[Event]:
        """
        List events.

        Args:
            include_deleted: Also return soft-deleted events

        Returns:
            Events in creation order
        """
        pass

    @abstractmethod
    async def get_event(self, event_id: str) -> Event:
        """
        Retrieve an event by id, soft-deleted or not.

        Raises:
            NotFoundError: If the event doesn't exist
        """
        pass

    @abstractmethod
    async def create_event(self, name: str) -> Event:
        """Create an empty event with a freshly generated id."""
        pass

    @abstractmethod
    async def set_deleted(self, event_id: str, deleted: bool) -> bool:
        """
        Set or clear the soft delete flag.

        Returns:
            False if the event doesn't exist
        """
        pass

    @abstractmethod
    async def purge_event(self, event_id: str) -> bool:
        """
        Permanently delete an event and release its receipt images.

        Returns:
            False if the event doesn't exist
        """
        pass

    @abstractmethod
    async def append_transaction(
        self,
        event_id: str,
        fields: TransactionFields,
    ) -> Transaction:
        """
        Append a transaction with a freshly generated id.

        Raises:
            NotFoundError: If the event doesn't exist
        """
        pass

    @abstractmethod
    async def replace_transaction(
        self,
        event_id: str,
        transaction_id: str,
        fields: TransactionFields,
    ) -> bool:
        """
        Replace every field of a transaction, keeping its id.

        Returns:
            False if the transaction doesn't exist (soft failure)

        Raises:
            NotFoundError: If the event doesn't exist
        """
        pass

    @abstractmethod
    async def remove_transaction(self, event_id: str, transaction_id: str) -> bool:
        """
        Remove a transaction and release its receipt image.

        Returns:
            False if the transaction doesn't exist

        Raises:
            NotFoundError: If the event doesn't exist
        """
        pass

    async def restore_event(self, event_id: str) -> bool:
        """Clear the soft delete flag."""
        return await self.set_deleted(event_id, False)


class RequestQueueInterface(ABC):
    """
    Abstract interface for the pending request queue.

    One flat collection. Concurrent inserts must never lose a write.
    """

    @abstractmethod
    async def add(self, request: PendingRequest) -> PendingRequest:
        """
        Insert a new request.

        Raises:
            DuplicateError: If a request with the same id exists
        """
        pass

    @abstractmethod
    async def get(self, request_id: str) -> Optional[PendingRequest]:
        """Retrieve a request, None if it has been resolved."""
        pass

    @abstractmethod
    async def list_requests(self, event_id: Optional[str] = None) -> list[PendingRequest]:
        """
        List requests in insertion order.

        Args:
            event_id: Only requests whose payload targets this event
        """
        pass

    @abstractmethod
    async def replace(self, request: PendingRequest) -> bool:
        """
        Overwrite a stored request with the same id.

        Returns:
            False if the request doesn't exist
        """
        pass

    @abstractmethod
    async def delete(self, request_id: str) -> bool:
        """
        Delete a request.

        Returns:
            False if the request was already gone
        """
        pass

    @abstractmethod
    async def mark_all_read(self) -> int:
        """
        Flag every request as read.

        Returns:
            Number of requests that were unread
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StoreUnavailableError(StorageError):
    """Could not reach the storage backend. The operation is safe to retry."""
    pass


async def release_receipts(
    blob_store: Optional[BlobStoreInterface],
    urls: Iterable[str],
) -> int:
    """
    Release receipt images, best-effort.

    Failures are logged and skipped; they never block the delete that
    triggered the release. Returns the number of images released.
    """
    if blob_store is None:
        return 0

    logger = get_logger(__name__)
    released = 0
    for url in urls:
        try:
            if await blob_store.delete(url):
                released += 1
        except Exception as e:
            logger.warning("receipt_release_failed", url=url, error=str(e))
    return released
