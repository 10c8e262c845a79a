"""
Storage Services Package

Provides abstract interfaces and concrete implementations for the
committed store and the request queue. Google Sheets is the persistent
backend; the in-memory backend serves tests and unconfigured runs.
"""

from hms_finance.services.storage.interface import (
    DuplicateError,
    EventStoreInterface,
    NotFoundError,
    RequestQueueInterface,
    StorageError,
    StoreUnavailableError,
    release_receipts,
)
from hms_finance.services.storage.memory import InMemoryEventStore, InMemoryRequestQueue
from hms_finance.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsEventStore,
    GoogleSheetsRequestQueue,
)

__all__ = [
    # Interfaces
    "EventStoreInterface",
    "RequestQueueInterface",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    "StoreUnavailableError",
    # Helpers
    "release_receipts",
    # In-memory implementation
    "InMemoryEventStore",
    "InMemoryRequestQueue",
    # Google Sheets implementation
    "GoogleSheetsClient",
    "GoogleSheetsEventStore",
    "GoogleSheetsRequestQueue",
]
