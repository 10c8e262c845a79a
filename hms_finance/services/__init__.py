"""Services package."""

from hms_finance.services.image import (
    BlobStoreError,
    BlobStoreInterface,
    CloudinaryBlobStore,
    ImageProcessingError,
    ImageUploadError,
    compress_receipt_image,
)
from hms_finance.services.storage import (
    DuplicateError,
    EventStoreInterface,
    GoogleSheetsClient,
    GoogleSheetsEventStore,
    GoogleSheetsRequestQueue,
    InMemoryEventStore,
    InMemoryRequestQueue,
    NotFoundError,
    RequestQueueInterface,
    StorageError,
    StoreUnavailableError,
)

__all__ = [
    # Image services
    "BlobStoreError",
    "BlobStoreInterface",
    "CloudinaryBlobStore",
    "ImageProcessingError",
    "ImageUploadError",
    "compress_receipt_image",
    # Storage services
    "DuplicateError",
    "EventStoreInterface",
    "GoogleSheetsClient",
    "GoogleSheetsEventStore",
    "GoogleSheetsRequestQueue",
    "InMemoryEventStore",
    "InMemoryRequestQueue",
    "NotFoundError",
    "RequestQueueInterface",
    "StorageError",
    "StoreUnavailableError",
]
