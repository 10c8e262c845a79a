"""
Blob Store Interface

Receipt images are opaque to the core: a transaction only holds the URL
the blob store returned. The store is owned by whichever transaction
references the URL; deleting the transaction releases the image.
"""

from abc import ABC, abstractmethod


class BlobStoreInterface(ABC):
    """Abstract receipt image store."""

    @abstractmethod
    async def store(self, data: bytes) -> str:
        """
        Store image bytes.

        Returns:
            URL that identifies the stored image

        Raises:
            ImageUploadError: If the upload fails
        """
        pass

    @abstractmethod
    async def delete(self, url: str) -> bool:
        """
        Release a stored image.

        Best-effort: returns False when the image was not found.

        Raises:
            BlobStoreError: If the backend could not be reached
        """
        pass


class BlobStoreError(Exception):
    """Base exception for blob store operations."""
    pass


class ImageUploadError(BlobStoreError):
    """Failed to upload an image."""
    pass


class ImageProcessingError(BlobStoreError):
    """Image bytes could not be decoded or re-encoded."""
    pass
