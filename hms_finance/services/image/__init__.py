"""Receipt image services package."""

from hms_finance.services.image.cloudinary_service import (
    CloudinaryBlobStore,
    public_id_from_url,
)
from hms_finance.services.image.compression import compress_receipt_image
from hms_finance.services.image.interface import (
    BlobStoreError,
    BlobStoreInterface,
    ImageProcessingError,
    ImageUploadError,
)

__all__ = [
    "BlobStoreError",
    "BlobStoreInterface",
    "CloudinaryBlobStore",
    "ImageProcessingError",
    "ImageUploadError",
    "compress_receipt_image",
    "public_id_from_url",
]
