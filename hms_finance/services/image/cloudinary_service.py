"""
Receipt Image Storage using Cloudinary

DESIGN DECISION: Receipts are stored on Cloudinary because:
1. The ledger only needs a stable URL per image
2. Reliable cloud infrastructure
3. Simple API for upload and destroy
4. Free tier sufficient for a single organisation

This service handles:
1. Uploading receipt bytes under a generated public id
2. Releasing an image given the URL a transaction holds
"""

import re
from typing import Optional
from urllib.parse import urlparse
from uuid import uuid4

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
from tenacity import retry, stop_after_attempt, wait_exponential

from hms_finance.audit import get_logger
from hms_finance.config import CloudinarySettings, get_settings
from hms_finance.services.image.interface import (
    BlobStoreError,
    BlobStoreInterface,
    ImageUploadError,
)

_VERSION_SEGMENT = re.compile(r"^v\d+$")


def public_id_from_url(url: str) -> Optional[str]:
    """
    Recover the Cloudinary public id from a delivery URL.

    Format: https://res.cloudinary.com/<cloud>/image/upload/[<transformations>/]v<version>/<public_id>.<ext>

    Returns None for URLs that are not Cloudinary upload URLs.
    """
    path = urlparse(url).path
    marker = "/upload/"
    if marker not in path:
        return None

    segments = [s for s in path.split(marker, 1)[1].split("/") if s]
    for idx, segment in enumerate(segments):
        if _VERSION_SEGMENT.match(segment):
            segments = segments[idx + 1:]
            break

    if not segments:
        return None

    last = segments[-1]
    if "." in last:
        segments[-1] = last.rsplit(".", 1)[0]
    return "/".join(segments)


class CloudinaryBlobStore(BlobStoreInterface):
    """
    Blob store backed by Cloudinary.

    The SDK is configured lazily on first use so that constructing the
    service never needs network access.
    """

    def __init__(self, settings: Optional[CloudinarySettings] = None):
        self._settings = settings or get_settings().cloudinary
        self._configured = False
        self._logger = get_logger(__name__)

    def _configure(self):
        """Configure Cloudinary SDK."""
        if not self._configured:
            cloudinary.config(
                cloud_name=self._settings.cloud_name,
                api_key=self._settings.api_key,
                api_secret=self._settings.api_secret,
                secure=True,
            )
            self._configured = True

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def store(self, data: bytes) -> str:
        """Upload receipt bytes and return the secure delivery URL."""
        self._configure()

        try:
            result = cloudinary.uploader.upload(
                data,
                public_id=f"receipts/{uuid4()}",
                folder=self._settings.folder,
                resource_type="image",
            )
        except cloudinary.exceptions.Error as e:
            raise ImageUploadError(f"Cloudinary error: {e}")
        except Exception as e:
            raise ImageUploadError(f"Failed to upload receipt: {e}")

        url = result.get("secure_url", result.get("url", ""))
        if not url:
            raise ImageUploadError("No URL returned from Cloudinary")

        self._logger.info("receipt_stored", public_id=result.get("public_id"))
        return url

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def delete(self, url: str) -> bool:
        """Destroy the image behind ``url``. False if it is unknown to Cloudinary."""
        public_id = public_id_from_url(url)
        if public_id is None:
            self._logger.warning("receipt_url_not_recognised", url=url)
            return False

        self._configure()

        try:
            result = cloudinary.uploader.destroy(public_id, resource_type="image")
        except cloudinary.exceptions.Error as e:
            raise BlobStoreError(f"Cloudinary error: {e}")

        released = result.get("result") == "ok"
        self._logger.info("receipt_released", public_id=public_id, released=released)
        return released
