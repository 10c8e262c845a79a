"""
Receipt Compression

Receipts are photos taken on phones, usually several megabytes. Before
upload they are scaled to a maximum width and re-encoded as JPEG,
lowering the quality step by step until the result fits the size limit.
If the lowest quality is still too large the image is scaled down
further.
"""

from io import BytesIO
from typing import Optional

from PIL import Image, UnidentifiedImageError

from hms_finance.config import get_settings
from hms_finance.services.image.interface import ImageProcessingError

MIN_QUALITY = 10
QUALITY_STEP = 10
SCALE_STEP = 0.8
MIN_WIDTH = 100


def _encode(img: Image.Image, quality: int) -> bytes:
    buffer = BytesIO()
    img.save(buffer, format="JPEG", quality=quality, optimize=True)
    return buffer.getvalue()


def compress_receipt_image(
    data: bytes,
    max_width: Optional[int] = None,
    quality: Optional[int] = None,
    max_size_kb: Optional[float] = None,
) -> bytes:
    """
    Compress receipt bytes into a JPEG no larger than ``max_size_kb``.

    Defaults come from AppSettings. Returns the smallest encoding reached
    even if it still exceeds the limit at the minimum width.

    Raises:
        ImageProcessingError: If the bytes are not a readable image
    """
    app = get_settings().app
    max_width = max_width or app.receipt_max_width
    quality = quality or app.receipt_quality
    limit = int(max_size_kb * 1024) if max_size_kb else app.receipt_max_size_bytes

    try:
        img = Image.open(BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ImageProcessingError(f"Could not read image: {e}")

    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")

    width, height = img.size
    if width > max_width:
        ratio = height / width
        img = img.resize((max_width, max(1, round(max_width * ratio))))

    encoded = _encode(img, quality)
    while len(encoded) > limit:
        if quality > MIN_QUALITY:
            quality = max(MIN_QUALITY, quality - QUALITY_STEP)
        elif img.width > MIN_WIDTH:
            new_width = max(MIN_WIDTH, int(img.width * SCALE_STEP))
            new_height = max(1, round(img.height * new_width / img.width))
            img = img.resize((new_width, new_height))
        else:
            break
        encoded = _encode(img, quality)

    return encoded
