"""Image normalization before upload.

Images are downscaled so the longest side fits ``MAX_IMAGE_DIMENSION`` and
re-encoded as JPEG at a fixed quality. This bounds request payload size and
token cost while keeping printed text legible.
"""

import asyncio
import base64
import io
import logging
from pathlib import Path
from typing import BinaryIO, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from intelliocr.config import JPEG_QUALITY, MAX_IMAGE_DIMENSION
from intelliocr.errors import NormalizationUnavailableError

logger = logging.getLogger(__name__)

ImageSource = Union[bytes, str, Path, BinaryIO]

MIME_TYPE = "image/jpeg"


def target_size(width: int, height: int, max_dimension: int = MAX_IMAGE_DIMENSION) -> tuple[int, int]:
    """Compute output dimensions for an image.

    Only scales down; images whose longest side already fits are unchanged.

    Args:
        width: Source width in pixels
        height: Source height in pixels
        max_dimension: Maximum length of the longest side

    Returns:
        (width, height) with aspect ratio preserved within rounding
    """
    longest = max(width, height)
    if longest <= max_dimension:
        return width, height

    ratio = max_dimension / float(longest)
    if width >= height:
        return max_dimension, max(1, round(height * ratio))
    return max(1, round(width * ratio)), max_dimension


def _open(source: ImageSource) -> Image.Image:
    if isinstance(source, bytes):
        return Image.open(io.BytesIO(source))
    return Image.open(source)


def normalize_image(
    source: ImageSource,
    max_dimension: int = MAX_IMAGE_DIMENSION,
    quality: float = JPEG_QUALITY,
) -> bytes:
    """Downscale and re-encode an image as JPEG.

    Args:
        source: Raw image bytes, a file path, or a binary file object
        max_dimension: Maximum length of the longest side
        quality: JPEG quality on a 0-1 scale

    Returns:
        JPEG-encoded bytes

    Raises:
        NormalizationUnavailableError: If the image cannot be decoded or encoded
    """
    try:
        with _open(source) as img:
            img = ImageOps.exif_transpose(img)
            if img.mode != "RGB":
                img = img.convert("RGB")

            size = target_size(img.width, img.height, max_dimension)
            if size != img.size:
                img = img.resize(size, resample=Image.Resampling.LANCZOS)

            out = io.BytesIO()
            img.save(out, format="JPEG", quality=int(round(quality * 100)))
            logger.debug(f"Normalized image to {size[0]}x{size[1]}, {out.tell()} bytes")
            return out.getvalue()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        logger.error(f"Image normalization failed: {e}")
        raise NormalizationUnavailableError(f"Image could not be processed: {e}") from e


async def normalize_image_async(
    source: ImageSource,
    max_dimension: int = MAX_IMAGE_DIMENSION,
    quality: float = JPEG_QUALITY,
) -> bytes:
    """Normalize an image without blocking the event loop."""
    # Decode/encode is CPU-bound; run in thread pool
    return await asyncio.to_thread(normalize_image, source, max_dimension, quality)


def encode_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")
