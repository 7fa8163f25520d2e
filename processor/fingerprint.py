"""Image fingerprinting module for the badge crawler.

Measures images and generates the content hash that identifies a badge.
"""

import hashlib
import logging
from dataclasses import dataclass
from io import BytesIO

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageInfo:
    """Dimensions and container format read from image bytes.

    Attributes:
        width: Width in pixels.
        height: Height in pixels.
        format: Lowercase container format (e.g., 'png', 'gif').
    """

    width: int
    height: int
    format: str | None


def compute_sha256(content: bytes) -> str:
    """Compute SHA-256 hash of content.

    Two images with identical binary content have identical hashes,
    which makes this the primary key of a badge.

    Args:
        content: Binary content to hash.

    Returns:
        Hexadecimal SHA-256 hash.
    """
    return hashlib.sha256(content).hexdigest()


def measure_image(content: bytes) -> ImageInfo | None:
    """Read pixel dimensions and format from image bytes.

    Only the image header is decoded, so this stays cheap enough to run
    inline for every candidate image.

    Args:
        content: Raw image bytes.

    Returns:
        ImageInfo, or None if the bytes are not a readable image.
    """
    if not content:
        return None
    try:
        with Image.open(BytesIO(content)) as img:
            img_format = img.format.lower() if img.format else None
            return ImageInfo(width=img.width, height=img.height, format=img_format)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.debug(f"Could not parse image dimensions: {e}")
        return None
    except Image.DecompressionBombError as e:
        logger.debug(f"Refusing oversized image: {e}")
        return None
