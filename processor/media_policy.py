"""Media policy configuration for the badge crawler.

Centralizes what counts as a badge and the canonical reasons an image
is rejected, so the pipeline, caches, and logs agree on them.
"""

from typing import Final

# The one pixel size the crawler collects
BUTTON_WIDTH: Final[int] = 88
BUTTON_HEIGHT: Final[int] = 31
BUTTON_SIZE: Final[tuple[int, int]] = (BUTTON_WIDTH, BUTTON_HEIGHT)

# Rejection reason constants for structured metrics
REJECTION_REASON_WRONG_DIMENSIONS = "wrong_dimensions"
REJECTION_REASON_INVALID_IMAGE_PAYLOAD = "invalid_image_payload"
REJECTION_REASON_HTTP_ERROR = "http_error"
REJECTION_REASON_FILE_TOO_LARGE = "file_too_large"

REJECTION_REASONS: Final[tuple[str, ...]] = (
    REJECTION_REASON_WRONG_DIMENSIONS,
    REJECTION_REASON_INVALID_IMAGE_PAYLOAD,
    REJECTION_REASON_HTTP_ERROR,
    REJECTION_REASON_FILE_TOO_LARGE,
)


def is_button_size(width: int | None, height: int | None) -> bool:
    """Check if measured dimensions are exactly the badge size.

    Args:
        width: Measured width in pixels (None if unknown).
        height: Measured height in pixels (None if unknown).

    Returns:
        True only for an exact 88x31 match.
    """
    return (width, height) == BUTTON_SIZE


def format_rejection_reason(reason_key: str, details: str = "") -> str:
    """Format a canonical rejection reason with optional details.

    Args:
        reason_key: One of the REJECTION_REASON_* constants.
        details: Optional additional context (e.g., measured size).

    Returns:
        Formatted rejection message.
    """
    if details:
        return f"{reason_key}: {details}"
    return reason_key
