"""Meme-generation specific exceptions."""

import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .base import (
    ClientInputError,
    ErrorCode,
    MemeFactoryError,
    PolicyRejectionError,
    UpstreamError,
)


class InvalidInputError(ClientInputError):
    """Raised when the image or topic is missing or blank."""


class TopicTooLongError(ClientInputError):
    """Raised when the topic exceeds the maximum length."""

    default_code = ErrorCode.TOPIC_TOO_LONG

    def __init__(self, max_length: int, actual_length: int, **kwargs: Any) -> None:
        """Initialize topic length error."""
        super().__init__(
            f"Topic must be {max_length} characters or less",
            details={"max_length": max_length, "actual_length": actual_length},
            **kwargs,
        )


class InvalidImageInputError(ClientInputError):
    """Raised when the uploaded image cannot be decoded."""

    default_code = ErrorCode.INVALID_IMAGE


class ImageTooLargeError(ClientInputError):
    """Raised when the decoded upload exceeds the size limit."""

    default_code = ErrorCode.IMAGE_TOO_LARGE

    def __init__(self, max_bytes: int, actual_bytes: int, **kwargs: Any) -> None:
        """Initialize image size error."""
        super().__init__(
            f"Image must be under {max_bytes // (1024 * 1024)}MB",
            details={"max_bytes": max_bytes, "actual_bytes": actual_bytes},
            **kwargs,
        )


class ContentFlaggedError(PolicyRejectionError):
    """Raised when the user's topic fails moderation."""

    def __init__(self, categories: Optional[list] = None, **kwargs: Any) -> None:
        """Initialize topic moderation error."""
        super().__init__(
            "Let's keep this safe for everyone. Please try a different topic!",
            details={"categories": categories or []},
            **kwargs,
        )


class GeneratedContentFlaggedError(PolicyRejectionError):
    """Raised when a generated caption fails moderation.

    The same topic may produce an acceptable generation on another attempt.
    """

    retryable = True
    default_code = ErrorCode.GENERATED_CONTENT_FLAGGED

    def __init__(self, **kwargs: Any) -> None:
        """Initialize generated content moderation error."""
        super().__init__(
            "Our system couldn't generate safe content for this topic. Try something else!",
            **kwargs,
        )


class RateLimitedError(MemeFactoryError):
    """Raised when a client exceeds its request quota."""

    status_code = 429
    retryable = False
    default_code = ErrorCode.RATE_LIMIT_EXCEEDED

    def __init__(self, reset_at: datetime, **kwargs: Any) -> None:
        """
        Initialize rate limit error.

        Args:
            reset_at: When the client's current window ends
            **kwargs: Additional keyword arguments
        """
        self.reset_at = reset_at
        minutes = max(1, math.ceil(self.retry_after / 60))
        super().__init__(
            f"You've reached the request limit. Try again in {minutes} minutes.",
            details={"reset_at": reset_at.isoformat()},
            **kwargs,
        )

    @property
    def retry_after(self) -> int:
        """Whole seconds until the window resets."""
        delta = (self.reset_at - datetime.now(timezone.utc)).total_seconds()
        return max(0, math.ceil(delta))

    @property
    def headers(self) -> Dict[str, str]:
        """Quota headers for the 429 response."""
        return {
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": self.reset_at.isoformat(),
            "Retry-After": str(self.retry_after),
        }


class GenerationFailedError(MemeFactoryError):
    """Raised for any unexpected failure after validation and moderation."""

    status_code = 500

    def __init__(
        self, message: str = "Generation failed. Please try again.", **kwargs: Any
    ) -> None:
        """Initialize generation failure."""
        super().__init__(message, **kwargs)


class CaptionGenerationError(UpstreamError):
    """Raised when the caption provider fails or keeps returning malformed output."""

    status_code = 500


class ModerationServiceError(UpstreamError):
    """Raised when the remote moderation provider fails."""


class RenderFailedError(MemeFactoryError):
    """Raised when decoding, drawing or compositing an image fails."""

    status_code = 500

    def __init__(self, message: str = "Failed to render meme", **kwargs: Any) -> None:
        """Initialize render failure."""
        super().__init__(message, **kwargs)


class InvalidImageError(RenderFailedError):
    """Raised when an image has unreadable or non-positive dimensions."""

    def __init__(self, message: str = "Invalid image dimensions", **kwargs: Any) -> None:
        """Initialize invalid image error."""
        super().__init__(message, **kwargs)


class InvalidCollageInputError(RenderFailedError):
    """Raised when a collage is requested for anything other than three images."""

    def __init__(self, count: int, **kwargs: Any) -> None:
        """Initialize collage arity error."""
        self.count = count
        super().__init__(
            f"Collage requires exactly 3 memes, got {count}",
            details={"count": count},
            **kwargs,
        )
