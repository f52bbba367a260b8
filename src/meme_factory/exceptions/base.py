"""Base exceptions and error codes for Meme Factory."""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Stable, client-visible error codes."""

    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INVALID_INPUT = "INVALID_INPUT"
    TOPIC_TOO_LONG = "TOPIC_TOO_LONG"
    INVALID_IMAGE = "INVALID_IMAGE"
    IMAGE_TOO_LARGE = "IMAGE_TOO_LARGE"
    CONTENT_FLAGGED = "CONTENT_FLAGGED"
    GENERATED_CONTENT_FLAGGED = "GENERATED_CONTENT_FLAGGED"
    GENERATION_FAILED = "GENERATION_FAILED"


class MemeFactoryError(Exception):
    """Base exception class for Meme Factory.

    Subclasses pin the HTTP status and whether a client may retry the same
    request; the code can be overridden per instance.
    """

    status_code: int = 500
    retryable: bool = True
    default_code: ErrorCode = ErrorCode.GENERATION_FAILED

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        """
        Initialize base exception.

        Args:
            message: Human-readable error message
            code: Error code, defaults to the class's ``default_code``
            details: Additional error details (never sent to clients)
            original_error: Original exception if this is a wrapped exception
        """
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.original_error = original_error
        super().__init__(self.message)

    @property
    def headers(self) -> Dict[str, str]:
        """Extra response headers for this error."""
        return {}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to the client-facing error body.

        Returns:
            Dictionary with ``code``, ``message`` and ``retryable``
        """
        return {
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
        }


class ClientInputError(MemeFactoryError):
    """Malformed, oversized or missing input; rejected before external calls."""

    status_code = 400
    retryable = False
    default_code = ErrorCode.INVALID_INPUT


class PolicyRejectionError(MemeFactoryError):
    """Content rejected by moderation."""

    status_code = 400
    retryable = False
    default_code = ErrorCode.CONTENT_FLAGGED


class UpstreamError(MemeFactoryError):
    """Failure or malformed response from an external collaborator.

    Raised inside the moderation and caption services and surfaced to clients
    as ``GenerationFailedError`` or replaced by the keyword fallback.
    """

    retryable = True
    default_code = ErrorCode.GENERATION_FAILED
