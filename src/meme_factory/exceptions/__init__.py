"""Exception hierarchy for Meme Factory."""

from .base import (
    ClientInputError,
    ErrorCode,
    MemeFactoryError,
    PolicyRejectionError,
    UpstreamError,
)
from .meme_specific import (
    CaptionGenerationError,
    ContentFlaggedError,
    GeneratedContentFlaggedError,
    GenerationFailedError,
    ImageTooLargeError,
    InvalidCollageInputError,
    InvalidImageError,
    InvalidImageInputError,
    InvalidInputError,
    ModerationServiceError,
    RateLimitedError,
    RenderFailedError,
    TopicTooLongError,
)

__all__ = [
    "CaptionGenerationError",
    "ClientInputError",
    "ContentFlaggedError",
    "ErrorCode",
    "GeneratedContentFlaggedError",
    "GenerationFailedError",
    "ImageTooLargeError",
    "InvalidCollageInputError",
    "InvalidImageError",
    "InvalidImageInputError",
    "InvalidInputError",
    "MemeFactoryError",
    "ModerationServiceError",
    "PolicyRejectionError",
    "RateLimitedError",
    "RenderFailedError",
    "TopicTooLongError",
    "UpstreamError",
]
