"""Domain models for meme generation."""

import base64
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import FrozenSet, List, Literal, Optional, Tuple

MAX_CAPTION_LENGTH = 70
ELLIPSIS = "..."

TextPosition = Literal["top", "bottom"]


class Tone(str, Enum):
    """Caption tone. Declaration order is the canonical caption order."""

    SARCASTIC = "sarcastic"
    WHOLESOME = "wholesome"
    DARK_HUMOR = "dark_humor"

    @classmethod
    def ordered(cls) -> Tuple["Tone", ...]:
        """All tones in canonical order."""
        return tuple(cls)


class ModerationSource(str, Enum):
    """Which path produced a moderation verdict."""

    REMOTE = "remote"
    KEYWORD_FALLBACK = "keyword_fallback"
    BYPASS = "bypass"


def truncate_caption(text: str, max_length: int = MAX_CAPTION_LENGTH) -> str:
    """Cap caption text at ``max_length`` characters, marking the cut with an ellipsis."""
    text = text.strip()
    if len(text) <= max_length:
        return text
    return text[: max_length - len(ELLIPSIS)] + ELLIPSIS


@dataclass(frozen=True)
class ImageBuffer:
    """Encoded image bytes with their pixel dimensions."""

    data: bytes
    width: int
    height: int
    mime_type: str = "image/png"

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Invalid image dimensions {self.width}x{self.height}")

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def to_data_url(self) -> str:
        """Encode as a ``data:`` URL suitable for an <img> tag."""
        payload = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{payload}"


@dataclass(frozen=True)
class Caption:
    """A single generated caption and its tone."""

    tone: Tone
    text: str

    def __post_init__(self) -> None:
        if not self.text or not self.text.strip():
            raise ValueError("Caption text must not be empty")
        if len(self.text) > MAX_CAPTION_LENGTH:
            raise ValueError(f"Caption text exceeds {MAX_CAPTION_LENGTH} characters")


@dataclass(frozen=True)
class TextLayout:
    """Result of fitting caption text to an image width."""

    font_size: int
    lines: Tuple[str, ...]
    total_height: float

    @property
    def line_height(self) -> float:
        return self.font_size * 1.1


@dataclass(frozen=True)
class WatermarkOptions:
    text: str
    enabled: bool = True

    @property
    def active(self) -> bool:
        return self.enabled and bool(self.text)


@dataclass(frozen=True)
class RenderOptions:
    """How a caption is placed on the image."""

    position: TextPosition = "top"
    watermark: Optional[WatermarkOptions] = None


@dataclass(frozen=True)
class Meme:
    """A rendered meme, valid for the lifetime of one response."""

    id: str
    caption: Caption
    image: ImageBuffer

    @property
    def tone(self) -> Tone:
        return self.caption.tone


@dataclass(frozen=True)
class ModerationVerdict:
    """Outcome of checking one piece of text."""

    safe: bool
    categories: FrozenSet[str] = frozenset()
    source: ModerationSource = ModerationSource.REMOTE

    @property
    def flagged(self) -> bool:
        return not self.safe


@dataclass(frozen=True)
class RateLimitResult:
    """Decision returned by a rate limiter."""

    allowed: bool
    remaining: int
    reset_at: datetime


@dataclass
class GenerationResult:
    """Everything produced for one successful generation request."""

    request_id: str
    memes: List[Meme]
    collage: ImageBuffer
    generation_time_ms: int
    rate_limit: RateLimitResult
