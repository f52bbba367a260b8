"""Pydantic schemas for the meme HTTP API."""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..meme import GenerationResult, ModerationVerdict, Tone


class CamelModel(BaseModel):
    """Base schema that reads and writes camelCase JSON keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MemeGenerationRequest(CamelModel):
    """
    Schema for a meme generation request.

    Presence and length of ``image`` and ``topic`` are checked by the service
    so that violations map onto the documented error codes rather than a
    generic schema error.

    Attributes:
        image: Base64 image, optionally prefixed with a ``data:image/...`` header
        topic: The topic to caption
        include_watermark: Overrides the configured watermark default
        text_position: Where to place the caption
    """

    image: Optional[str] = Field(None, description="Base64-encoded image, data URL prefix allowed")
    topic: Optional[str] = Field(None, description="Meme topic, at most 120 characters")
    include_watermark: Optional[bool] = Field(None, description="Render the watermark")
    text_position: Literal["top", "bottom"] = Field("top", description="Caption placement")


class MemeItem(CamelModel):
    """A single rendered meme in the response."""

    id: str
    tone: Tone
    caption: str
    image_url: str = Field(..., description="PNG image as a base64 data URL")


class MemeGenerationResponse(CamelModel):
    """
    Schema for a successful generation.

    Attributes:
        success: Always true
        memes: Exactly three memes in tone order
        collage_url: Side-by-side collage as a base64 data URL
        generation_time: Wall-clock duration in milliseconds
    """

    success: Literal[True] = True
    memes: List[MemeItem]
    collage_url: str
    generation_time: int

    @classmethod
    def from_result(cls, result: GenerationResult) -> "MemeGenerationResponse":
        """Build the response body from a service result."""
        return cls(
            memes=[
                MemeItem(
                    id=meme.id,
                    tone=meme.tone,
                    caption=meme.caption.text,
                    image_url=meme.image.to_data_url(),
                )
                for meme in result.memes
            ],
            collage_url=result.collage.to_data_url(),
            generation_time=result.generation_time_ms,
        )


class ErrorDetail(BaseModel):
    code: str
    message: str
    retryable: bool


class ErrorResponse(BaseModel):
    """Envelope returned for every failed request."""

    success: Literal[False] = False
    error: ErrorDetail


class ModerationRequest(BaseModel):
    text: Optional[str] = Field(None, description="Text to check")


class ModerationResponse(BaseModel):
    """Schema for a moderation verdict."""

    flagged: bool
    categories: List[str]
    safe: bool

    @classmethod
    def from_verdict(cls, verdict: ModerationVerdict) -> "ModerationResponse":
        return cls(
            flagged=verdict.flagged,
            categories=sorted(verdict.categories),
            safe=verdict.safe,
        )
