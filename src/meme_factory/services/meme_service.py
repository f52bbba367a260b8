"""Request orchestration for meme generation."""

import asyncio
import logging
import time
from typing import List, Optional, Sequence, Tuple
from uuid import uuid4

from ..exceptions import (
    CaptionGenerationError,
    ContentFlaggedError,
    GeneratedContentFlaggedError,
    GenerationFailedError,
    ImageTooLargeError,
    InvalidImageInputError,
    InvalidInputError,
    MemeFactoryError,
    RateLimitedError,
    TopicTooLongError,
)
from ..models.meme import (
    Caption,
    GenerationResult,
    ImageBuffer,
    Meme,
    RateLimitResult,
    RenderOptions,
    WatermarkOptions,
)
from ..models.schemas.memes import MemeGenerationRequest
from ..monitoring.metrics import (
    record_caption_attempt,
    record_generation,
    record_rate_limit_rejection,
)
from ..utils.image import decode_base64_image, probe_image
from ..utils.logging import log_performance
from .caption_generator import PROMPT_SEQUENCE, CaptionGenerator, PromptTemplate
from .meme_renderer import create_collage, render_meme
from .moderation import ContentSafetyGate
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

MAX_TOPIC_LENGTH = 120
MAX_IMAGE_BYTES = 5 * 1024 * 1024


class MemeService:
    """
    Runs one generation request end to end.

    Steps, each a possible exit: rate check, input validation, topic
    moderation, caption generation (one retry with a simplified prompt when
    the response is structurally invalid), caption moderation, parallel
    rendering of the three memes, collage assembly.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        safety_gate: ContentSafetyGate,
        caption_generator: CaptionGenerator,
        watermark_enabled: bool = True,
        watermark_text: str = "meme-factory.app",
        font_path: Optional[str] = None,
        prompts: Sequence[PromptTemplate] = PROMPT_SEQUENCE,
    ) -> None:
        """
        Initialize the service.

        Args:
            rate_limiter: Per-client limiter
            safety_gate: Moderation gate for topics and captions
            caption_generator: LLM caption client
            watermark_enabled: Default when a request does not say
            watermark_text: Watermark text
            font_path: Optional font file for rendering
            prompts: Prompt templates tried in order until one yields valid captions
        """
        self.rate_limiter = rate_limiter
        self.safety_gate = safety_gate
        self.caption_generator = caption_generator
        self.watermark_enabled = watermark_enabled
        self.watermark_text = watermark_text
        self.font_path = font_path
        self.prompts = tuple(prompts)

    async def check_rate(self, client_id: str) -> RateLimitResult:
        """
        Count one request against ``client_id``'s quota.

        Raises:
            RateLimitedError: The client has used up its window
        """
        rate_limit = await self.rate_limiter.check(client_id)
        if not rate_limit.allowed:
            record_rate_limit_rejection()
            raise RateLimitedError(rate_limit.reset_at)
        return rate_limit

    @log_performance
    async def generate(
        self,
        request: MemeGenerationRequest,
        client_id: str,
        rate_limit: Optional[RateLimitResult] = None,
    ) -> GenerationResult:
        """
        Generate three captioned memes and their collage.

        Args:
            request: Validated request body
            client_id: Caller identity used for rate limiting
            rate_limit: Result of an earlier :meth:`check_rate` for this request;
                the quota is checked here when omitted

        Returns:
            GenerationResult with memes in tone order

        Raises:
            MemeFactoryError: One of the documented error codes
        """
        start_time = time.perf_counter()
        status = "error"
        try:
            result = await self._generate(request, client_id, rate_limit, start_time)
            status = "success"
            return result
        except MemeFactoryError as e:
            status = e.code.value.lower()
            raise
        finally:
            record_generation(status, time.perf_counter() - start_time)

    async def _generate(
        self,
        request: MemeGenerationRequest,
        client_id: str,
        rate_limit: Optional[RateLimitResult],
        start_time: float,
    ) -> GenerationResult:
        if rate_limit is None:
            rate_limit = await self.check_rate(client_id)

        image_data, topic = self.validate_request(request)

        topic_verdict = await self.safety_gate.moderate(topic)
        if topic_verdict.flagged:
            raise ContentFlaggedError(categories=sorted(topic_verdict.categories))

        request_id = uuid4().hex
        try:
            captions = await self._generate_captions(topic)

            logger.info("Moderating generated captions")
            if not await self.safety_gate.moderate_all([caption.text for caption in captions]):
                raise GeneratedContentFlaggedError()

            options = self._render_options(request)
            images = await self._render_all(image_data, captions, options)
            collage = await asyncio.to_thread(create_collage, images)
        except GeneratedContentFlaggedError:
            raise
        except MemeFactoryError as e:
            logger.error(f"Generation {request_id} failed: {e.message}")
            raise GenerationFailedError(e.message, original_error=e) from e
        except Exception as e:
            logger.error(f"Generation {request_id} failed unexpectedly: {e}", exc_info=True)
            raise GenerationFailedError(original_error=e) from e

        memes = [
            Meme(id=f"{request_id}-{index}", caption=caption, image=image)
            for index, (caption, image) in enumerate(zip(captions, images))
        ]
        generation_time_ms = round((time.perf_counter() - start_time) * 1000)
        logger.info(f"Generation {request_id} completed in {generation_time_ms}ms")

        return GenerationResult(
            request_id=request_id,
            memes=memes,
            collage=collage,
            generation_time_ms=generation_time_ms,
            rate_limit=rate_limit,
        )

    def validate_request(self, request: MemeGenerationRequest) -> Tuple[bytes, str]:
        """
        Check the request before any external call is made.

        Returns:
            Decoded image bytes and the trimmed topic

        Raises:
            InvalidInputError: Image or topic missing or blank
            TopicTooLongError: Topic longer than 120 characters
            InvalidImageInputError: Image is not decodable
            ImageTooLargeError: Decoded image larger than 5MB
        """
        raw_topic = request.topic or ""
        image = (request.image or "").strip()
        topic = raw_topic.strip()
        if not image or not topic:
            raise InvalidInputError("Both image and topic are required")

        if len(raw_topic) > MAX_TOPIC_LENGTH:
            raise TopicTooLongError(MAX_TOPIC_LENGTH, len(raw_topic))

        try:
            image_data = decode_base64_image(image)
        except ValueError as e:
            raise InvalidImageInputError("Invalid image data", original_error=e) from e

        if len(image_data) > MAX_IMAGE_BYTES:
            raise ImageTooLargeError(MAX_IMAGE_BYTES, len(image_data))

        try:
            probe_image(image_data)
        except ValueError as e:
            raise InvalidImageInputError("Invalid image data", original_error=e) from e

        return image_data, topic

    async def _generate_captions(self, topic: str) -> List[Caption]:
        """Try each prompt template in turn until one returns well-formed captions."""
        problems = []
        for template in self.prompts:
            logger.info(f"Generating captions with the {template.name} prompt")
            attempt = await self.caption_generator.attempt(topic, template)
            record_caption_attempt(template.name, "ok" if attempt.ok else "invalid")
            if attempt.ok:
                return attempt.captions
            problems.append(f"{template.name}: {attempt.problem}")

        raise CaptionGenerationError(
            "Failed to generate captions after retry",
            details={"problems": problems},
        )

    def _render_options(self, request: MemeGenerationRequest) -> RenderOptions:
        enabled = (
            self.watermark_enabled
            if request.include_watermark is None
            else request.include_watermark
        )
        return RenderOptions(
            position=request.text_position,
            watermark=WatermarkOptions(text=self.watermark_text, enabled=enabled),
        )

    async def _render_all(
        self, image_data: bytes, captions: List[Caption], options: RenderOptions
    ) -> List[ImageBuffer]:
        """Render one meme per caption concurrently, preserving caption order."""
        logger.info("Rendering memes")
        tasks = [
            asyncio.create_task(
                asyncio.to_thread(render_meme, image_data, caption.text, options, self.font_path)
            )
            for caption in captions
        ]
        try:
            return list(await asyncio.gather(*tasks))
        except Exception:
            for task in tasks:
                task.cancel()
            raise
