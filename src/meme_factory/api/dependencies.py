"""API dependencies."""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from openai import AsyncOpenAI

from ..config.config import Settings
from ..services.caption_generator import CaptionGenerator
from ..services.meme_service import MemeService
from ..services.moderation import ContentSafetyGate, OpenAIModerator
from ..services.rate_limiter import RateLimiter, create_rate_limiter

# Configure logger
logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Process-wide service instances shared by all requests."""

    openai_client: Optional[AsyncOpenAI]
    rate_limiter: RateLimiter
    safety_gate: ContentSafetyGate
    meme_service: MemeService

    async def close(self) -> None:
        """Release network clients."""
        await self.rate_limiter.close()
        if self.openai_client is not None:
            await self.openai_client.close()


def create_openai_client(settings: Settings) -> Optional[AsyncOpenAI]:
    """
    Create the OpenAI client used for captions and moderation.

    Returns:
        AsyncOpenAI client, or None if no API key is configured
    """
    if not settings.openai_api_key:
        logger.warning(
            "OpenAI API key not configured. Caption generation will fail and "
            "moderation will use the keyword filter."
        )
        return None
    return AsyncOpenAI(api_key=settings.openai_api_key)


def build_services(settings: Settings) -> ServiceContainer:
    """Wire the service graph from settings."""
    openai_client = create_openai_client(settings)
    rate_limiter = create_rate_limiter(settings)
    safety_gate = ContentSafetyGate(
        OpenAIModerator(openai_client, model=settings.openai_moderation_model),
        skip_moderation=settings.skip_moderation,
    )
    caption_generator = CaptionGenerator(
        openai_client,
        model=settings.openai_model,
        temperature=settings.caption_temperature,
        max_tokens=settings.caption_max_tokens,
    )
    meme_service = MemeService(
        rate_limiter=rate_limiter,
        safety_gate=safety_gate,
        caption_generator=caption_generator,
        watermark_enabled=settings.enable_watermark,
        watermark_text=settings.watermark_text,
        font_path=settings.font_path,
    )
    return ServiceContainer(
        openai_client=openai_client,
        rate_limiter=rate_limiter,
        safety_gate=safety_gate,
        meme_service=meme_service,
    )


def get_settings_dependency(request: Request) -> Settings:
    return request.app.state.settings


def get_meme_service(request: Request) -> MemeService:
    return request.app.state.services.meme_service


def get_safety_gate(request: Request) -> ContentSafetyGate:
    return request.app.state.services.safety_gate


def get_client_id(request: Request) -> str:
    """
    Identify the caller for rate limiting.

    Uses the first ``X-Forwarded-For`` hop, then ``X-Real-IP``, then the
    socket peer address.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
