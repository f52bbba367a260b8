"""Pytest configuration and fixtures."""

import base64
import json
import os
import sys
from io import BytesIO
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Dict, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

# Add src to Python path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Set test environment before any settings are loaded
os.environ["APP_ENV"] = "test"
os.environ["LOG_JSON"] = "false"
for name in ("OPENAI_API_KEY", "REDIS_URL", "SKIP_MODERATION", "FONT_PATH"):
    os.environ.pop(name, None)

from fastapi import FastAPI  # noqa: E402

from meme_factory.api.dependencies import ServiceContainer  # noqa: E402
from meme_factory.api.main import create_app  # noqa: E402
from meme_factory.config.config import Settings  # noqa: E402
from meme_factory.models.meme import ModerationVerdict  # noqa: E402
from meme_factory.services.caption_generator import CaptionGenerator  # noqa: E402
from meme_factory.services.meme_service import MemeService  # noqa: E402
from meme_factory.services.moderation import ContentSafetyGate  # noqa: E402
from meme_factory.services.rate_limiter import InMemoryRateLimiter  # noqa: E402

Color = Tuple[int, int, int]


def png_bytes(width: int, height: int, color: Color = (128, 128, 128)) -> bytes:
    """Encode a solid-colour RGB image as PNG."""
    output = BytesIO()
    Image.new("RGB", (width, height), color).save(output, format="PNG")
    return output.getvalue()


def captions_payload(
    sarcastic: str = "Oh great, another Monday",
    wholesome: str = "New week, new chances to shine",
    dark_humor: str = "Mondays: proof the weekend was a lie",
) -> str:
    """JSON body shaped like a valid caption provider response."""
    return json.dumps(
        {
            "captions": [
                {"tone": "sarcastic", "text": sarcastic},
                {"tone": "wholesome", "text": wholesome},
                {"tone": "dark_humor", "text": dark_humor},
            ]
        }
    )


def make_completion(content: Optional[str]) -> SimpleNamespace:
    """Minimal stand-in for an OpenAI chat completion."""
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def image_factory() -> Callable[..., bytes]:
    """Factory for solid-colour PNG images."""
    return png_bytes


@pytest.fixture
def sample_image() -> bytes:
    """An 800x600 grey PNG."""
    return png_bytes(800, 600)


@pytest.fixture
def sample_image_b64(sample_image: bytes) -> str:
    """The sample image as a data URL, as a browser would send it."""
    return "data:image/png;base64," + base64.b64encode(sample_image).decode("ascii")


@pytest.fixture
def caption_json() -> Callable[..., str]:
    return captions_payload


@pytest.fixture
def completion_factory() -> Callable[[Optional[str]], SimpleNamespace]:
    return make_completion


@pytest.fixture
def mock_openai_client() -> MagicMock:
    """OpenAI client whose chat completion returns three valid captions."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=make_completion(captions_payload()))
    client.moderations.create = AsyncMock()
    return client


@pytest.fixture
def mock_moderator() -> MagicMock:
    """Remote moderator that finds everything safe."""
    moderator = MagicMock()
    moderator.check = AsyncMock(return_value=ModerationVerdict(safe=True))
    return moderator


@pytest.fixture
def generation_request_body(sample_image_b64: str) -> Dict[str, Any]:
    """Sample generation request body."""
    return {"image": sample_image_b64, "topic": "Monday mornings"}


def build_app(
    openai_client: MagicMock,
    moderator: MagicMock,
    max_requests: int = 10,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Create the app around mocked external collaborators."""
    settings = settings or Settings(_env_file=None, log_json=False)
    rate_limiter = InMemoryRateLimiter(max_requests=max_requests, window_seconds=3600)
    safety_gate = ContentSafetyGate(moderator, skip_moderation=settings.skip_moderation)
    services = ServiceContainer(
        openai_client=None,
        rate_limiter=rate_limiter,
        safety_gate=safety_gate,
        meme_service=MemeService(
            rate_limiter=rate_limiter,
            safety_gate=safety_gate,
            caption_generator=CaptionGenerator(openai_client),
            watermark_enabled=settings.enable_watermark,
            watermark_text=settings.watermark_text,
        ),
    )
    return create_app(settings=settings, services=services)


@pytest.fixture
def app_factory() -> Callable[..., FastAPI]:
    """Factory for apps wired to mocked OpenAI and moderation collaborators."""
    return build_app
