"""Content safety checks for topics and generated captions."""

import asyncio
import logging
from typing import Any, Iterable, Optional, Protocol

from ..exceptions import ModerationServiceError
from ..models.meme import ModerationSource, ModerationVerdict
from ..monitoring.metrics import record_moderation

logger = logging.getLogger(__name__)

KEYWORD_FILTER_CATEGORY = "keyword_filter"

UNSAFE_KEYWORDS = (
    "kill",
    "murder",
    "suicide",
    "terrorist",
    "bomb",
    "rape",
    "nazi",
    "hitler",
    "fuck",
    "shit",
    "ass",
    "bitch",
)


def keyword_filter(text: str) -> bool:
    """Return True if ``text`` contains any denylisted keyword, ignoring case."""
    lowered = text.lower()
    return any(keyword in lowered for keyword in UNSAFE_KEYWORDS)


class Moderator(Protocol):
    """Remote moderation capability."""

    async def check(self, text: str) -> ModerationVerdict:
        """Classify ``text``; raise on any failure to get a verdict."""
        ...


class OpenAIModerator:
    """Moderation backed by the OpenAI moderation endpoint."""

    def __init__(self, client: Optional[Any], model: str = "omni-moderation-latest") -> None:
        """
        Initialize the moderator.

        Args:
            client: ``openai.AsyncOpenAI`` client, or None when no key is configured
            model: Moderation model name
        """
        self.client = client
        self.model = model

    async def check(self, text: str) -> ModerationVerdict:
        if self.client is None:
            raise ModerationServiceError("Moderation provider is not configured")

        try:
            response = await self.client.moderations.create(model=self.model, input=text)
            result = response.results[0]
            flagged = bool(result.flagged)
            raw_categories = result.categories.model_dump()
        except Exception as e:
            raise ModerationServiceError(
                f"Moderation request failed: {e}", original_error=e
            ) from e

        if not isinstance(raw_categories, dict):
            raise ModerationServiceError("Malformed moderation response")

        categories = frozenset(name for name, hit in raw_categories.items() if hit)
        return ModerationVerdict(
            safe=not flagged,
            categories=categories,
            source=ModerationSource.REMOTE,
        )


class ContentSafetyGate:
    """
    Moderation with a deterministic local fallback.

    The remote moderator is consulted first. If it fails for any reason the
    text is checked against a fixed keyword denylist instead, and flagged
    verdicts from that path carry the single ``keyword_filter`` category.
    ``skip_moderation`` disables all checks and must only be used outside
    production.
    """

    def __init__(self, moderator: Moderator, skip_moderation: bool = False) -> None:
        self.moderator = moderator
        self.skip_moderation = skip_moderation
        if skip_moderation:
            logger.warning("Moderation is disabled (SKIP_MODERATION=true)")

    async def moderate(self, text: str) -> ModerationVerdict:
        """
        Check a single piece of text.

        Args:
            text: Text to check

        Returns:
            ModerationVerdict; never raises for provider failures
        """
        if self.skip_moderation:
            return ModerationVerdict(safe=True, source=ModerationSource.BYPASS)

        try:
            verdict = await self.moderator.check(text)
        except Exception as e:
            logger.warning(f"Remote moderation unavailable, using keyword filter: {e}")
            flagged = keyword_filter(text)
            verdict = ModerationVerdict(
                safe=not flagged,
                categories=frozenset({KEYWORD_FILTER_CATEGORY}) if flagged else frozenset(),
                source=ModerationSource.KEYWORD_FALLBACK,
            )

        record_moderation(verdict.source.value, verdict.safe)
        if verdict.flagged:
            logger.info(
                f"Text flagged by {verdict.source.value} moderation: "
                f"{sorted(verdict.categories)}"
            )
        return verdict

    async def moderate_all(self, texts: Iterable[str]) -> bool:
        """Return True only if every text is safe."""
        verdicts = await asyncio.gather(*(self.moderate(text) for text in texts))
        return all(verdict.safe for verdict in verdicts)
