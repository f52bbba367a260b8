"""Caption generation through a hosted language model."""

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..exceptions import CaptionGenerationError
from ..models.meme import Caption, Tone, truncate_caption

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


@dataclass(frozen=True)
class PromptTemplate:
    """A named system/user prompt pair; ``{topic}`` is substituted into ``user``."""

    name: str
    system: str
    user: str

    def render(self, topic: str) -> str:
        return self.user.format(topic=json.dumps(topic))


FULL_PROMPT = PromptTemplate(
    name="full",
    system="""You are a meme caption generator. Your ONLY output is valid JSON.
Return exactly 3 short, witty captions for the given topic.
Each caption must be safe-for-work and under 60 characters.
Use these three tones in order: sarcastic, wholesome, dark humor.

Output format:
{
  "captions": [
    {"tone": "sarcastic", "text": "caption here"},
    {"tone": "wholesome", "text": "caption here"},
    {"tone": "dark_humor", "text": "caption here"}
  ]
}

Rules:
- NO explanations or additional text
- NO offensive, hateful, or NSFW content
- Keep each caption punchy and meme-appropriate
- Use classic meme language and structure""",
    user="""Topic: {topic}

Generate 3 meme captions (max 60 chars each) with the required tones. Be witty but family-friendly.

Return ONLY valid JSON, nothing else:""",
)

SIMPLIFIED_PROMPT = PromptTemplate(
    name="simplified",
    system="You write short meme captions and reply with JSON only.",
    user="""Create 3 short meme captions about: {topic}

Return ONLY this JSON format, nothing else:
{{
  "captions": [
    {{"tone": "sarcastic", "text": "YOUR SARCASTIC CAPTION HERE"}},
    {{"tone": "wholesome", "text": "YOUR WHOLESOME CAPTION HERE"}},
    {{"tone": "dark_humor", "text": "YOUR DARK HUMOR CAPTION HERE"}}
  ]
}}""",
)

PROMPT_SEQUENCE = (FULL_PROMPT, SIMPLIFIED_PROMPT)


class _RawCaption(BaseModel):
    tone: Tone
    text: str = Field(..., min_length=1)

    @field_validator("tone", mode="before")
    @classmethod
    def normalize_tone(cls, v: Any) -> Any:
        if isinstance(v, str):
            return re.sub(r"[\s-]+", "_", v.strip().lower())
        return v

    @field_validator("text")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("caption text is blank")
        return v


class _RawCaptionBatch(BaseModel):
    captions: List[_RawCaption] = Field(..., min_length=3, max_length=3)


@dataclass(frozen=True)
class GenerationAttempt:
    """Outcome of one call to the caption provider.

    Exactly one of ``captions`` and ``problem`` is set.
    """

    template: str
    captions: Optional[List[Caption]] = None
    problem: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.captions is not None


def strip_code_fences(text: str) -> str:
    """Remove a surrounding Markdown code fence, if any."""
    return _CODE_FENCE.sub("", text.strip()).strip()


def parse_captions(raw: Optional[str]) -> List[Caption]:
    """
    Structurally validate a provider response.

    Requires a ``captions`` list of exactly three objects with ``tone`` and
    non-empty ``text``, covering each tone exactly once. Texts longer than the
    display limit are truncated with an ellipsis.

    Args:
        raw: Response text from the provider

    Returns:
        Captions in canonical tone order

    Raises:
        ValueError: If the response does not have the expected shape
    """
    if not raw:
        raise ValueError("empty response")

    try:
        payload = json.loads(strip_code_fences(raw))
    except json.JSONDecodeError as e:
        raise ValueError(f"response is not valid JSON: {e}") from e

    try:
        batch = _RawCaptionBatch.model_validate(payload)
    except ValidationError as e:
        raise ValueError(f"unexpected response structure: {e.error_count()} errors") from e

    tones = [item.tone for item in batch.captions]
    if set(tones) != set(Tone):
        raise ValueError(f"expected one caption per tone, got {[t.value for t in tones]}")

    by_tone = {item.tone: item.text for item in batch.captions}
    return [Caption(tone=tone, text=truncate_caption(by_tone[tone])) for tone in Tone.ordered()]


class CaptionGenerator:
    """Client for the hosted caption model."""

    def __init__(
        self,
        client: Optional[Any],
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        max_tokens: int = 200,
    ) -> None:
        """
        Initialize the generator.

        Args:
            client: ``openai.AsyncOpenAI`` client, or None when no key is configured
            model: Chat model name
            temperature: Sampling temperature
            max_tokens: Completion token cap
        """
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def attempt(self, topic: str, template: PromptTemplate) -> GenerationAttempt:
        """
        Make one generation call with ``template``.

        Args:
            topic: Meme topic
            template: Prompt variant to use

        Returns:
            GenerationAttempt with captions, or with a description of the
            structural problem found in the response

        Raises:
            CaptionGenerationError: If the provider is unavailable or the call fails
        """
        if self.client is None:
            raise CaptionGenerationError("Caption provider is not configured")

        start_time = time.perf_counter()
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": template.system},
                    {"role": "user", "content": template.render(topic)},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            logger.error(f"Caption provider call failed ({template.name} prompt): {e}")
            raise CaptionGenerationError(
                "Caption provider request failed", original_error=e
            ) from e

        duration_ms = round((time.perf_counter() - start_time) * 1000)
        logger.info(f"Caption provider call ({template.name} prompt) completed in {duration_ms}ms")

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError):
            return GenerationAttempt(template=template.name, problem="malformed response wrapper")

        try:
            captions = parse_captions(content)
        except ValueError as e:
            logger.warning(f"Invalid caption response ({template.name} prompt): {e}")
            return GenerationAttempt(template=template.name, problem=str(e))

        return GenerationAttempt(template=template.name, captions=captions)
