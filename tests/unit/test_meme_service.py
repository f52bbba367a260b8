"""Tests for the generation orchestrator."""

import base64
from typing import TYPE_CHECKING, Any, Callable, Dict
from unittest.mock import AsyncMock, MagicMock

import pytest

from meme_factory.exceptions import (
    ContentFlaggedError,
    GeneratedContentFlaggedError,
    GenerationFailedError,
    ImageTooLargeError,
    InvalidImageInputError,
    InvalidInputError,
    RateLimitedError,
    TopicTooLongError,
)
from meme_factory.models.meme import ModerationVerdict, Tone
from meme_factory.models.schemas.memes import MemeGenerationRequest
import meme_factory.services.meme_service as meme_service_module
from meme_factory.services.caption_generator import SIMPLIFIED_PROMPT, CaptionGenerator
from meme_factory.services.meme_service import MemeService
from meme_factory.services.moderation import ContentSafetyGate
from meme_factory.services.rate_limiter import InMemoryRateLimiter

if TYPE_CHECKING:
    from pytest_mock.plugin import MockerFixture


@pytest.fixture
def service(mock_openai_client: MagicMock, mock_moderator: MagicMock) -> MemeService:
    return MemeService(
        rate_limiter=InMemoryRateLimiter(max_requests=10, window_seconds=3600),
        safety_gate=ContentSafetyGate(mock_moderator),
        caption_generator=CaptionGenerator(mock_openai_client),
        watermark_text="meme-factory.app",
    )


def make_request(body: Dict[str, Any], **overrides: Any) -> MemeGenerationRequest:
    return MemeGenerationRequest(**{**body, **overrides})


@pytest.mark.asyncio
async def test_generate_end_to_end(
    service: MemeService, generation_request_body: Dict[str, Any]
) -> None:
    """Test three memes in tone order, each with a short caption, plus a collage."""
    result = await service.generate(make_request(generation_request_body), "1.2.3.4")

    assert len(result.memes) == 3
    assert [meme.tone for meme in result.memes] == [
        Tone.SARCASTIC,
        Tone.WHOLESOME,
        Tone.DARK_HUMOR,
    ]
    for index, meme in enumerate(result.memes):
        assert meme.caption.text
        assert len(meme.caption.text) <= 70
        assert meme.id == f"{result.request_id}-{index}"
        assert meme.image.size == (800, 600)
    assert result.collage.width == 1840
    assert result.generation_time_ms >= 0
    assert result.rate_limit.remaining == 9


@pytest.mark.asyncio
async def test_captions_stay_matched_to_tones(
    service: MemeService,
    mock_openai_client: MagicMock,
    completion_factory: Callable,
    caption_json: Callable[..., str],
    generation_request_body: Dict[str, Any],
    mocker: "MockerFixture",
) -> None:
    """Test that each rendered meme carries the caption generated for its tone."""
    mock_openai_client.chat.completions.create.return_value = completion_factory(
        caption_json(sarcastic="S caption", wholesome="W caption", dark_humor="D caption")
    )
    render = mocker.spy(meme_service_module, "render_meme")

    result = await service.generate(make_request(generation_request_body), "client")

    assert [meme.caption.text for meme in result.memes] == ["S caption", "W caption", "D caption"]
    rendered_captions = sorted(call.args[1] for call in render.call_args_list)
    assert rendered_captions == ["D caption", "S caption", "W caption"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [{"topic": ""}, {"topic": "   "}, {"topic": None}, {"image": ""}, {"image": None}],
)
async def test_missing_input_rejected_before_external_calls(
    service: MemeService,
    mock_openai_client: MagicMock,
    mock_moderator: MagicMock,
    generation_request_body: Dict[str, Any],
    overrides: Dict[str, Any],
) -> None:
    with pytest.raises(InvalidInputError) as exc_info:
        await service.generate(make_request(generation_request_body, **overrides), "client")

    assert exc_info.value.code.value == "INVALID_INPUT"
    assert not exc_info.value.retryable
    mock_moderator.check.assert_not_awaited()
    mock_openai_client.chat.completions.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_topic_too_long_rejected_before_moderation(
    service: MemeService, mock_moderator: MagicMock, generation_request_body: Dict[str, Any]
) -> None:
    """Test that a 121 character topic fails with TOPIC_TOO_LONG and no moderation call."""
    with pytest.raises(TopicTooLongError) as exc_info:
        await service.generate(make_request(generation_request_body, topic="x" * 121), "client")

    assert exc_info.value.code.value == "TOPIC_TOO_LONG"
    mock_moderator.check.assert_not_awaited()


def test_topic_at_limit_accepted(
    service: MemeService, generation_request_body: Dict[str, Any]
) -> None:
    _, topic = service.validate_request(make_request(generation_request_body, topic="y" * 120))

    assert topic == "y" * 120


def test_topic_length_counts_surrounding_whitespace(
    service: MemeService, generation_request_body: Dict[str, Any]
) -> None:
    with pytest.raises(TopicTooLongError):
        service.validate_request(make_request(generation_request_body, topic="a" * 118 + "   "))


def test_topic_is_trimmed_after_length_check(
    service: MemeService, generation_request_body: Dict[str, Any]
) -> None:
    _, topic = service.validate_request(
        make_request(generation_request_body, topic="  " + "z" * 114 + "  ")
    )

    assert topic == "z" * 114


def test_plain_base64_accepted(service: MemeService, sample_image: bytes) -> None:
    request = MemeGenerationRequest(
        image=base64.b64encode(sample_image).decode("ascii"), topic="cats"
    )

    image_data, _ = service.validate_request(request)

    assert image_data == sample_image


@pytest.mark.parametrize(
    "image",
    ["data:image/png;base64,!!!not-base64!!!", base64.b64encode(b"hello world").decode("ascii")],
    ids=["bad-base64", "not-an-image"],
)
def test_invalid_image_rejected(service: MemeService, image: str) -> None:
    with pytest.raises(InvalidImageInputError) as exc_info:
        service.validate_request(MemeGenerationRequest(image=image, topic="cats"))

    assert exc_info.value.code.value == "INVALID_IMAGE"


def test_oversized_image_rejected(service: MemeService) -> None:
    payload = base64.b64encode(b"\0" * (5 * 1024 * 1024 + 1)).decode("ascii")

    with pytest.raises(ImageTooLargeError) as exc_info:
        service.validate_request(MemeGenerationRequest(image=payload, topic="cats"))

    assert exc_info.value.code.value == "IMAGE_TOO_LARGE"
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_flagged_topic_stops_generation(
    service: MemeService,
    mock_moderator: MagicMock,
    mock_openai_client: MagicMock,
    generation_request_body: Dict[str, Any],
) -> None:
    mock_moderator.check.return_value = ModerationVerdict(
        safe=False, categories=frozenset({"violence"})
    )

    with pytest.raises(ContentFlaggedError) as exc_info:
        await service.generate(make_request(generation_request_body), "client")

    assert exc_info.value.code.value == "CONTENT_FLAGGED"
    assert not exc_info.value.retryable
    mock_openai_client.chat.completions.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_flagged_caption_is_retryable(
    service: MemeService, mock_moderator: MagicMock, generation_request_body: Dict[str, Any]
) -> None:
    async def check(text: str) -> ModerationVerdict:
        return ModerationVerdict(safe=not text.startswith("Mondays:"))

    mock_moderator.check = AsyncMock(side_effect=check)

    with pytest.raises(GeneratedContentFlaggedError) as exc_info:
        await service.generate(make_request(generation_request_body), "client")

    assert exc_info.value.code.value == "GENERATED_CONTENT_FLAGGED"
    assert exc_info.value.retryable
    assert mock_moderator.check.await_count == 4


@pytest.mark.asyncio
async def test_malformed_captions_retried_once_with_simplified_prompt(
    service: MemeService,
    mock_openai_client: MagicMock,
    completion_factory: Callable,
    caption_json: Callable[..., str],
    generation_request_body: Dict[str, Any],
) -> None:
    """Test a single retry with the simplified prompt after a malformed response."""
    mock_openai_client.chat.completions.create.side_effect = [
        completion_factory('{"captions": []}'),
        completion_factory(caption_json()),
    ]

    result = await service.generate(make_request(generation_request_body), "client")

    assert len(result.memes) == 3
    create = mock_openai_client.chat.completions.create
    assert create.await_count == 2
    retry_messages = create.await_args_list[1].kwargs["messages"]
    assert retry_messages[0]["content"] == SIMPLIFIED_PROMPT.system


@pytest.mark.asyncio
async def test_two_malformed_responses_fail_generation(
    service: MemeService,
    mock_openai_client: MagicMock,
    completion_factory: Callable,
    generation_request_body: Dict[str, Any],
) -> None:
    mock_openai_client.chat.completions.create.return_value = completion_factory("nope")

    with pytest.raises(GenerationFailedError) as exc_info:
        await service.generate(make_request(generation_request_body), "client")

    assert exc_info.value.code.value == "GENERATION_FAILED"
    assert exc_info.value.retryable
    assert exc_info.value.status_code == 500
    assert mock_openai_client.chat.completions.create.await_count == 2


@pytest.mark.asyncio
async def test_provider_error_fails_generation(
    service: MemeService, mock_openai_client: MagicMock, generation_request_body: Dict[str, Any]
) -> None:
    mock_openai_client.chat.completions.create.side_effect = ConnectionError("reset")

    with pytest.raises(GenerationFailedError):
        await service.generate(make_request(generation_request_body), "client")

    assert mock_openai_client.chat.completions.create.await_count == 1


@pytest.mark.asyncio
async def test_render_failure_fails_generation(
    service: MemeService, generation_request_body: Dict[str, Any], mocker: "MockerFixture"
) -> None:
    """Test that one failing render surfaces as a single GENERATION_FAILED error."""
    mocker.patch(
        "meme_factory.services.meme_service.render_meme", side_effect=RuntimeError("bad buffer")
    )

    with pytest.raises(GenerationFailedError) as exc_info:
        await service.generate(make_request(generation_request_body), "client")

    assert exc_info.value.retryable
    assert isinstance(exc_info.value.original_error, RuntimeError)


@pytest.mark.asyncio
async def test_rate_limited_before_validation(
    mock_openai_client: MagicMock,
    mock_moderator: MagicMock,
    generation_request_body: Dict[str, Any],
) -> None:
    service = MemeService(
        rate_limiter=InMemoryRateLimiter(max_requests=1, window_seconds=3600),
        safety_gate=ContentSafetyGate(mock_moderator),
        caption_generator=CaptionGenerator(mock_openai_client),
    )
    await service.generate(make_request(generation_request_body), "client")
    mock_moderator.check.reset_mock()

    with pytest.raises(RateLimitedError) as exc_info:
        await service.generate(make_request(generation_request_body, topic=""), "client")

    error = exc_info.value
    assert error.code.value == "RATE_LIMIT_EXCEEDED"
    assert error.status_code == 429
    assert error.headers["X-RateLimit-Remaining"] == "0"
    assert 0 < int(error.headers["Retry-After"]) <= 3600
    mock_moderator.check.assert_not_awaited()


@pytest.mark.asyncio
async def test_precomputed_rate_limit_is_not_counted_twice(
    service: MemeService, generation_request_body: Dict[str, Any]
) -> None:
    rate_limit = await service.check_rate("client")

    result = await service.generate(
        make_request(generation_request_body), "client", rate_limit=rate_limit
    )

    assert result.rate_limit is rate_limit
    assert (await service.check_rate("client")).remaining == 8


@pytest.mark.parametrize(
    "include_watermark,expected",
    [(None, True), (True, True), (False, False)],
)
def test_watermark_follows_request_then_default(
    service: MemeService,
    generation_request_body: Dict[str, Any],
    include_watermark: Any,
    expected: bool,
) -> None:
    request = make_request(
        generation_request_body, include_watermark=include_watermark, text_position="bottom"
    )

    options = service._render_options(request)

    assert options.position == "bottom"
    assert options.watermark.enabled is expected
    assert options.watermark.text == "meme-factory.app"
