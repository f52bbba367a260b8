"""Router for meme generation and moderation endpoints."""

import logging

from fastapi import APIRouter, Depends, Request, Response
from pydantic import ValidationError

from ...exceptions import InvalidInputError
from ...models.schemas.memes import (
    ErrorResponse,
    MemeGenerationRequest,
    MemeGenerationResponse,
    ModerationRequest,
    ModerationResponse,
)
from ...services.meme_service import MemeService
from ...services.moderation import ContentSafetyGate
from ..dependencies import get_client_id, get_meme_service, get_safety_gate

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid input or flagged content"},
    429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    500: {"model": ErrorResponse, "description": "Generation failed"},
}

GENERATE_REQUEST_BODY = {
    "requestBody": {
        "required": True,
        "content": {"application/json": {"schema": MemeGenerationRequest.model_json_schema()}},
    }
}


async def read_generation_request(http_request: Request) -> MemeGenerationRequest:
    """
    Parse the generation body.

    Raises:
        InvalidInputError: The body is not JSON or does not match the schema
    """
    try:
        payload = await http_request.json()
    except ValueError as e:
        raise InvalidInputError("Request body is malformed", original_error=e) from e
    try:
        return MemeGenerationRequest.model_validate(payload)
    except ValidationError as e:
        raise InvalidInputError("Request body is malformed", original_error=e) from e


@router.post(
    "/generate",
    response_model=MemeGenerationResponse,
    responses=ERROR_RESPONSES,
    openapi_extra=GENERATE_REQUEST_BODY,
)
async def generate_memes(
    http_request: Request,
    response: Response,
    client_id: str = Depends(get_client_id),
    meme_service: MemeService = Depends(get_meme_service),
) -> MemeGenerationResponse:
    """
    Generate three captioned memes and a collage from an image and a topic.

    Args:
        http_request: Raw request; the body is read only after the quota check
        response: Outgoing response, used to set quota headers
        client_id: Caller identity for rate limiting
        meme_service: Generation service

    Returns:
        The memes in tone order, the collage and the generation time
    """
    logger.info(f"Generation request from {client_id}")
    rate_limit = await meme_service.check_rate(client_id)
    request = await read_generation_request(http_request)
    result = await meme_service.generate(request, client_id, rate_limit=rate_limit)

    response.headers["X-RateLimit-Remaining"] = str(result.rate_limit.remaining)
    response.headers["X-RateLimit-Reset"] = result.rate_limit.reset_at.isoformat()
    return MemeGenerationResponse.from_result(result)


@router.post("/moderate", response_model=ModerationResponse, responses={400: ERROR_RESPONSES[400]})
async def moderate_text(
    request: ModerationRequest,
    safety_gate: ContentSafetyGate = Depends(get_safety_gate),
) -> ModerationResponse:
    """
    Check a piece of text against the content policy.

    Returns:
        Verdict with flagged/safe booleans and category labels
    """
    if not request.text or not request.text.strip():
        raise InvalidInputError("Text is required")

    verdict = await safety_gate.moderate(request.text)
    return ModerationResponse.from_verdict(verdict)
