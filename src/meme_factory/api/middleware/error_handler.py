"""Exception handlers that render the API error envelope."""

import logging
from typing import Any, Dict, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ...exceptions import ErrorCode, MemeFactoryError

# Configure logger
logger = logging.getLogger(__name__)


def error_body(code: ErrorCode, message: str, retryable: bool) -> Dict[str, Any]:
    """Build the ``{success: false, error: {...}}`` envelope."""
    return {
        "success": False,
        "error": {"code": code.value, "message": message, "retryable": retryable},
    }


def error_response(
    exc: MemeFactoryError, headers: Optional[Mapping[str, str]] = None
) -> JSONResponse:
    """
    Convert a Meme Factory error into a JSON response.

    Args:
        exc: The error to render
        headers: Extra headers merged over the error's own headers

    Returns:
        JSONResponse with the error's status code
    """
    merged = dict(exc.headers)
    if headers:
        merged.update(headers)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict()},
        headers=merged or None,
    )


async def meme_factory_error_handler(request: Request, exc: MemeFactoryError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            f"{request.method} {request.url.path} failed: {exc.code.value} {exc.message}",
            exc_info=exc.original_error,
        )
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code.value}")
    return error_response(exc)


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.info(f"{request.method} {request.url.path} invalid body: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content=error_body(ErrorCode.INVALID_INPUT, "Request body is malformed", False),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error during {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=error_body(
            ErrorCode.GENERATION_FAILED, "Generation failed. Please try again.", True
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the error envelope handlers on ``app``."""
    app.add_exception_handler(MemeFactoryError, meme_factory_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
