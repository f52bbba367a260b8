"""Health check router."""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends

from ...config.config import Settings
from ..dependencies import get_settings_dependency

router = APIRouter()


@router.get("/health", response_model=Dict[str, Any])
async def health_check(settings: Settings = Depends(get_settings_dependency)) -> Dict[str, Any]:
    """
    Health check endpoint.

    Returns:
        Dict containing health status and provider configuration presence
    """
    provider_status = "configured" if settings.llm_configured else "missing_key"
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.app_version,
        "env": settings.app_env,
        "ai_provider": "OpenAI",
        "services": {
            "llm": provider_status,
            "moderation": "disabled" if settings.skip_moderation else provider_status,
            "rate_limiter": "redis" if settings.redis_url else "memory",
        },
    }


@router.get("/health/liveness", response_model=Dict[str, Any])
async def liveness_check() -> Dict[str, Any]:
    """
    Liveness probe endpoint.

    Returns:
        Dict containing liveness status
    """
    return {"status": "alive"}
