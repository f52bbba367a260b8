"""Application configuration module."""

from functools import lru_cache
from typing import List, Optional, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings using Pydantic BaseSettings.

    Automatically reads from environment variables and an optional ``.env`` file.
    """

    # Application settings
    app_name: str = "Meme Factory"
    app_version: str = "0.1.0"
    app_env: str = "development"
    log_level: str = "INFO"
    log_json: bool = True

    # API settings
    api_prefix: str = "/api"
    api_docs_url: str = "/docs"

    # CORS settings
    cors_origins: List[str] = ["*"]

    # OpenAI settings (captions and moderation)
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_moderation_model: str = "omni-moderation-latest"
    caption_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    caption_max_tokens: int = Field(default=200, gt=0)

    # Watermark
    enable_watermark: bool = True
    watermark_text: str = "meme-factory.app"

    # Rate limiting
    rate_limit_max: int = Field(default=10, gt=0)
    rate_limit_window: int = Field(default=3600, gt=0)  # seconds
    redis_url: Optional[str] = None

    # Moderation bypass, for controlled non-production use only
    skip_moderation: bool = False

    # Rendering
    font_path: Optional[str] = None

    @field_validator("openai_api_key", "redis_url", "font_path", mode="before")
    @classmethod
    def empty_string_to_none(cls, v: Any) -> Any:
        """Treat empty environment values as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def llm_configured(self) -> bool:
        """Whether an LLM provider key is present."""
        return self.openai_api_key is not None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Get the cached application settings.

    Returns:
        Settings instance
    """
    return Settings()


settings = get_settings()
