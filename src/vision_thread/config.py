"""Application configuration."""

import os
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

NarrativeProvider = Literal["gemini", "openai", "anthropic"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    session_secret: str
    environment: str = _ENVIRONMENT
    log_level: str = "INFO"
    narrative_provider: NarrativeProvider = "gemini"
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.5-pro"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o"
    anthropic_api_key: str | None = None
    anthropic_model: str = "claude-sonnet-4-20250514"
    generator_timeout_seconds: float = 120.0
    overload_retries: int = 3
    overload_backoff_seconds: float = 2.0
    max_upload_bytes: int = 10 * 1024 * 1024
    session_timeout_seconds: int = 24 * 60 * 60
    sweep_interval_seconds: int = 60 * 60
    image_fetch_timeout_seconds: float = 20.0

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    def provider_api_key(self) -> str | None:
        """Return the API key for the configured narrative provider."""
        keys = {
            "gemini": self.gemini_api_key,
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
        }
        return keys[self.narrative_provider]
