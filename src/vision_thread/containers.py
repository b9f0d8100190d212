"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta

from vision_thread.adapters.anthropic_narrative_client import (
    AnthropicNarrativeClient,
)
from vision_thread.adapters.gemini_narrative_client import GeminiNarrativeClient
from vision_thread.adapters.image_fetcher import HttpxImageFetcher, ImageFetcher
from vision_thread.adapters.openai_narrative_client import OpenAINarrativeClient
from vision_thread.config import Settings
from vision_thread.services.chapters import ChapterService
from vision_thread.services.narrative import NarrativeGenerator
from vision_thread.services.store import SessionStore
from vision_thread.services.sweeper import SessionSweeper


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    session_store: SessionStore
    narrative_generator: NarrativeGenerator
    image_fetcher: ImageFetcher
    chapter_service: ChapterService
    session_sweeper: SessionSweeper
    close_resources: Callable[[], Awaitable[None]]


def build_narrative_generator(
    settings: Settings,
) -> tuple[NarrativeGenerator, Callable[[], Awaitable[None]] | None]:
    """Create the configured narrative generator and its close hook, if any."""
    api_key = settings.provider_api_key()
    if not api_key:
        env_name = f"{settings.narrative_provider.upper()}_API_KEY"
        raise ValueError(
            f"{env_name} is not configured. "
            f"Set it to use the {settings.narrative_provider} narrative provider."
        )
    if settings.narrative_provider == "openai":
        openai_client = OpenAINarrativeClient.create(api_key, settings.openai_model)
        return openai_client, openai_client.close
    if settings.narrative_provider == "anthropic":
        anthropic_client = AnthropicNarrativeClient.create(
            api_key, settings.anthropic_model
        )
        return anthropic_client, anthropic_client.close
    gemini_client = GeminiNarrativeClient.create(
        api_key,
        model=settings.gemini_model,
        overload_retries=settings.overload_retries,
        overload_backoff_seconds=settings.overload_backoff_seconds,
    )
    return gemini_client, gemini_client.close


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    session_store = SessionStore()
    narrative_generator, close_generator = build_narrative_generator(
        resolved_settings
    )
    image_fetcher = HttpxImageFetcher.create(
        timeout=resolved_settings.image_fetch_timeout_seconds,
        max_bytes=resolved_settings.max_upload_bytes,
    )
    chapter_service = ChapterService(
        store=session_store,
        generator=narrative_generator,
        max_upload_bytes=resolved_settings.max_upload_bytes,
        generator_timeout_seconds=resolved_settings.generator_timeout_seconds,
    )
    session_sweeper = SessionSweeper(
        store=session_store,
        interval_seconds=resolved_settings.sweep_interval_seconds,
        timeout=timedelta(seconds=resolved_settings.session_timeout_seconds),
    )

    async def close_resources() -> None:
        await session_sweeper.stop()
        await image_fetcher.close()
        if close_generator is not None:
            await close_generator()

    return AppContainer(
        settings=resolved_settings,
        session_store=session_store,
        narrative_generator=narrative_generator,
        image_fetcher=image_fetcher,
        chapter_service=chapter_service,
        session_sweeper=session_sweeper,
        close_resources=close_resources,
    )
