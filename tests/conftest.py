"""Shared test fixtures."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import pytest

from vision_thread.config import Settings
from vision_thread.containers import AppContainer
from vision_thread.domain.chapters import ChapterContext, ImagePayload
from vision_thread.domain.narrative import NarrativeResult
from vision_thread.services.chapters import ChapterService
from vision_thread.services.narrative import NarrativeGenerator
from vision_thread.services.store import SessionStore
from vision_thread.services.sweeper import SessionSweeper

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"fake-png-body"


@dataclass
class FakeNarrativeGenerator(NarrativeGenerator):
    """Fake generator that records calls and returns a fixed result."""

    result: NarrativeResult = field(
        default_factory=lambda: NarrativeResult(
            narrative="A lighthouse keeper watches the storm roll in.",
            connections=[],
            tags=["lighthouse", "storm"],
            theme="Solitude",
        )
    )
    error: Exception | None = None
    calls: list[tuple[ImagePayload, list[ChapterContext]]] = field(
        default_factory=list
    )

    async def generate(
        self, image: ImagePayload, context: Sequence[ChapterContext]
    ) -> NarrativeResult:
        self.calls.append((image, list(context)))
        if self.error is not None:
            raise self.error
        return self.result


@dataclass
class FakeImageFetcher:
    """Fake image fetcher returning static bytes."""

    payload: ImagePayload = field(
        default_factory=lambda: ImagePayload(data=PNG_BYTES, mime_type="image/png")
    )
    urls: list[str] = field(default_factory=list)

    async def fetch(self, url: str) -> ImagePayload:
        self.urls.append(url)
        return self.payload


@dataclass
class ManualClock:
    """Clock that only moves when told to."""

    now: datetime = field(default_factory=lambda: datetime(2024, 5, 1, tzinfo=UTC))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        session_secret="test-secret",
        environment="local",
        gemini_api_key="gemini-key",
        openai_api_key="openai-key",
        anthropic_api_key="anthropic-key",
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store(clock: ManualClock) -> SessionStore:
    return SessionStore(clock=clock)


@pytest.fixture
def generator() -> FakeNarrativeGenerator:
    return FakeNarrativeGenerator()


@pytest.fixture
def image_fetcher() -> FakeImageFetcher:
    return FakeImageFetcher()


@pytest.fixture
def container(
    settings: Settings,
    store: SessionStore,
    generator: FakeNarrativeGenerator,
    image_fetcher: FakeImageFetcher,
) -> AppContainer:
    chapter_service = ChapterService(
        store=store,
        generator=generator,
        max_upload_bytes=settings.max_upload_bytes,
        generator_timeout_seconds=settings.generator_timeout_seconds,
    )
    session_sweeper = SessionSweeper(
        store=store,
        interval_seconds=settings.sweep_interval_seconds,
        timeout=timedelta(seconds=settings.session_timeout_seconds),
    )

    async def close_resources() -> None:
        await session_sweeper.stop()

    return AppContainer(
        settings=settings,
        session_store=store,
        narrative_generator=generator,
        image_fetcher=image_fetcher,
        chapter_service=chapter_service,
        session_sweeper=session_sweeper,
        close_resources=close_resources,
    )
