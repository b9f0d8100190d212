"""Request and response models for the story API."""

from datetime import datetime
from urllib.parse import urlparse
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from vision_thread.domain.chapters import Chapter, ExportedChapter, StoryExport


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChapterCreateRequest(_CamelModel):
    """Body for creating a chapter from an image URL or inline data."""

    image_url: str
    base64_image: str | None = None

    @field_validator("image_url")
    @classmethod
    def _require_absolute_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme == "data" and parsed.path:
            return value
        if parsed.scheme in {"http", "https"} and parsed.netloc:
            return value
        raise ValueError("imageUrl must be an absolute http(s) or data URL")

    @property
    def is_remote(self) -> bool:
        return urlparse(self.image_url).scheme in {"http", "https"}


class ChapterResponse(_CamelModel):
    """Chapter as returned to clients."""

    id: UUID
    image_url: str
    narrative: str
    connections: list[str]
    tags: list[str]
    chapter_number: int
    created_at: datetime

    @classmethod
    def from_chapter(cls, chapter: Chapter) -> "ChapterResponse":
        return cls(
            id=chapter.id,
            image_url=chapter.image_reference,
            narrative=chapter.narrative,
            connections=list(chapter.connections),
            tags=list(chapter.tags),
            chapter_number=chapter.chapter_number,
            created_at=chapter.created_at,
        )


class ExportedChapterResponse(_CamelModel):
    chapter_number: int
    narrative: str
    connections: list[str]
    tags: list[str]
    created_at: datetime

    @classmethod
    def from_exported(cls, chapter: ExportedChapter) -> "ExportedChapterResponse":
        return cls(
            chapter_number=chapter.chapter_number,
            narrative=chapter.narrative,
            connections=list(chapter.connections),
            tags=list(chapter.tags),
            created_at=chapter.created_at,
        )


class StoryExportResponse(_CamelModel):
    """Downloadable story document."""

    title: str
    created_at: datetime
    chapters: list[ExportedChapterResponse]

    @classmethod
    def from_export(cls, export: StoryExport) -> "StoryExportResponse":
        return cls(
            title=export.title,
            created_at=export.created_at,
            chapters=[
                ExportedChapterResponse.from_exported(chapter)
                for chapter in export.chapters
            ],
        )
