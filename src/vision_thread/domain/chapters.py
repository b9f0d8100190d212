"""Domain models for story chapters."""

import base64
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True)
class ImagePayload:
    """Raw image bytes with their MIME type."""

    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)

    def to_base64(self) -> str:
        """Return the image bytes as base64 text."""
        return base64.b64encode(self.data).decode("utf-8")

    def to_data_url(self) -> str:
        """Return the image as an embedded data URL."""
        return f"data:{self.mime_type};base64,{self.to_base64()}"


@dataclass(frozen=True)
class ChapterDraft:
    """Generated chapter content that has not been numbered yet."""

    image_reference: str
    narrative: str
    connections: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class Chapter:
    """Represents one analyzed image within a session's story."""

    id: UUID
    image_reference: str
    narrative: str
    connections: tuple[str, ...]
    tags: tuple[str, ...]
    chapter_number: int
    created_at: datetime


@dataclass(frozen=True)
class ChapterContext:
    """Reduced view of a prior chapter passed to the narrative generator."""

    chapter_number: int
    narrative: str
    tags: tuple[str, ...]

    @classmethod
    def from_chapter(cls, chapter: Chapter) -> "ChapterContext":
        return cls(
            chapter_number=chapter.chapter_number,
            narrative=chapter.narrative,
            tags=chapter.tags,
        )


@dataclass(frozen=True)
class ExportedChapter:
    """Chapter summary included in a story export."""

    chapter_number: int
    narrative: str
    connections: tuple[str, ...]
    tags: tuple[str, ...]
    created_at: datetime


@dataclass(frozen=True)
class StoryExport:
    """Downloadable snapshot of a session's story."""

    title: str
    created_at: datetime
    chapters: list[ExportedChapter]
