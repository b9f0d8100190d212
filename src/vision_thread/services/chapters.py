"""Chapter orchestration: image in, numbered story chapter out."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from vision_thread.domain.chapters import (
    Chapter,
    ChapterContext,
    ChapterDraft,
    ExportedChapter,
    ImagePayload,
    StoryExport,
)
from vision_thread.domain.errors import (
    StorageInternalError,
    UpstreamGeneratorError,
    ValidationError,
)
from vision_thread.domain.narrative import NarrativeResult
from vision_thread.services.narrative import NarrativeGenerator
from vision_thread.services.store import SessionStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


@dataclass
class ChapterService:
    """Builds chapters from uploaded images using prior chapters as context."""

    store: SessionStore
    generator: NarrativeGenerator
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    generator_timeout_seconds: float | None = None

    def validate_image(self, image: ImagePayload) -> None:
        """Reject empty, oversized or non-image payloads."""
        if not image.data:
            raise ValidationError("Image payload is empty")
        if image.size > self.max_upload_bytes:
            raise ValidationError(
                f"Image is {image.size} bytes; the limit is {self.max_upload_bytes}"
            )
        if not image.mime_type.lower().startswith("image/"):
            raise ValidationError("Only image files are allowed")

    async def create_chapter_from_image(
        self,
        session_id: str,
        image: ImagePayload,
        image_reference: str | None = None,
    ) -> Chapter:
        """Generate a narrative for the image and append it to the session."""
        self.validate_image(image)
        previous = self.list_chapters(session_id)
        context = [ChapterContext.from_chapter(chapter) for chapter in previous]

        logger.info(
            "Generating chapter",
            extra={"session_id": session_id, "context_chapters": len(context)},
        )
        analysis = await self._generate(image, context)

        draft = ChapterDraft(
            image_reference=image_reference or image.to_data_url(),
            narrative=analysis.narrative,
            connections=tuple(analysis.connections),
            tags=tuple(analysis.tags),
        )
        try:
            chapter = self.store.append(session_id, draft)
        except Exception as exc:
            raise StorageInternalError(f"Failed to store chapter: {exc}") from exc
        logger.info(
            "Stored chapter %d",
            chapter.chapter_number,
            extra={"session_id": session_id},
        )
        return chapter

    def list_chapters(self, session_id: str) -> list[Chapter]:
        """Return the session's chapters in story order."""
        try:
            return self.store.list(session_id)
        except Exception as exc:
            raise StorageInternalError(f"Failed to read chapters: {exc}") from exc

    def reset_story(self, session_id: str) -> None:
        """Delete every chapter in the session."""
        try:
            self.store.clear(session_id)
        except Exception as exc:
            raise StorageInternalError(f"Failed to clear chapters: {exc}") from exc

    def export_story(self, session_id: str) -> StoryExport:
        """Return a titled, downloadable summary of the session's story."""
        chapters = self.list_chapters(session_id)
        return StoryExport(
            title=f"Visual Story - {len(chapters)} Chapters",
            created_at=datetime.now(tz=UTC),
            chapters=[
                ExportedChapter(
                    chapter_number=chapter.chapter_number,
                    narrative=chapter.narrative,
                    connections=chapter.connections,
                    tags=chapter.tags,
                    created_at=chapter.created_at,
                )
                for chapter in chapters
            ],
        )

    async def _generate(
        self, image: ImagePayload, context: list[ChapterContext]
    ) -> NarrativeResult:
        try:
            async with asyncio.timeout(self.generator_timeout_seconds):
                return await self.generator.generate(image, context)
        except TimeoutError as exc:
            raise UpstreamGeneratorError(
                "Failed to analyze image: narrative provider timed out after "
                f"{self.generator_timeout_seconds}s"
            ) from exc
        except UpstreamGeneratorError:
            raise
        except Exception as exc:
            raise UpstreamGeneratorError(f"Failed to analyze image: {exc}") from exc
