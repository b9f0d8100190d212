"""FastAPI application factory."""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from uuid import uuid4

import pydantic
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile
from starlette.middleware.sessions import SessionMiddleware

from vision_thread.api.models import (
    ChapterCreateRequest,
    ChapterResponse,
    StoryExportResponse,
)
from vision_thread.app_logging import configure_logging
from vision_thread.containers import AppContainer
from vision_thread.domain.chapters import ImagePayload
from vision_thread.domain.errors import ValidationError
from vision_thread.services.images import decode_base64_image, detect_mime_type

SESSION_KEY = "sid"


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)
    started_at = time.monotonic()
    settings = container.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.container.session_sweeper.start()
        yield
        await app.state.container.close_resources()

    app = FastAPI(title="VisionThread", lifespan=lifespan)
    app.state.container = container
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        max_age=settings.session_timeout_seconds,
        same_site="lax",
        https_only=settings.environment != "local",
    )

    def _health_payload() -> dict[str, object]:
        return {
            "status": "healthy",
            "uptime": time.monotonic() - started_at,
            "timestamp": datetime.now(tz=UTC).isoformat(),
        }

    @app.get("/health")
    async def health() -> dict[str, object]:
        """Liveness probe."""
        return _health_payload()

    @app.get("/api/health")
    async def api_health() -> dict[str, object]:
        """Liveness probe for the API prefix."""
        return {**_health_payload(), "message": "VisionThread API is running"}

    @app.get("/api/chapters", response_model=list[ChapterResponse])
    async def list_chapters(request: Request) -> list[ChapterResponse] | JSONResponse:
        """Return the caller's story chapters in order."""
        state_container: AppContainer = request.app.state.container
        session_id = _session_id(request)
        try:
            chapters = state_container.chapter_service.list_chapters(session_id)
        except Exception as exc:
            logger.exception("Error fetching chapters")
            return _error(500, "Failed to fetch chapters", exc)
        logger.info(
            "Found %d chapters", len(chapters), extra={"session_id": session_id}
        )
        return [ChapterResponse.from_chapter(chapter) for chapter in chapters]

    @app.post("/api/analyze-image", response_model=ChapterResponse)
    async def analyze_image(request: Request) -> ChapterResponse | JSONResponse:
        """Create a chapter from a multipart image upload."""
        form = await request.form()
        image = form.get("image")
        if not isinstance(image, UploadFile):
            return JSONResponse(
                status_code=400, content={"error": "No image file provided"}
            )
        state_container: AppContainer = request.app.state.container
        session_id = _session_id(request)
        try:
            # One byte past the limit is enough for validation to reject it.
            data = await image.read(settings.max_upload_bytes + 1)
            payload = _image_payload(data, image.content_type)
            chapter = await state_container.chapter_service.create_chapter_from_image(
                session_id, payload
            )
        except ValidationError as exc:
            logger.warning("Rejected image upload: %s", exc)
            return _error(400, "Invalid image", exc)
        except Exception as exc:
            logger.exception("Error analyzing image")
            return _error(500, "Failed to analyze image", exc)
        finally:
            await image.close()
        return ChapterResponse.from_chapter(chapter)

    @app.post("/api/chapters", response_model=ChapterResponse)
    async def create_chapter(request: Request) -> ChapterResponse | JSONResponse:
        """Create a chapter from an image URL or inline base64 data."""
        state_container: AppContainer = request.app.state.container
        session_id = _session_id(request)
        try:
            body = ChapterCreateRequest.model_validate(await request.json())
        except pydantic.ValidationError as exc:
            return JSONResponse(
                status_code=400,
                content={
                    "error": "Invalid request data",
                    "details": exc.errors(include_url=False, include_context=False),
                },
            )
        except ValueError as exc:
            return _error(400, "Invalid request data", exc)

        try:
            if body.base64_image:
                payload = decode_base64_image(body.base64_image)
            elif body.is_remote:
                payload = await state_container.image_fetcher.fetch(body.image_url)
            else:
                return JSONResponse(
                    status_code=400, content={"error": "Unable to process image"}
                )
            chapter = await state_container.chapter_service.create_chapter_from_image(
                session_id, payload, image_reference=body.image_url
            )
        except ValidationError as exc:
            logger.warning("Rejected chapter image: %s", exc)
            return _error(400, "Invalid image", exc)
        except Exception as exc:
            logger.exception("Error creating chapter")
            return _error(500, "Failed to create chapter", exc)
        return ChapterResponse.from_chapter(chapter)

    @app.delete("/api/chapters", response_model=None)
    async def delete_chapters(request: Request) -> dict[str, str] | JSONResponse:
        """Reset the caller's story."""
        state_container: AppContainer = request.app.state.container
        try:
            state_container.chapter_service.reset_story(_session_id(request))
        except Exception as exc:
            logger.exception("Error deleting chapters")
            return _error(500, "Failed to delete chapters", exc)
        return {"message": "All chapters deleted successfully"}

    @app.get("/api/export", response_model=None)
    async def export_story(request: Request) -> JSONResponse:
        """Download the caller's story as a JSON document."""
        state_container: AppContainer = request.app.state.container
        try:
            export = state_container.chapter_service.export_story(
                _session_id(request)
            )
        except Exception as exc:
            logger.exception("Error exporting story")
            return _error(500, "Failed to export story", exc)
        filename = f"visual-story-{int(time.time() * 1000)}.json"
        return JSONResponse(
            content=StoryExportResponse.from_export(export).model_dump(
                mode="json", by_alias=True
            ),
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    return app


def _session_id(request: Request) -> str:
    """Return the opaque session id, issuing one on first contact."""
    session_id = request.session.get(SESSION_KEY)
    if not session_id:
        session_id = str(uuid4())
        request.session[SESSION_KEY] = session_id
    return session_id


def _image_payload(data: bytes, content_type: str | None) -> ImagePayload:
    return ImagePayload(data=data, mime_type=content_type or detect_mime_type(data))


def _error(status_code: int, error: str, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"error": error, "details": str(exc)}
    )
