"""Narrative generation contract and helpers shared by provider adapters."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Protocol, TypeVar

from vision_thread.domain.chapters import ChapterContext, ImagePayload
from vision_thread.domain.narrative import (
    FALLBACK_NARRATIVE,
    FALLBACK_THEME,
    NarrativeResult,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SYSTEM_PROMPT = """You are a creative storyteller and image analyst. Your task is to \
analyze images and create compelling narratives that connect to previous images in \
a continuous story.

For each image, provide:
1. A detailed, creative narrative (150-200 words) that describes the image and \
connects it to previous chapters
2. Specific connections to previous images/chapters (if any)
3. Relevant tags that capture key themes, objects, or emotions
4. An overall theme for this chapter

Maintain a consistent tone throughout the story and make creative, meaningful \
connections between images. The narrative should feel like chapters in a \
continuous story.

Respond with JSON in this exact format:
{
  "narrative": "detailed story narrative here",
  "connections": ["connection to previous chapter 1", "connection to previous chapter 2"],
  "tags": ["tag1", "tag2", "tag3"],
  "theme": "main theme of this chapter"
}"""

NEW_STORY_PROMPT = (
    "This is the first image in a new story. Analyze it and create an engaging "
    "narrative that will serve as the foundation for future chapters."
)

CONTINUE_STORY_PROMPT = (
    "Now, analyze the new image and continue the story, making creative "
    "connections to the previous chapters while maintaining the same narrative "
    "tone and style."
)


class NarrativeGenerator(Protocol):
    """Interface for turning an image plus story context into a chapter."""

    async def generate(
        self, image: ImagePayload, context: Sequence[ChapterContext]
    ) -> NarrativeResult:
        """Return the narrative, connections, tags and theme for the image."""


def build_context_prompt(context: Sequence[ChapterContext]) -> str:
    """Describe prior chapters, or ask for a new story when there are none."""
    if not context:
        return NEW_STORY_PROMPT
    blocks = [
        f"Chapter {chapter.chapter_number}: {chapter.narrative}\n"
        f"Tags: {', '.join(chapter.tags)}"
        for chapter in context
    ]
    return (
        "Previous story chapters for context:\n"
        + "\n\n".join(blocks)
        + f"\n\n{CONTINUE_STORY_PROMPT}"
    )


def parse_narrative_payload(raw: str | Mapping[str, object] | None) -> NarrativeResult:
    """Parse a provider response, substituting fallbacks for bad fields."""
    payload: object = raw
    if raw is None or isinstance(raw, str):
        try:
            payload = json.loads(_strip_code_fence(raw or ""))
        except json.JSONDecodeError:
            logger.warning("Narrative response was not valid JSON")
            return NarrativeResult()
    if not isinstance(payload, Mapping):
        logger.warning(
            "Narrative response was not a JSON object",
            extra={"payload_type": type(payload).__name__},
        )
        return NarrativeResult()

    narrative = _non_empty_string(payload.get("narrative"))
    if narrative is None:
        logger.warning("Narrative response missing narrative text")
    return NarrativeResult(
        narrative=narrative or FALLBACK_NARRATIVE,
        connections=_string_list(payload.get("connections")),
        tags=_string_list(payload.get("tags")),
        theme=_non_empty_string(payload.get("theme")) or FALLBACK_THEME,
    )


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    # ```json\n{...}\n```
    body = stripped.split("\n", maxsplit=1)[1] if "\n" in stripped else ""
    return body.rsplit("```", maxsplit=1)[0].strip()


def _non_empty_string(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _string_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def is_overloaded_error(exc: BaseException) -> bool:
    """Return true for transient provider overload failures."""
    message = str(exc).lower()
    return "503" in message or "overloaded" in message


async def call_with_overload_retry(
    call: Callable[[], Awaitable[T]],
    *,
    retries: int = 3,
    backoff_seconds: float = 2.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Retry ``call`` on overload errors with linearly growing waits.

    Waits are ``attempt * backoff_seconds`` (2s, 4s, 6s by default). Any other
    error, or an overload after the last retry, is re-raised.
    """
    attempt = 0
    while True:
        try:
            return await call()
        except Exception as exc:
            if attempt >= retries or not is_overloaded_error(exc):
                raise
            attempt += 1
            wait = attempt * backoff_seconds
            logger.warning(
                "Narrative provider overloaded, retrying in %.1fs (%d retries left)",
                wait,
                retries - attempt + 1,
            )
            await sleep(wait)
