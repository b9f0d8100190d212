"""Google Gemini client for narrative generation."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from google import genai
from google.genai import types

from vision_thread.domain.chapters import ChapterContext, ImagePayload
from vision_thread.domain.errors import UpstreamGeneratorError
from vision_thread.domain.narrative import NarrativeResponseSchema, NarrativeResult
from vision_thread.services.narrative import (
    SYSTEM_PROMPT,
    NarrativeGenerator,
    build_context_prompt,
    call_with_overload_retry,
    parse_narrative_payload,
)

logger = logging.getLogger(__name__)


@dataclass
class GeminiNarrativeClient(NarrativeGenerator):
    """Narrative generator backed by Gemini structured output.

    Gemini regularly answers with 503 "model overloaded" under load, so
    requests are retried a few times with growing waits before giving up.
    """

    client: genai.Client
    model: str = "gemini-2.5-pro"
    overload_retries: int = 3
    overload_backoff_seconds: float = 2.0

    @classmethod
    def create(
        cls,
        api_key: str,
        model: str = "gemini-2.5-pro",
        overload_retries: int = 3,
        overload_backoff_seconds: float = 2.0,
    ) -> "GeminiNarrativeClient":
        """Create a Gemini narrative client."""
        return cls(
            client=genai.Client(api_key=api_key),
            model=model,
            overload_retries=overload_retries,
            overload_backoff_seconds=overload_backoff_seconds,
        )

    async def generate(
        self, image: ImagePayload, context: Sequence[ChapterContext]
    ) -> NarrativeResult:
        """Request a JSON chapter for the image, retrying on overload."""
        contents = [
            types.Part.from_bytes(data=image.data, mime_type=image.mime_type),
            f"{SYSTEM_PROMPT}\n\n{build_context_prompt(context)}",
        ]
        config = types.GenerateContentConfig(
            system_instruction=SYSTEM_PROMPT,
            response_mime_type="application/json",
            response_schema=NarrativeResponseSchema,
        )

        async def _call() -> types.GenerateContentResponse:
            logger.info("Requesting narrative from Gemini", extra={"model": self.model})
            return await self.client.aio.models.generate_content(
                model=self.model, contents=contents, config=config
            )

        try:
            response = await call_with_overload_retry(
                _call,
                retries=self.overload_retries,
                backoff_seconds=self.overload_backoff_seconds,
            )
        except Exception as exc:
            logger.warning("Gemini narrative request failed: %s", exc)
            raise UpstreamGeneratorError(f"Failed to analyze image: {exc}") from exc

        return parse_narrative_payload(response.text)

    async def close(self) -> None:
        """Close the async transport of the Gemini client."""
        await self.client.aio.aclose()
