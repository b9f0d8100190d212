"""Anthropic Messages API client for narrative generation."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from anthropic import AsyncAnthropic

from vision_thread.domain.chapters import ChapterContext, ImagePayload
from vision_thread.domain.errors import UpstreamGeneratorError
from vision_thread.domain.narrative import NarrativeResult
from vision_thread.services.narrative import (
    SYSTEM_PROMPT,
    NarrativeGenerator,
    build_context_prompt,
    parse_narrative_payload,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


@dataclass
class AnthropicNarrativeClient(NarrativeGenerator):
    """Narrative generator backed by Claude."""

    client: AsyncAnthropic
    model: str = DEFAULT_MODEL
    max_tokens: int = 1024

    @classmethod
    def create(
        cls, api_key: str, model: str = DEFAULT_MODEL
    ) -> "AnthropicNarrativeClient":
        """Create an Anthropic narrative client."""
        return cls(client=AsyncAnthropic(api_key=api_key), model=model)

    async def generate(
        self, image: ImagePayload, context: Sequence[ChapterContext]
    ) -> NarrativeResult:
        """Send the image and story context, then parse the JSON reply."""
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=SYSTEM_PROMPT,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image",
                                "source": {
                                    "type": "base64",
                                    "media_type": image.mime_type,
                                    "data": image.to_base64(),
                                },
                            },
                            {"type": "text", "text": build_context_prompt(context)},
                        ],
                    }
                ],
            )
        except Exception as exc:
            logger.warning("Anthropic narrative request failed: %s", exc)
            raise UpstreamGeneratorError(f"Failed to analyze image: {exc}") from exc

        text = next(
            (block.text for block in response.content if block.type == "text"), None
        )
        return parse_narrative_payload(text)

    async def close(self) -> None:
        """Close the underlying SDK client."""
        await self.client.close()
