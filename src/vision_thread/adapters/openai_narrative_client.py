"""OpenAI Chat Completions client for narrative generation."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from openai import AsyncOpenAI

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


@dataclass
class OpenAINarrativeClient(NarrativeGenerator):
    """Narrative generator backed by OpenAI vision chat completions."""

    client: AsyncOpenAI
    model: str = "gpt-4o"
    max_tokens: int = 800

    @classmethod
    def create(cls, api_key: str, model: str = "gpt-4o") -> "OpenAINarrativeClient":
        """Create an OpenAI narrative client."""
        return cls(client=AsyncOpenAI(api_key=api_key), model=model)

    async def generate(
        self, image: ImagePayload, context: Sequence[ChapterContext]
    ) -> NarrativeResult:
        """Ask the model for a JSON chapter continuing the given context."""
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": build_context_prompt(context)},
                            {
                                "type": "image_url",
                                "image_url": {"url": image.to_data_url()},
                            },
                        ],
                    },
                ],
                response_format={"type": "json_object"},
                max_tokens=self.max_tokens,
            )
        except Exception as exc:
            logger.warning("OpenAI narrative request failed: %s", exc)
            raise UpstreamGeneratorError(f"Failed to analyze image: {exc}") from exc

        content = response.choices[0].message.content if response.choices else None
        return parse_narrative_payload(content)

    async def close(self) -> None:
        """Close the underlying SDK client."""
        await self.client.close()
