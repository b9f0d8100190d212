"""HTTP client for downloading images referenced by URL."""

from dataclasses import dataclass
from typing import Protocol

import httpx

from vision_thread.domain.chapters import ImagePayload
from vision_thread.domain.errors import ValidationError
from vision_thread.services.images import detect_mime_type

DEFAULT_MAX_BYTES = 10 * 1024 * 1024


class ImageFetcher(Protocol):
    """Interface for downloading an image by URL."""

    async def fetch(self, url: str) -> ImagePayload:
        """Download the image at ``url`` and return its bytes and type."""


@dataclass
class HttpxImageFetcher(ImageFetcher):
    """Image fetcher using httpx.

    Bodies are streamed and abandoned as soon as they pass ``max_bytes``.
    """

    http_client: httpx.AsyncClient
    timeout: float = 20.0
    max_bytes: int = DEFAULT_MAX_BYTES

    @classmethod
    def create(
        cls, timeout: float = 20.0, max_bytes: int = DEFAULT_MAX_BYTES
    ) -> "HttpxImageFetcher":
        """Create an image fetcher with a managed httpx session."""
        return cls(
            http_client=httpx.AsyncClient(follow_redirects=True),
            timeout=timeout,
            max_bytes=max_bytes,
        )

    async def fetch(self, url: str) -> ImagePayload:
        """Download image bytes, preferring the server's declared content type."""
        async with self.http_client.stream(
            "GET", url, timeout=self.timeout
        ) as response:
            response.raise_for_status()
            declared = response.headers.get("content-length", "")
            if declared.isdigit() and int(declared) > self.max_bytes:
                raise ValidationError(
                    f"Remote image is {declared} bytes; limit is {self.max_bytes}"
                )
            chunks: list[bytes] = []
            received = 0
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if received > self.max_bytes:
                    raise ValidationError(
                        f"Remote image exceeds the {self.max_bytes} byte limit"
                    )
                chunks.append(chunk)
            content_type = response.headers.get("content-type", "")
        content = b"".join(chunks)
        mime_type = content_type.split(";", maxsplit=1)[0].strip().lower()
        return ImagePayload(
            data=content, mime_type=mime_type or detect_mime_type(content)
        )

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
