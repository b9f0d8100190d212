"""Helpers for turning client-supplied image data into payloads."""

import base64
import binascii

from vision_thread.domain.chapters import ImagePayload
from vision_thread.domain.errors import ValidationError


def detect_mime_type(image_bytes: bytes) -> str:
    """Infer a basic image MIME type from file signatures."""
    if image_bytes.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image_bytes[:6] in {b"GIF87a", b"GIF89a"}:
        return "image/gif"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


def decode_base64_image(encoded: str) -> ImagePayload:
    """Decode raw base64 or a ``data:`` URL into an image payload."""
    declared_mime: str | None = None
    data = encoded.strip()
    if data.startswith("data:"):
        header, _, data = data.partition(",")
        declared_mime = header[len("data:") :].split(";", maxsplit=1)[0] or None
    try:
        image_bytes = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("Image data is not valid base64") from exc
    return ImagePayload(
        data=image_bytes,
        mime_type=declared_mime or detect_mime_type(image_bytes),
    )
