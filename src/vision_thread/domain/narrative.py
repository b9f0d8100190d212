"""Models for narrative generation results."""

from pydantic import BaseModel

FALLBACK_NARRATIVE = "Unable to generate narrative"
FALLBACK_THEME = "Unknown"


class NarrativeResult(BaseModel):
    """Structured output of a narrative generator."""

    narrative: str = FALLBACK_NARRATIVE
    connections: list[str] = []
    tags: list[str] = []
    theme: str = FALLBACK_THEME


class NarrativeResponseSchema(BaseModel):
    """Response schema requested from providers that support structured output."""

    narrative: str
    connections: list[str]
    tags: list[str]
    theme: str
