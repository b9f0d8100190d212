"""Error types raised by the story services."""


class VisionThreadError(Exception):
    """Base class for application errors."""


class ValidationError(VisionThreadError):
    """Raised when a client supplies an unusable image or request."""


class UpstreamGeneratorError(VisionThreadError):
    """Raised when the narrative provider call fails outright."""


class StorageInternalError(VisionThreadError):
    """Raised when the in-memory chapter store fails unexpectedly."""
