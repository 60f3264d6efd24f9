from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""


class ResolutionError(RuntimeError):
    """Raised when a handle lookup fails in transport or returns a malformed payload."""


class DecodeError(RuntimeError):
    """Raised when image bytes are not a supported raster container."""


class EncodeError(RuntimeError):
    """Raised when an image cannot be re-encoded under the size ceiling."""


class UploadError(RuntimeError):
    """Raised when the blob store rejects or fails an upload."""


class AssemblyError(RuntimeError):
    """Raised when record assembly receives inputs that violate its invariants."""


class PublishError(RuntimeError):
    """Raised when creating the post record on the server fails."""


class BuildError(RuntimeError):
    """Raised when a post build fails; carries the failing stage and its cause."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"Post build failed at stage '{stage}': {cause}")
