from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class UploadedImageRef:
    """What the blob store hands back for an uploaded image."""

    content_ref: str
    declared_size: int
    mime_type: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "$type": "blob",
            "ref": {"$link": self.content_ref},
            "mimeType": self.mime_type,
            "size": self.declared_size,
        }


@dataclass(frozen=True)
class FaultRecord:
    """A recoverable fault: which stage, what input, and the underlying error."""

    stage: str
    input_summary: str
    cause: BaseException


class IdentityResolver(Protocol):
    def lookup(self, handle: str) -> str | None:
        """
        Resolve a handle to its durable identifier.

        Returns None when the handle does not exist; raises on any other failure.
        """
        ...


class BlobStore(Protocol):
    def upload(self, data: bytes, mime_type: str) -> UploadedImageRef: ...


class FaultSink(Protocol):
    def fault(self, record: FaultRecord) -> None: ...


class DiscardFaults:
    """FaultSink that drops every record."""

    def fault(self, record: FaultRecord) -> None:
        return None
