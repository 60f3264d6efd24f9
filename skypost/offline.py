from __future__ import annotations

import hashlib
from threading import Lock
from typing import Mapping

from .collaborators import UploadedImageRef

_DEFAULT_OFFLINE_HANDLES: dict[str, str] = {
    "alice.example": "did:example:alice",
    "bob.example": "did:example:bob",
}


class OfflineIdentityResolver:
    """Resolves handles from an in-memory table; unknown handles are not found."""

    def __init__(self, handles: Mapping[str, str] | None = None) -> None:
        table = _DEFAULT_OFFLINE_HANDLES if handles is None else handles
        self._handles = {k.casefold(): v for k, v in table.items()}

    def lookup(self, handle: str) -> str | None:
        return self._handles.get((handle or "").casefold())


class OfflineBlobStore:
    """Keeps uploads in memory and derives a content ref from the SHA-256 of the bytes."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.blobs: dict[str, bytes] = {}

    def upload(self, data: bytes, mime_type: str) -> UploadedImageRef:
        ref = "sha256:" + hashlib.sha256(data).hexdigest()
        with self._lock:
            self.blobs[ref] = bytes(data)
        return UploadedImageRef(content_ref=ref, declared_size=len(data), mime_type=mime_type)
