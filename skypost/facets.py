from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence, Union

from .errors import AssemblyError

LINK_TYPE = "app.bsky.richtext.facet#link"
MENTION_TYPE = "app.bsky.richtext.facet#mention"
TAG_TYPE = "app.bsky.richtext.facet#tag"


@dataclass(frozen=True)
class ByteSpan:
    """Half-open byte range [start, end) into the UTF-8 encoding of the post text."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0:
            raise AssemblyError(f"span start must be >= 0, got {self.start}")
        if self.end <= self.start:
            raise AssemblyError(f"span end must be > start, got [{self.start},{self.end})")

    def to_dict(self) -> dict[str, int]:
        return {"byteStart": self.start, "byteEnd": self.end}


@dataclass(frozen=True)
class ScannedSpan:
    """A scanner match: where it sits in the text and the captured payload."""

    span: ByteSpan
    text: str


@dataclass(frozen=True)
class Link:
    uri: str

    def to_dict(self) -> dict[str, Any]:
        return {"$type": LINK_TYPE, "uri": self.uri}


@dataclass(frozen=True)
class Mention:
    identifier: str

    def to_dict(self) -> dict[str, Any]:
        return {"$type": MENTION_TYPE, "did": self.identifier}


@dataclass(frozen=True)
class Tag:
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"$type": TAG_TYPE, "tag": self.text}


Feature = Union[Link, Mention, Tag]


@dataclass(frozen=True)
class Facet:
    span: ByteSpan
    features: Sequence[Feature]

    def __post_init__(self) -> None:
        # Freeze the feature list and drop duplicates while keeping order.
        unique: list[Feature] = []
        for feature in self.features:
            if feature not in unique:
                unique.append(feature)
        object.__setattr__(self, "features", tuple(unique))

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.span.to_dict(),
            "features": [feature.to_dict() for feature in self.features],
        }
