from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from .collaborators import UploadedImageRef
from .errors import AssemblyError
from .facets import Facet

POST_COLLECTION = "app.bsky.feed.post"
IMAGES_EMBED_TYPE = "app.bsky.embed.images"

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def rfc3339_utc(dt: datetime) -> str:
    """Format as RFC3339 in UTC with second precision, e.g. 2024-05-01T12:00:00Z."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class ImageEmbed:
    alt: str
    image: UploadedImageRef
    width: int
    height: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "alt": self.alt,
            "image": self.image.to_dict(),
            "aspectRatio": {"width": self.width, "height": self.height},
        }


@dataclass(frozen=True)
class PostRecord:
    """
    The assembled post. Optional parts are None/empty when there is no data
    and are then left out of the wire form entirely.
    """

    text: str
    created_at: str
    languages: tuple[str, ...] = ()
    facets: tuple[Facet, ...] = ()
    images: tuple[ImageEmbed, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "text": self.text,
            "createdAt": self.created_at,
        }
        if self.languages:
            record["langs"] = list(self.languages)
        if self.facets:
            record["facets"] = [facet.to_dict() for facet in self.facets]
        if self.images:
            record["embed"] = {
                "$type": IMAGES_EMBED_TYPE,
                "images": [image.to_dict() for image in self.images],
            }
        return record


def _check_facets(text_len: int, facets: Sequence[Facet]) -> None:
    for facet in facets:
        span = facet.span
        if span.end > text_len:
            raise AssemblyError(
                f"Facet span [{span.start},{span.end}) is outside the text ({text_len} bytes)"
            )
        if not facet.features:
            raise AssemblyError(f"Facet at [{span.start},{span.end}) has no features")


def assemble(
    text: str,
    languages: Sequence[str] = (),
    link_facets: Sequence[Facet] = (),
    mention_facets: Sequence[Facet] = (),
    tag_facets: Sequence[Facet] = (),
    images: Sequence[ImageEmbed] = (),
    *,
    clock: Clock | None = None,
) -> PostRecord:
    """
    Combine text, facets and uploaded images into a PostRecord.

    Facets come out as links, then mentions, then tags, each group in the
    order given. Overlapping spans across groups are kept as they are.
    createdAt is taken from the clock at call time.
    """
    facets = (*link_facets, *mention_facets, *tag_facets)
    _check_facets(len(text.encode("utf-8")), facets)

    for image in images:
        if image.width < 1 or image.height < 1:
            raise AssemblyError(f"Image dimensions must be positive, got {image.width}x{image.height}")

    now = (clock or _utc_now)()
    return PostRecord(
        text=text,
        created_at=rfc3339_utc(now),
        languages=tuple(languages),
        facets=facets,
        images=tuple(images),
    )
