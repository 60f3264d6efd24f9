from __future__ import annotations

from .builder import BuildOptions, PostDraft, build_post
from .collaborators import FaultRecord, UploadedImageRef
from .errors import (
    AssemblyError,
    BuildError,
    ConfigError,
    DecodeError,
    EncodeError,
    PublishError,
    ResolutionError,
    UploadError,
)
from .facets import ByteSpan, Facet, Link, Mention, ScannedSpan, Tag
from .images import LocalImage, NormalizedImage, normalize_image
from .record import ImageEmbed, PostRecord, assemble
from .resolver import FacetResolver
from .scanner import scan_links, scan_mentions, scan_tags

__all__ = [
    "AssemblyError",
    "BuildError",
    "BuildOptions",
    "ByteSpan",
    "ConfigError",
    "DecodeError",
    "EncodeError",
    "Facet",
    "FacetResolver",
    "FaultRecord",
    "ImageEmbed",
    "Link",
    "LocalImage",
    "Mention",
    "NormalizedImage",
    "PostDraft",
    "PostRecord",
    "PublishError",
    "ResolutionError",
    "ScannedSpan",
    "Tag",
    "UploadError",
    "UploadedImageRef",
    "assemble",
    "build_post",
    "normalize_image",
    "scan_links",
    "scan_mentions",
    "scan_tags",
]
