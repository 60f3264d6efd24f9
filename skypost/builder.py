from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Sequence

from .collaborators import BlobStore, FaultSink, IdentityResolver
from .concurrency import run_indexed_tasks
from .config_schema import AppConfig
from .errors import AssemblyError, BuildError, DecodeError, EncodeError, UploadError
from .images import (
    DEFAULT_MAX_RESCALE_ROUNDS,
    DEFAULT_SCALE_STEP,
    LocalImage,
    normalize_image,
)
from .record import Clock, ImageEmbed, PostRecord, assemble
from .resolver import FacetResolver, link_facets, tag_facets
from .scanner import scan_links, scan_mentions, scan_tags


@dataclass(frozen=True)
class PostDraft:
    """
    Everything the caller wants in a post, accumulated as an immutable value.

    Each with_* method returns a new draft; the original is never changed.
    """

    text: str = ""
    languages: tuple[str, ...] = ()
    images: tuple[LocalImage, ...] = ()

    def with_text(self, more: str) -> "PostDraft":
        return replace(self, text=self.text + (more or ""))

    def with_language(self, lang: str) -> "PostDraft":
        tag = (lang or "").strip()
        if not tag:
            return self
        return replace(self, languages=(*self.languages, tag))

    def with_image_bytes(self, data: bytes, alt_text: str = "") -> "PostDraft":
        image = LocalImage(data=bytes(data), alt_text=alt_text or "")
        return replace(self, images=(*self.images, image))

    def with_image_path(self, path: str | Path, alt_text: str = "") -> "PostDraft":
        return self.with_image_bytes(Path(path).read_bytes(), alt_text)


@dataclass(frozen=True)
class BuildOptions:
    max_image_bytes: int = 1_000_000
    scale_step: float = DEFAULT_SCALE_STEP
    max_rescale_rounds: int = DEFAULT_MAX_RESCALE_ROUNDS
    resolve_workers: int = 4
    upload_workers: int = 4

    @classmethod
    def from_config(cls, config: AppConfig) -> "BuildOptions":
        return cls(
            max_image_bytes=config.images.max_size_bytes,
            scale_step=config.images.scale_step,
            max_rescale_rounds=config.images.max_rescale_rounds,
            resolve_workers=config.concurrency.resolve_workers,
            upload_workers=config.concurrency.upload_workers,
        )


def _embed_image(image: LocalImage, blobs: BlobStore, options: BuildOptions) -> ImageEmbed:
    try:
        normalized = normalize_image(
            image.data,
            options.max_image_bytes,
            scale_step=options.scale_step,
            max_rounds=options.max_rescale_rounds,
        )
    except (DecodeError, EncodeError) as e:
        raise BuildError("normalize", e) from e

    try:
        ref = blobs.upload(normalized.data, normalized.mime_type)
    except UploadError as e:
        raise BuildError("upload", e) from e
    except Exception as e:
        err = UploadError(f"Blob upload failed ({normalized.mime_type}, {len(normalized.data)} bytes): {e}")
        raise BuildError("upload", err) from e

    return ImageEmbed(
        alt=image.alt_text,
        image=ref,
        width=normalized.width,
        height=normalized.height,
    )


def embed_images(
    images: Sequence[LocalImage],
    blobs: BlobStore,
    *,
    options: BuildOptions,
) -> list[ImageEmbed]:
    """Normalize and upload every image; any single failure fails the whole set."""
    tasks = [lambda image=image: _embed_image(image, blobs, options) for image in images]
    return run_indexed_tasks(tasks, max_workers=options.upload_workers)


def build_post(
    draft: PostDraft,
    *,
    identity: IdentityResolver,
    blobs: BlobStore,
    options: BuildOptions | None = None,
    faults: FaultSink | None = None,
    clock: Clock | None = None,
) -> PostRecord:
    """
    Scan, resolve, upload and assemble a draft into a PostRecord.

    Unresolvable mentions are dropped and reported to faults. Image and
    assembly failures raise BuildError and no record is produced.
    """
    opts = options or BuildOptions()
    text = draft.text

    links = link_facets(scan_links(text))
    tags = tag_facets(scan_tags(text))

    resolver = FacetResolver(identity, faults=faults, max_workers=opts.resolve_workers)
    mentions = resolver.resolve_mentions(scan_mentions(text))

    embeds: list[ImageEmbed] = []
    if draft.images:
        embeds = embed_images(draft.images, blobs, options=opts)

    try:
        return assemble(
            text,
            draft.languages,
            links,
            mentions,
            tags,
            embeds,
            clock=clock,
        )
    except AssemblyError as e:
        raise BuildError("assemble", e) from e
