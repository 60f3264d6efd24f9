from __future__ import annotations

import io
import math
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from .errors import DecodeError, EncodeError

_PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
_JPEG_MAGIC = b"\xff\xd8\xff"
_GIF_MAGICS = (b"GIF87a", b"GIF89a")

_PIL_FORMAT_BY_MIME = {
    "image/png": "PNG",
    "image/jpeg": "JPEG",
    "image/gif": "GIF",
}

DEFAULT_SCALE_STEP = 0.9
DEFAULT_MAX_RESCALE_ROUNDS = 40


@dataclass(frozen=True)
class LocalImage:
    """Caller-supplied image bytes and their alt text."""

    data: bytes
    alt_text: str = ""


@dataclass(frozen=True)
class NormalizedImage:
    data: bytes
    mime_type: str
    width: int
    height: int


def sniff_mime(data: bytes) -> str | None:
    """Detect the image MIME type from content bytes; None if unsupported."""
    head = bytes(data[:16])
    if head.startswith(_PNG_MAGIC):
        return "image/png"
    if head.startswith(_JPEG_MAGIC):
        return "image/jpeg"
    if head.startswith(_GIF_MAGICS):
        return "image/gif"
    return None


def read_image_header(data: bytes) -> tuple[str, int, int]:
    """
    Return (mime_type, width, height) from the image header only.

    Raises DecodeError if the bytes are not PNG, JPEG or GIF.
    """
    mime = sniff_mime(data)
    if mime is None:
        raise DecodeError("Unsupported image container (expected PNG, JPEG or GIF)")
    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise DecodeError(f"Failed to read {mime} header: {e}") from e
    return mime, int(width), int(height)


def _encode(img: Image.Image, mime: str) -> bytes:
    fmt = _PIL_FORMAT_BY_MIME.get(mime, "PNG")
    if fmt == "JPEG" and img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    elif fmt == "GIF" and img.mode == "RGBA":
        # Median cut cannot quantize an alpha channel.
        img = img.quantize(method=Image.Quantize.FASTOCTREE)
    elif fmt == "GIF" and img.mode not in ("P", "L"):
        img = img.convert("P", palette=Image.Palette.ADAPTIVE)

    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def normalize_image(
    raw: bytes,
    max_size_bytes: int,
    *,
    scale_step: float = DEFAULT_SCALE_STEP,
    max_rounds: int = DEFAULT_MAX_RESCALE_ROUNDS,
) -> NormalizedImage:
    """
    Shrink an image until its encoded size fits under max_size_bytes.

    Images already small enough are returned untouched. Otherwise the image is
    re-encoded in its original format (PNG for anything else) at a linear scale
    that drops by scale_step each round, using bilinear resampling. Gives up
    with EncodeError after max_rounds rounds.
    """
    if max_size_bytes < 1:
        raise ValueError("max_size_bytes must be >= 1")
    if not (0.0 < scale_step < 1.0):
        raise ValueError("scale_step must be between 0 and 1")

    mime, width, height = read_image_header(raw)
    if len(raw) <= max_size_bytes:
        return NormalizedImage(data=bytes(raw), mime_type=mime, width=width, height=height)

    try:
        with Image.open(io.BytesIO(raw)) as src:
            src.load()
            original = src.copy()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise DecodeError(f"Failed to decode {mime} image: {e}") from e

    # Pillow silently falls back to nearest-neighbour for palette images.
    if original.mode in ("P", "1"):
        has_alpha = original.mode == "P" and "transparency" in original.info
        original = original.convert("RGBA" if has_alpha else "RGB")

    scale = 1.0
    for _ in range(max(0, int(max_rounds))):
        scale *= scale_step
        w = max(1, math.floor(width * scale))
        h = max(1, math.floor(height * scale))

        try:
            resized = original.resize((w, h), Image.Resampling.BILINEAR)
            encoded = _encode(resized, mime)
        except (Image.DecompressionBombError, OSError, ValueError) as e:
            raise EncodeError(f"Failed to re-encode image at {w}x{h}: {e}") from e

        if len(encoded) <= max_size_bytes:
            final_mime = sniff_mime(encoded) or "image/png"
            return NormalizedImage(data=encoded, mime_type=final_mime, width=w, height=h)

    raise EncodeError(
        f"Image still exceeds {max_size_bytes} bytes after {max_rounds} rescale rounds"
    )
