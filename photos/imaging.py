"""
photos/imaging.py -- Image-transform collaborator (Pillow).

Pure bytes-in, bytes-out. Nothing here knows about users, slots or storage:

  resize_main(data, max_side) -- longest side bounded, never upscaled
  resize_thumb(data)          -- fixed-size centre crop
  read_meta(data)             -- width / height / mime type after EXIF rotation
  render(data, max_side)      -- all three in one decode, used by PhotoService

EXIF orientation is applied before anything else so stored pixels are
upright and the recorded width/height match what a browser shows.

Output is encoded in the detected input format. The detected format must be
one of ALLOWED_MIME_TYPES; a file whose declared content type says PNG but
whose bytes are something else is rejected as unsupported_type.
"""

from __future__ import annotations

import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from core.errors import BadRequest
from photos.models import ALLOWED_MIME_TYPES, RenderedImage

logger = logging.getLogger("matcha.photos")

AVATAR_MAX_SIDE = 1024
GALLERY_MAX_SIDE = 1280
THUMB_SIZE = (256, 256)

_FORMAT_MIME = {"JPEG": "image/jpeg", "PNG": "image/png", "WEBP": "image/webp"}
_SAVE_OPTIONS = {
    "JPEG": {"quality": 85, "optimize": True},
    "PNG": {"optimize": True},
    "WEBP": {"quality": 85},
}


class ImageTransformer:
    """Decode, orient, resize and re-encode uploaded images."""

    def resize_main(self, data: bytes, max_side: int) -> bytes:
        image, fmt = _open(data)
        return _encode(_bounded(image, max_side), fmt)

    def resize_thumb(self, data: bytes) -> bytes:
        image, fmt = _open(data)
        return _encode(ImageOps.fit(image, THUMB_SIZE, method=Image.Resampling.LANCZOS), fmt)

    def read_meta(self, data: bytes) -> dict:
        image, fmt = _open(data)
        return {"width": image.width, "height": image.height, "mime_type": _FORMAT_MIME[fmt]}

    def render(self, data: bytes, max_side: int) -> RenderedImage:
        """Main image + thumbnail + metadata from a single decode."""
        image, fmt = _open(data)
        main = _bounded(image, max_side)
        thumb = ImageOps.fit(image, THUMB_SIZE, method=Image.Resampling.LANCZOS)
        return RenderedImage(
            main=_encode(main, fmt),
            thumb=_encode(thumb, fmt),
            width=main.width,
            height=main.height,
            mime_type=_FORMAT_MIME[fmt],
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _open(data: bytes) -> tuple[Image.Image, str]:
    """Decode bytes into an upright, fully loaded image plus its Pillow format name.

    Raises BadRequest(invalid_image) for bytes Pillow cannot decode and
    BadRequest(unsupported_type) for decodable formats outside the allow-list.
    """
    try:
        with Image.open(io.BytesIO(data)) as source:
            fmt = source.format or ""
            if _FORMAT_MIME.get(fmt) not in ALLOWED_MIME_TYPES:
                raise BadRequest("Unsupported image type.", code="unsupported_type")
            source.load()
            image = ImageOps.exif_transpose(source)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as exc:
        logger.info("image decode failed: %s", exc)
        raise BadRequest("The file is not a valid image.", code="invalid_image") from exc
    return image, fmt


def _bounded(image: Image.Image, max_side: int) -> Image.Image:
    bounded = image.copy()
    bounded.thumbnail((max_side, max_side), Image.Resampling.LANCZOS)
    return bounded


def _encode(image: Image.Image, fmt: str) -> bytes:
    if fmt == "JPEG" and image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    buf = io.BytesIO()
    image.save(buf, format=fmt, **_SAVE_OPTIONS[fmt])
    return buf.getvalue()
