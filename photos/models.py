"""
photos/models.py -- Domain types for stored photos.

Pattern: Data class. Photo owns the row shape; __post_init__ enforces the
per-row part of the slot invariants (an avatar has no position, a gallery
row always has a valid one). Collection-level invariants (distinct,
gap-free positions; at most 5 rows) belong to photos/slots.py and the
transactions in photos/store.py.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

MAX_PHOTOS = 5  # avatar + gallery, per owner
MAX_GALLERY_POSITION = 5

ALLOWED_MIME_TYPES: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}

_EXT_RE = re.compile(r"\.(\w+)$")


class PhotoKind(str, Enum):
    avatar = "avatar"
    gallery = "gallery"


class GalleryPosition(int):
    """An int that can only hold a valid gallery slot, 1..MAX_GALLERY_POSITION."""

    def __new__(cls, value: int) -> "GalleryPosition":
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"gallery position must be an int, got {type(value).__name__}")
        if not 1 <= value <= MAX_GALLERY_POSITION:
            raise ValueError(f"gallery position must be in 1..{MAX_GALLERY_POSITION}, got {value}")
        return super().__new__(cls, value)


def thumb_key_for(storage_key: str) -> str:
    """u/7/a_1.jpg -> u/7/a_1_thumb.jpg"""
    return _EXT_RE.sub(r"_thumb.\1", storage_key)


@dataclass
class Photo:
    user_id: int
    kind: PhotoKind
    storage_key: str
    mime_type: str
    size_bytes: int
    position: GalleryPosition | None = None
    width: int | None = None
    height: int | None = None
    id: int | None = None
    created_at: str | None = None

    def __post_init__(self) -> None:
        self.kind = PhotoKind(self.kind)
        if self.kind is PhotoKind.avatar:
            if self.position is not None:
                raise ValueError("an avatar has no gallery position")
        else:
            if self.position is None:
                raise ValueError("a gallery photo needs a position")
            self.position = GalleryPosition(self.position)

    @property
    def thumb_key(self) -> str:
        return thumb_key_for(self.storage_key)


@dataclass(frozen=True)
class StoredFile:
    """Backing bytes already written for a photo that is about to be inserted."""

    storage_key: str
    mime_type: str
    size_bytes: int
    width: int | None
    height: int | None


@dataclass(frozen=True)
class RenderedImage:
    """Output of the image-transform collaborator."""

    main: bytes
    thumb: bytes
    width: int
    height: int
    mime_type: str
