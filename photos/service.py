"""
photos/service.py -- Upload / delete / reorder orchestration.

PhotoService ties the pieces together in a fixed order of effects:

  upload:  validate -> cap pre-check -> transform -> write files
           -> store transaction (re-check, delete old avatar row, insert)
           -> discard the replaced avatar's files
  delete:  store transaction (lookup, delete row, compact) -> discard files
  reorder: store transaction only

The row insert is the last storage step of an upload, so a Photo row never
exists without its bytes. If the transaction fails, the files written for it
are discarded and the original error propagates. The pre-check only saves
the transform work on an obviously full account; the store re-checks inside
the transaction, which is the authoritative check.

Methods are synchronous. FastAPI runs the sync route handlers that call them
in its threadpool, so a slow transform or a waiting transaction never blocks
the event loop.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from core.errors import BadRequest, Internal, MaxPhotosReached, PayloadTooLarge
from photos.files import LocalFileStore
from photos.imaging import AVATAR_MAX_SIDE, GALLERY_MAX_SIDE, ImageTransformer
from photos.models import ALLOWED_MIME_TYPES, MAX_PHOTOS, Photo, PhotoKind, StoredFile
from photos.store import PhotoStore

logger = logging.getLogger("matcha.photos")

_MAX_SIDE = {PhotoKind.avatar: AVATAR_MAX_SIDE, PhotoKind.gallery: GALLERY_MAX_SIDE}


class PhotoService:
    def __init__(
        self,
        store: PhotoStore,
        files: LocalFileStore,
        transformer: ImageTransformer,
        max_upload_bytes: int,
    ) -> None:
        self.store = store
        self.files = files
        self.transformer = transformer
        self.max_upload_bytes = max_upload_bytes

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_photos(self, user_id: int) -> tuple[Photo | None, list[Photo]]:
        """(avatar or None, gallery ordered by position)"""
        avatar = None
        gallery = []
        for photo in self.store.list_photos(user_id):
            if photo.kind is PhotoKind.avatar:
                avatar = photo
            else:
                gallery.append(photo)
        return avatar, gallery

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def upload_avatar(self, user_id: int, content_type: str | None, data: bytes | None) -> Photo:
        """Store a new avatar, replacing the previous one (row and files) if any."""
        self._validate(content_type, data)
        avatar, gallery = self.list_photos(user_id)
        if avatar is None and len(gallery) >= MAX_PHOTOS:
            raise MaxPhotosReached()

        stored = self._write_files(user_id, PhotoKind.avatar, data)
        try:
            photo, replaced = self.store.replace_avatar(user_id, stored)
        except Exception:
            self.files.discard(stored.storage_key)
            raise
        if replaced is not None:
            self.files.discard(replaced.storage_key)
        return photo

    def upload_gallery(self, user_id: int, content_type: str | None, data: bytes | None) -> Photo:
        """Store a gallery photo at the lowest free position."""
        self._validate(content_type, data)
        if self.store.count_photos(user_id) >= MAX_PHOTOS:
            raise MaxPhotosReached()

        stored = self._write_files(user_id, PhotoKind.gallery, data)
        try:
            return self.store.add_gallery_photo(user_id, stored)
        except Exception:
            self.files.discard(stored.storage_key)
            raise

    def delete(self, user_id: int, photo_id: int) -> None:
        """Delete one of the owner's photos. Raises NotFound(photo_not_found)."""
        photo = self.store.delete_photo(photo_id, user_id)
        self.files.discard(photo.storage_key)

    def reorder(self, user_id: int, requested: Sequence[tuple[int, int]]) -> list[Photo]:
        return self.store.reorder_gallery(user_id, requested)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate(self, content_type: str | None, data: bytes | None) -> None:
        if not data:
            raise BadRequest("No file uploaded.", code="no_file")
        if content_type not in ALLOWED_MIME_TYPES:
            raise BadRequest("Unsupported image type.", code="unsupported_type")
        if len(data) > self.max_upload_bytes:
            raise PayloadTooLarge()

    def _write_files(self, user_id: int, kind: PhotoKind, data: bytes) -> StoredFile:
        rendered = self.transformer.render(data, _MAX_SIDE[kind])
        key = self.files.new_key(user_id, kind, ALLOWED_MIME_TYPES[rendered.mime_type])
        try:
            self.files.write(key, rendered.main, rendered.thumb)
        except OSError as exc:
            logger.exception("writing backing files failed user_id=%s key=%s", user_id, key)
            self.files.discard(key)
            raise Internal() from exc
        return StoredFile(
            storage_key=key,
            mime_type=rendered.mime_type,
            size_bytes=len(rendered.main),
            width=rendered.width,
            height=rendered.height,
        )

