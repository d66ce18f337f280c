"""
photos/store.py -- SQLAlchemy Core persistence for photos and their slots.

Pattern: Repository + Data Mapper (same as auth/store.py). PhotoStore is the
repository; _row_to_photo is the mapper.

Every position-mutating method (replace_avatar, add_gallery_photo,
delete_photo, reorder_gallery) does its read -> validate -> write inside one
owner_transaction(), so two concurrent mutations on the same owner queue up
instead of interleaving. Validation failures raise before any write, and the
transaction rolls back on any exception, so a failed call changes nothing.

Invariants after every committed mutation, per owner:
  - at most one avatar row
  - at most MAX_PHOTOS rows in total
  - gallery positions == {1..N}

Files are not touched here. photos/service.py writes backing files before
calling in, and discards replaced/deleted files after the commit.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace

from sqlalchemy import case, func, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from core.db import now_iso, owner_transaction, photos, translate_integrity_error
from core.errors import GalleryFull, MaxPhotosReached, NotFound
from photos.models import MAX_PHOTOS, Photo, PhotoKind, StoredFile
from photos.slots import compaction_moves, lowest_free_position, reorder_moves

logger = logging.getLogger("matcha.photos")


class PhotoStore:
    """Repository for Photo rows.

    Usage:
        store = PhotoStore(engine)
        photo, replaced = store.replace_avatar(user_id, stored_file)
        photo = store.add_gallery_photo(user_id, stored_file)
        removed = store.delete_photo(photo_id, user_id)
        gallery = store.reorder_gallery(user_id, [(photo_id, 1), (other_id, 2)])
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_photos(self, user_id: int) -> list[Photo]:
        """All of the owner's photos: avatar first, then gallery by position."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                photos.select()
                .where(photos.c.user_id == user_id)
                .order_by(photos.c.kind, photos.c.position)
            ).fetchall()
        return [_row_to_photo(r) for r in rows]

    def list_gallery(self, user_id: int) -> list[Photo]:
        with self.engine.connect() as conn:
            return _gallery(conn, user_id)

    def count_photos(self, user_id: int) -> int:
        with self.engine.connect() as conn:
            return _count(conn, user_id)

    def get_photo(self, photo_id: int, user_id: int) -> Photo | None:
        """Owner-scoped lookup: another user's photo id looks exactly like a missing one."""
        with self.engine.connect() as conn:
            row = conn.execute(
                photos.select().where((photos.c.id == photo_id) & (photos.c.user_id == user_id))
            ).fetchone()
        return _row_to_photo(row) if row is not None else None

    # ------------------------------------------------------------------
    # Slot mutations
    # ------------------------------------------------------------------

    def replace_avatar(self, user_id: int, stored: StoredFile) -> tuple[Photo, Photo | None]:
        """Insert a new avatar, removing the existing avatar row if there is one.

        The total cap only applies to a first avatar; a replacement swaps one
        row for another and cannot raise the total.

        Returns (new_avatar, replaced_avatar_or_None).
        Raises MaxPhotosReached when a first avatar would exceed MAX_PHOTOS.
        """
        photo = _new_photo(user_id, PhotoKind.avatar, stored)
        try:
            with owner_transaction(self.engine, user_id) as conn:
                old_row = conn.execute(
                    photos.select().where((photos.c.user_id == user_id) & (photos.c.kind == PhotoKind.avatar.value))
                ).fetchone()
                old = _row_to_photo(old_row) if old_row is not None else None
                if old is None:
                    if _count(conn, user_id) >= MAX_PHOTOS:
                        raise MaxPhotosReached()
                else:
                    conn.execute(photos.delete().where(photos.c.id == old.id))
                photo = _insert(conn, photo)
        except IntegrityError as exc:
            raise translate_integrity_error(exc) from exc
        logger.info("avatar set user_id=%s photo_id=%s replaced=%s", user_id, photo.id, old.id if old else None)
        return photo, old

    def add_gallery_photo(self, user_id: int, stored: StoredFile) -> Photo:
        """Insert a gallery photo at the lowest free position.

        Raises MaxPhotosReached when the owner already has MAX_PHOTOS rows,
        GalleryFull when no position in 1..MAX_GALLERY_POSITION is free.
        """
        try:
            with owner_transaction(self.engine, user_id) as conn:
                if _count(conn, user_id) >= MAX_PHOTOS:
                    raise MaxPhotosReached()
                occupied = conn.execute(
                    select(photos.c.position).where(
                        (photos.c.user_id == user_id) & (photos.c.kind == PhotoKind.gallery.value)
                    )
                ).scalars()
                position = lowest_free_position(occupied)
                if position is None:
                    raise GalleryFull()
                photo = _insert(conn, _new_photo(user_id, PhotoKind.gallery, stored, position=position))
        except IntegrityError as exc:
            raise translate_integrity_error(exc) from exc
        logger.info("gallery photo added user_id=%s photo_id=%s position=%s", user_id, photo.id, photo.position)
        return photo

    def delete_photo(self, photo_id: int, user_id: int) -> Photo:
        """Delete one of the owner's photos and compact the gallery if needed.

        Compaction reassigns the surviving gallery rows to 1..N in their
        existing order, updating only rows whose position changes.

        Returns the deleted Photo so the caller can discard its files.
        Raises NotFound if the photo does not exist or belongs to someone else.
        """
        with owner_transaction(self.engine, user_id) as conn:
            row = conn.execute(
                photos.select().where((photos.c.id == photo_id) & (photos.c.user_id == user_id))
            ).fetchone()
            if row is None:
                raise NotFound("Photo not found.", code="photo_not_found")
            photo = _row_to_photo(row)
            conn.execute(photos.delete().where((photos.c.id == photo_id) & (photos.c.user_id == user_id)))

            moves = {}
            if photo.kind is PhotoKind.gallery:
                remaining = conn.execute(
                    select(photos.c.id, photos.c.position)
                    .where((photos.c.user_id == user_id) & (photos.c.kind == PhotoKind.gallery.value))
                    .order_by(photos.c.position)
                ).all()
                moves = compaction_moves([(r.id, r.position) for r in remaining])
                for moved_id, new_position in moves.items():
                    conn.execute(photos.update().where(photos.c.id == moved_id).values(position=int(new_position)))
        logger.info("photo deleted user_id=%s photo_id=%s compacted=%d", user_id, photo_id, len(moves))
        return photo

    def reorder_gallery(self, user_id: int, requested: Sequence[tuple[int, int]]) -> list[Photo]:
        """Apply (photo_id, new_position) pairs and return the full gallery in order.

        Ids not mentioned keep their position. The resulting assignment must
        be a permutation of 1..N (see photos.slots.reorder_moves); every change
        is written by one CASE-keyed UPDATE statement.

        Raises InvalidIds / InvalidPositions without writing anything.
        """
        with owner_transaction(self.engine, user_id) as conn:
            current = {
                r.id: r.position
                for r in conn.execute(
                    select(photos.c.id, photos.c.position).where(
                        (photos.c.user_id == user_id) & (photos.c.kind == PhotoKind.gallery.value)
                    )
                ).all()
            }
            moves = reorder_moves(current, requested)
            if moves:
                conn.execute(
                    photos.update()
                    .where(
                        (photos.c.user_id == user_id)
                        & (photos.c.kind == PhotoKind.gallery.value)
                        & (photos.c.id.in_(list(moves)))
                    )
                    .values(
                        position=case(
                            {photo_id: int(position) for photo_id, position in moves.items()},
                            value=photos.c.id,
                            else_=photos.c.position,
                        )
                    )
                )
            gallery = _gallery(conn, user_id)
        logger.info("gallery reordered user_id=%s moved=%d", user_id, len(moves))
        return gallery


# ---------------------------------------------------------------------------
# Connection-level helpers (run inside the caller's transaction)
# ---------------------------------------------------------------------------


def _count(conn: Connection, user_id: int) -> int:
    return conn.execute(select(func.count()).select_from(photos).where(photos.c.user_id == user_id)).scalar() or 0


def _gallery(conn: Connection, user_id: int) -> list[Photo]:
    rows = conn.execute(
        photos.select()
        .where((photos.c.user_id == user_id) & (photos.c.kind == PhotoKind.gallery.value))
        .order_by(photos.c.position)
    ).fetchall()
    return [_row_to_photo(r) for r in rows]


def _new_photo(user_id: int, kind: PhotoKind, stored: StoredFile, position: int | None = None) -> Photo:
    return Photo(
        user_id=user_id,
        kind=kind,
        position=position,
        storage_key=stored.storage_key,
        mime_type=stored.mime_type,
        size_bytes=stored.size_bytes,
        width=stored.width,
        height=stored.height,
    )


def _insert(conn: Connection, photo: Photo) -> Photo:
    created_at = now_iso()
    result = conn.execute(
        photos.insert().values(
            user_id=photo.user_id,
            kind=photo.kind.value,
            position=int(photo.position) if photo.position is not None else None,
            storage_key=photo.storage_key,
            mime_type=photo.mime_type,
            width=photo.width,
            height=photo.height,
            size_bytes=photo.size_bytes,
            created_at=created_at,
        )
    )
    return replace(photo, id=result.inserted_primary_key[0], created_at=created_at)


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_photo(row) -> Photo:
    return Photo(
        id=row.id,
        user_id=row.user_id,
        kind=PhotoKind(row.kind),
        position=row.position,
        storage_key=row.storage_key,
        mime_type=row.mime_type,
        width=row.width,
        height=row.height,
        size_bytes=row.size_bytes,
        created_at=row.created_at,
    )
