"""
photos/slots.py -- Pure slot algorithms for the gallery.

No I/O here. photos/store.py calls these inside a transaction with the
owner's current rows, then writes whatever they return. Keeping them pure
makes the position invariant testable without a database:

  gallery positions for an owner == {1, ..., N}, N = gallery size

Functions:
  lowest_free_position()  -- slot for a new gallery upload
  compaction_moves()      -- position changes that close the gap after a delete
  reorder_moves()         -- validate a requested reorder, return the changes
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from core.errors import InvalidIds, InvalidPositions
from photos.models import MAX_GALLERY_POSITION, GalleryPosition


def is_permutation(positions: Iterable[int], n: int) -> bool:
    """True if positions is exactly {1..n} with no repeats."""
    return sorted(positions) == list(range(1, n + 1))


def lowest_free_position(occupied: Iterable[int]) -> GalleryPosition | None:
    """Smallest position in 1..MAX_GALLERY_POSITION not in occupied, or None if all are taken."""
    used = set(occupied)
    for candidate in range(1, MAX_GALLERY_POSITION + 1):
        if candidate not in used:
            return GalleryPosition(candidate)
    return None


def compaction_moves(rows: Sequence[tuple[int, int]]) -> dict[int, GalleryPosition]:
    """Reassign (photo_id, position) rows to 1..count keeping their relative order.

    Only rows whose position actually changes are returned, so the caller
    issues at most one UPDATE per moved row.
    """
    ordered = sorted(rows, key=lambda row: (row[1], row[0]))
    moves: dict[int, GalleryPosition] = {}
    for expected, (photo_id, position) in enumerate(ordered, start=1):
        if position != expected:
            moves[photo_id] = GalleryPosition(expected)
    return moves


def reorder_moves(current: Mapping[int, int], requested: Sequence[tuple[int, int]]) -> dict[int, GalleryPosition]:
    """Validate a reorder request against the owner's current gallery.

    current maps photo id -> position for every gallery row the owner has.
    requested is the client's list of (id, new_position) pairs; ids it does
    not mention keep their current position.

    The resulting full assignment must be a permutation of 1..len(current).
    Raises InvalidIds / InvalidPositions without side effects otherwise.
    Returns only the ids whose position changes (empty for a no-op request).
    """
    ids = [photo_id for photo_id, _ in requested]
    targets = [position for _, position in requested]
    if len(set(ids)) != len(ids):
        raise InvalidIds("Duplicate ids.", code="duplicate_ids")
    if len(set(targets)) != len(targets):
        raise InvalidPositions("Duplicate positions.", code="duplicate_positions")

    unknown = sorted(set(ids) - set(current))
    if unknown:
        raise InvalidIds(details={"ids": unknown})

    final = dict(current)
    final.update(requested)
    if not is_permutation(final.values(), len(current)):
        raise InvalidPositions(details={"positions": [final[photo_id] for photo_id in sorted(final)]})

    return {
        photo_id: GalleryPosition(position)
        for photo_id, position in final.items()
        if current[photo_id] != position
    }
