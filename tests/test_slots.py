"""
tests/test_slots.py -- Unit tests for the pure gallery slot algorithms.

No database: photos.slots works on (id, position) data only.
"""

from __future__ import annotations

import pytest

from core.errors import InvalidIds, InvalidPositions
from photos.models import GalleryPosition, Photo, PhotoKind, thumb_key_for
from photos.slots import compaction_moves, is_permutation, lowest_free_position, reorder_moves


class TestLowestFreePosition:
    @pytest.mark.parametrize(
        ("occupied", "expected"),
        [
            ([], 1),
            ([1], 2),
            ([1, 2, 3], 4),
            ([2, 3], 1),
            ([1, 3], 2),
            ([1, 2, 3, 4], 5),
        ],
    )
    def test_picks_smallest_gap(self, occupied, expected) -> None:
        assert lowest_free_position(occupied) == expected

    def test_none_when_every_slot_is_taken(self) -> None:
        assert lowest_free_position([1, 2, 3, 4, 5]) is None


class TestCompaction:
    def test_closes_gap_left_by_middle_delete(self) -> None:
        # [10@1, 11@2, 12@3] minus 11 -> 12 moves to 2
        assert compaction_moves([(10, 1), (12, 3)]) == {12: 2}

    def test_gap_at_front(self) -> None:
        assert compaction_moves([(11, 2), (12, 3)]) == {11: 1, 12: 2}

    def test_already_contiguous_is_a_no_op(self) -> None:
        assert compaction_moves([(10, 1), (11, 2)]) == {}

    def test_empty(self) -> None:
        assert compaction_moves([]) == {}

    def test_preserves_relative_order(self) -> None:
        moves = compaction_moves([(30, 5), (20, 2), (10, 4)])
        final = {20: 2, 10: 4, 30: 5} | moves
        assert sorted(final, key=final.get) == [20, 10, 30]
        assert is_permutation(final.values(), 3)


class TestReorder:
    current = {10: 1, 11: 2, 12: 3}

    def test_swap(self) -> None:
        assert reorder_moves(self.current, [(10, 2), (11, 1)]) == {10: 2, 11: 1}

    def test_full_rotation(self) -> None:
        moves = reorder_moves(self.current, [(10, 3), (11, 1), (12, 2)])
        assert moves == {10: 3, 11: 1, 12: 2}

    def test_same_positions_is_idempotent(self) -> None:
        assert reorder_moves(self.current, [(10, 1), (11, 2), (12, 3)]) == {}

    def test_returns_gallery_positions(self) -> None:
        moves = reorder_moves(self.current, [(10, 2), (11, 1)])
        assert all(isinstance(p, GalleryPosition) for p in moves.values())

    def test_unknown_id(self) -> None:
        with pytest.raises(InvalidIds) as exc:
            reorder_moves(self.current, [(99, 1)])
        assert exc.value.code == "invalid_ids"
        assert exc.value.details == {"ids": [99]}

    def test_unknown_id_on_empty_gallery(self) -> None:
        with pytest.raises(InvalidIds):
            reorder_moves({}, [(1, 1)])

    def test_duplicate_ids(self) -> None:
        with pytest.raises(InvalidIds) as exc:
            reorder_moves(self.current, [(10, 2), (10, 3)])
        assert exc.value.code == "duplicate_ids"

    def test_duplicate_positions(self) -> None:
        with pytest.raises(InvalidPositions) as exc:
            reorder_moves(self.current, [(10, 2), (11, 2)])
        assert exc.value.code == "duplicate_positions"

    def test_partial_request_that_collides_with_untouched_row(self) -> None:
        # 10 -> 2 while 11 stays at 2
        with pytest.raises(InvalidPositions):
            reorder_moves(self.current, [(10, 2)])

    def test_position_beyond_gallery_size(self) -> None:
        with pytest.raises(InvalidPositions):
            reorder_moves(self.current, [(10, 5), (12, 1)])


class TestPhotoInvariants:
    def test_avatar_rejects_position(self) -> None:
        with pytest.raises(ValueError):
            Photo(user_id=1, kind=PhotoKind.avatar, storage_key="k.png", mime_type="image/png", size_bytes=1, position=1)

    def test_gallery_requires_position(self) -> None:
        with pytest.raises(ValueError):
            Photo(user_id=1, kind=PhotoKind.gallery, storage_key="k.png", mime_type="image/png", size_bytes=1)

    @pytest.mark.parametrize("value", [0, 6, -1])
    def test_gallery_position_range(self, value: int) -> None:
        with pytest.raises(ValueError):
            GalleryPosition(value)

    def test_gallery_position_rejects_bool(self) -> None:
        with pytest.raises(TypeError):
            GalleryPosition(True)

    def test_thumb_key(self) -> None:
        assert thumb_key_for("u/7/g_1_abc123.jpg") == "u/7/g_1_abc123_thumb.jpg"
