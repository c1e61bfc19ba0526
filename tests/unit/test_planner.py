from __future__ import annotations

import pytest

from dataset_sql.loading.planner import calculate_local_window, pending_windows, plan_windows
from dataset_sql.loading.state import LoadingState

BATCH_SIZE = 10


def _covered(windows) -> list[int]:
    return [n for w in windows for n in range(w.offset, w.offset + w.limit)]


class TestCalculateLocalWindow:
    def test_range_covers_whole_chunk(self):
        assert calculate_local_window(0, None, 10, BATCH_SIZE) == (10, 10)

    def test_range_starts_inside_chunk(self):
        assert calculate_local_window(13, None, 10, BATCH_SIZE) == (13, 7)

    def test_range_ends_inside_chunk(self):
        assert calculate_local_window(0, 15, 10, BATCH_SIZE) == (10, 5)

    def test_range_inside_chunk(self):
        assert calculate_local_window(12, 3, 10, BATCH_SIZE) == (12, 3)

    def test_chunk_before_range(self):
        assert calculate_local_window(20, 5, 0, BATCH_SIZE) is None

    def test_chunk_after_range(self):
        assert calculate_local_window(0, 10, 10, BATCH_SIZE) is None

    def test_range_ending_exactly_at_chunk_end(self):
        assert calculate_local_window(5, 15, 10, BATCH_SIZE) == (10, 10)


class TestPlanWindows:
    def test_full_collection_is_cut_into_batches(self):
        windows = plan_windows([("a", 25)], batch_size=BATCH_SIZE)

        assert [(w.offset, w.limit) for w in windows] == [(0, 10), (10, 10), (20, 5)]
        assert [w.window_index for w in windows] == [0, 1, 2]

    def test_collections_keep_input_order(self):
        windows = plan_windows([("b", 5), ("a", 12)], batch_size=BATCH_SIZE)

        assert [(w.collection_id, w.collection_index) for w in windows] == [
            ("b", 0),
            ("a", 1),
            ("a", 1),
        ]

    def test_empty_collection_has_no_windows(self):
        assert plan_windows([("a", 0)], batch_size=BATCH_SIZE) == []

    def test_offset_past_item_count_has_no_windows(self):
        assert plan_windows([("a", 25)], batch_size=BATCH_SIZE, offset=27) == []

    def test_offset_inside_last_short_chunk(self):
        windows = plan_windows([("a", 25)], batch_size=BATCH_SIZE, offset=22)

        assert [(w.offset, w.limit) for w in windows] == [(22, 3)]

    def test_zero_limit_has_no_windows(self):
        assert plan_windows([("a", 25)], batch_size=BATCH_SIZE, offset=3, limit=0) == []

    @pytest.mark.parametrize(
        "item_count,offset,limit,batch_size",
        [
            (0, 0, None, 3),
            (1, 0, None, 3),
            (25, 0, None, 10),
            (25, 5, None, 10),
            (25, 5, 7, 10),
            (25, 9, 2, 10),
            (25, 10, 10, 10),
            (25, 24, 100, 10),
            (30, 0, 30, 10),
            (31, 7, 13, 4),
            (100, 33, 34, 1),
        ],
    )
    def test_windows_cover_requested_range_exactly(self, item_count, offset, limit, batch_size):
        windows = plan_windows([("a", item_count)], batch_size, offset=offset, limit=limit)

        end = item_count if limit is None else min(item_count, offset + limit)
        assert _covered(windows) == list(range(offset, max(offset, end)))
        assert all(0 < w.limit <= batch_size for w in windows)

    def test_non_positive_batch_size_is_rejected(self):
        with pytest.raises(ValueError):
            plan_windows([("a", 5)], batch_size=0)


def test_pending_windows_skips_done_and_registers_rest():
    windows = plan_windows([("a", 30)], batch_size=BATCH_SIZE)
    state = LoadingState({"a": {"10": {"done": True}}})

    pending = pending_windows(windows, state)

    assert [w.offset for w in pending] == [0, 20]
    assert state.to_dict() == {
        "a": {
            "0": {"done": False, "limit": 10},
            "10": {"done": True},
            "20": {"done": False, "limit": 10},
        }
    }


def test_pending_windows_reprocesses_partial_window_that_grew():
    state = LoadingState()
    for window in plan_windows([("a", 15)], batch_size=BATCH_SIZE):
        state.mark_done(window.collection_id, window.offset, window.limit)

    pending = pending_windows(plan_windows([("a", 18)], batch_size=BATCH_SIZE), state)

    assert [(w.offset, w.limit) for w in pending] == [(10, 8)]
