from __future__ import annotations

import asyncio

import pytest

from dataset_sql.errors import FetchError
from dataset_sql.loading.loader import ParallelLoader
from tests.fakes import FakeSource, MemoryStateStore

BATCH_SIZE = 4


def _expected(collection_id: str, start: int, end: int) -> list[dict]:
    return [{"collection": collection_id, "n": n} for n in range(start, end)]


class TestCollect:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
    async def test_output_order_does_not_depend_on_completion_order(self, seed):
        source = FakeSource({"a": 10, "b": 7}, seed=seed)
        loader = ParallelLoader(source, concurrency=5, batch_size=BATCH_SIZE)

        items = await loader.load(["a", "b"])

        assert items == _expected("a", 0, 10) + _expected("b", 0, 7)

    @pytest.mark.asyncio
    async def test_first_window_finishing_last_keeps_its_place(self):
        source = FakeSource({"a": 12}, delays={0: 0.05, 4: 0.0, 8: 0.0})
        loader = ParallelLoader(source, concurrency=3, batch_size=BATCH_SIZE)

        items = await loader.load(["a"])

        assert items == _expected("a", 0, 12)

    @pytest.mark.asyncio
    async def test_concat_flags_shape_the_result(self):
        source = FakeSource({"a": 6, "b": 2})
        loader = ParallelLoader(source, concurrency=2, batch_size=BATCH_SIZE)

        per_collection = await loader.load(["a", "b"], concat_collections=False)
        batches = await loader.load(["a", "b"], concat_items=False)
        nested = await loader.load(["a", "b"], concat_items=False, concat_collections=False)

        assert per_collection == [_expected("a", 0, 6), _expected("b", 0, 2)]
        assert batches == [_expected("a", 0, 4), _expected("a", 4, 6), _expected("b", 0, 2)]
        assert nested == [
            [_expected("a", 0, 4), _expected("a", 4, 6)],
            [_expected("b", 0, 2)],
        ]

    @pytest.mark.asyncio
    async def test_offset_and_limit_apply_per_collection(self):
        source = FakeSource({"a": 10, "b": 10})
        loader = ParallelLoader(source, concurrency=4, batch_size=BATCH_SIZE, offset=3, limit=4)

        items = await loader.load(["a", "b"])

        assert items == _expected("a", 3, 7) + _expected("b", 3, 7)

    @pytest.mark.asyncio
    async def test_concurrency_cap_bounds_reads_in_flight(self):
        source = FakeSource({"a": 40}, delays={offset: 0.01 for offset in range(0, 40, 4)})
        loader = ParallelLoader(source, concurrency=3, batch_size=BATCH_SIZE)

        await loader.load(["a"])

        assert len(source.calls) == 10
        assert source.max_in_flight == 3

    @pytest.mark.asyncio
    async def test_fields_are_passed_to_the_source(self):
        source = FakeSource({"a": 3})
        loader = ParallelLoader(source, batch_size=BATCH_SIZE, fields=["n"])

        assert await loader.load(["a"]) == [{"n": 0}, {"n": 1}, {"n": 2}]

    @pytest.mark.asyncio
    async def test_unknown_collection_fails_before_any_read(self):
        source = FakeSource({"a": 8})
        loader = ParallelLoader(source, batch_size=BATCH_SIZE)

        with pytest.raises(FetchError):
            await loader.load(["a", "missing"])
        assert source.calls == []

    @pytest.mark.asyncio
    async def test_window_failure_aborts_the_load(self):
        source = FakeSource({"a": 12}, fail_offsets={"a": 4})
        loader = ParallelLoader(source, concurrency=2, batch_size=BATCH_SIZE)

        with pytest.raises(FetchError) as exc_info:
            await loader.load(["a"])
        assert exc_info.value.offset == 4


class TestProcess:
    @pytest.mark.asyncio
    async def test_every_window_is_processed_once(self):
        source = FakeSource({"a": 10, "b": 3})
        seen: list[tuple[str, int, int]] = []

        async def process_fn(items, context):
            seen.append((context.collection_id, context.offset, len(items)))

        progress = await ParallelLoader(source, batch_size=BATCH_SIZE).process(
            ["a", "b"], process_fn
        )

        assert sorted(seen) == [("a", 0, 4), ("a", 4, 4), ("a", 8, 2), ("b", 0, 3)]
        assert progress.windows_planned == 4
        assert progress.windows_completed == 4
        assert progress.total_loaded == 13
        assert progress.loaded_per_collection == {"a": 10, "b": 3}

    @pytest.mark.asyncio
    async def test_done_windows_from_earlier_run_are_skipped(self):
        source = FakeSource({"a": 12})
        store = MemoryStateStore({"a": {"0": {"done": True}, "8": {"done": True}}})
        seen: list[int] = []

        async def process_fn(items, context):
            seen.append(context.offset)

        progress = await ParallelLoader(source, batch_size=BATCH_SIZE).process(
            ["a"], process_fn, state_store=store
        )

        assert seen == [4]
        assert [call[1] for call in source.calls] == [4]
        assert progress.windows_skipped == 2
        assert store.data == {
            "a": {"0": {"done": True}, "4": {"done": True, "limit": 4}, "8": {"done": True}}
        }

    @pytest.mark.asyncio
    async def test_done_window_that_has_grown_is_processed_again(self):
        source = FakeSource({"a": 8})
        store = MemoryStateStore(
            {"a": {"0": {"done": True, "limit": 4}, "4": {"done": True, "limit": 2}}}
        )
        seen: list[tuple[int, int]] = []

        async def process_fn(items, context):
            seen.append((context.offset, len(items)))

        progress = await ParallelLoader(source, batch_size=BATCH_SIZE).process(
            ["a"], process_fn, state_store=store
        )

        assert seen == [(4, 4)]
        assert progress.windows_skipped == 1
        assert store.data["a"]["4"] == {"done": True, "limit": 4}

    @pytest.mark.asyncio
    async def test_failed_processing_leaves_window_not_done(self):
        source = FakeSource({"a": 12}, delays={8: 0.05})
        store = MemoryStateStore()

        async def process_fn(items, context):
            if context.offset == 4:
                raise RuntimeError("insert pipeline broke")

        loader = ParallelLoader(source, concurrency=3, batch_size=BATCH_SIZE)
        with pytest.raises(RuntimeError, match="insert pipeline broke"):
            await loader.process(["a"], process_fn, state_store=store)

        # exactly one final flush after the abort
        assert len(store.saves) == 1
        final = store.saves[-1]["a"]
        assert final["4"] == {"done": False, "limit": 4}
        assert final["8"] == {"done": False, "limit": 4}
        assert final["0"] == {"done": True, "limit": 4}

    @pytest.mark.asyncio
    async def test_resumed_run_processes_only_the_remainder(self):
        store = MemoryStateStore()
        first_seen: list[int] = []

        async def failing_fn(items, context):
            if context.offset == 8:
                raise RuntimeError("stop")
            first_seen.extend(item["n"] for item in items)

        first_loader = ParallelLoader(FakeSource({"a": 12}), concurrency=1, batch_size=BATCH_SIZE)
        with pytest.raises(RuntimeError):
            await first_loader.process(["a"], failing_fn, state_store=store)

        second_seen: list[int] = []

        async def collecting_fn(items, context):
            second_seen.extend(item["n"] for item in items)

        await ParallelLoader(FakeSource({"a": 12}), batch_size=BATCH_SIZE).process(
            ["a"], collecting_fn, state_store=store
        )

        assert sorted(first_seen + second_seen) == list(range(12))
        assert second_seen == list(range(8, 12))

    @pytest.mark.asyncio
    async def test_state_is_flushed_periodically_while_loading(self):
        source = FakeSource({"a": 8}, delays={0: 0.05, 4: 0.05})
        store = MemoryStateStore()

        async def process_fn(items, context):
            await asyncio.sleep(0)

        await ParallelLoader(source, concurrency=1, batch_size=BATCH_SIZE).process(
            ["a"], process_fn, state_store=store, flush_interval_seconds=0.01
        )

        assert len(store.saves) >= 2
        assert store.saves[-1] == {
            "a": {"0": {"done": True, "limit": 4}, "4": {"done": True, "limit": 4}}
        }

    @pytest.mark.asyncio
    async def test_without_state_store_nothing_is_persisted(self):
        source = FakeSource({"a": 5})
        calls: list[int] = []

        async def process_fn(items, context):
            calls.append(context.offset)

        progress = await ParallelLoader(source, batch_size=BATCH_SIZE).process(["a"], process_fn)

        assert sorted(calls) == [0, 4]
        assert progress.windows_skipped == 0


def test_non_positive_concurrency_is_rejected():
    with pytest.raises(ValueError):
        ParallelLoader(FakeSource({}), concurrency=0)
