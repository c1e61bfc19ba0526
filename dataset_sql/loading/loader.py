"""
Parallel, order-preserving loader for paginated collections.

The loader turns one or more collections into fetch windows (see
`planner.py`), puts them on a work queue and runs a fixed number of worker
coroutines against it, so at most `concurrency` window reads are in flight.
Workers report every finished window to the coordinating coroutine through a
completion queue; only the coordinator touches progress counters, collected
slots and the loading state.

Two modes:
- collect (`load`): windows are placed at `[collection_index][window_index]`
  and flattened at the end, so output order never depends on fetch timing.
- process (`process`): each window's items go straight to a caller-supplied
  coroutine; a window is marked done in the loading state only after that
  coroutine returns. Windows are processed in no particular order.

A failing window read or processing step cancels the other workers and is
re-raised to the caller; nothing is retried within a run.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from dataset_sql.domain.models import Record, Window, WindowContext
from dataset_sql.loading.planner import pending_windows, plan_windows
from dataset_sql.loading.state import LoadingState, StatePersister, StateStore, load_state
from dataset_sql.sources.abstract import CollectionSource
from dataset_sql.utils.logging import get_logger

log = get_logger(__name__)

ProcessFn = Callable[[List[Record], WindowContext], Awaitable[None]]

DEFAULT_CONCURRENCY = 20
DEFAULT_BATCH_SIZE = 50_000


@dataclass
class LoadProgress:
    """Running item counters, owned by the coordinating coroutine."""

    windows_planned: int = 0
    windows_skipped: int = 0
    windows_completed: int = 0
    total_loaded: int = 0
    loaded_per_collection: Dict[str, int] = field(default_factory=dict)

    def record(self, collection_id: str, count: int) -> None:
        self.windows_completed += 1
        self.total_loaded += count
        self.loaded_per_collection[collection_id] = (
            self.loaded_per_collection.get(collection_id, 0) + count
        )


@dataclass(frozen=True)
class _Completion:
    window: Window
    count: int
    items: Optional[List[Record]] = None


def _first_leaf(group: BaseExceptionGroup) -> BaseException:
    first: BaseException = group.exceptions[0]
    while isinstance(first, BaseExceptionGroup):
        first = first.exceptions[0]
    return first


class ParallelLoader:
    """
    Load collection windows concurrently under a concurrency cap.

    Parameters
    ----------
    source : CollectionSource
        Where items are read from.
    concurrency : int
        Maximum number of window reads in flight.
    batch_size : int
        Maximum items per window.
    offset, limit : int, int | None
        Global range applied to each collection.
    fields : sequence of str, optional
        Field projection passed through to the source.
    debug_log : bool
        Promote per-window progress lines from DEBUG to INFO.
    """

    def __init__(
        self,
        source: CollectionSource,
        concurrency: int = DEFAULT_CONCURRENCY,
        batch_size: int = DEFAULT_BATCH_SIZE,
        offset: int = 0,
        limit: Optional[int] = None,
        fields: Optional[Sequence[str]] = None,
        debug_log: bool = False,
    ) -> None:
        if concurrency <= 0:
            raise ValueError(f"concurrency must be positive, got {concurrency}")
        self.source = source
        self.concurrency = concurrency
        self.batch_size = batch_size
        self.offset = offset
        self.limit = limit
        self.fields = list(fields) if fields else None
        self._progress_log = log.info if debug_log else log.debug

    async def plan(self, collection_ids: Sequence[str]) -> List[Window]:
        """
        Resolve every collection's item count, then plan its windows.

        All counts are resolved before any window is returned, so an unknown
        collection fails the run without a partial plan.
        """
        item_counts: List[Tuple[str, int]] = []
        for collection_id in collection_ids:
            count = await self.source.item_count(collection_id)
            self._progress_log(
                f"Dataset {collection_id} has {count} items",
                extra={"collection_id": collection_id, "item_count": count},
            )
            item_counts.append((collection_id, count))

        windows = plan_windows(
            item_counts, batch_size=self.batch_size, offset=self.offset, limit=self.limit
        )
        self._progress_log(
            f"Number of requests to do: {len(windows)}", extra={"windows": len(windows)}
        )
        return windows

    async def _worker(
        self,
        queue: "asyncio.Queue[Window]",
        completions: "asyncio.Queue[_Completion]",
        process_fn: Optional[ProcessFn],
    ) -> None:
        while True:
            try:
                window = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            items = await self.source.get_items(
                window.collection_id, window.offset, window.limit, self.fields
            )
            if process_fn is None:
                await completions.put(_Completion(window=window, count=len(items), items=items))
            else:
                await process_fn(items, WindowContext(window.collection_id, window.offset))
                await completions.put(_Completion(window=window, count=len(items)))

    async def _execute(
        self,
        windows: Sequence[Window],
        process_fn: Optional[ProcessFn],
        on_complete: Callable[[_Completion], None],
    ) -> None:
        """Run all windows through the worker pool, feeding completions to `on_complete`."""
        if not windows:
            return

        queue: asyncio.Queue[Window] = asyncio.Queue()
        for window in windows:
            queue.put_nowait(window)
        completions: asyncio.Queue[_Completion] = asyncio.Queue()
        worker_count = min(self.concurrency, len(windows))

        try:
            async with asyncio.TaskGroup() as group:
                for _ in range(worker_count):
                    group.create_task(self._worker(queue, completions, process_fn))
                for _ in range(len(windows)):
                    on_complete(await completions.get())
        except BaseExceptionGroup as exc_group:
            raise _first_leaf(exc_group)
        finally:
            # Windows that finished right before an abort still count
            while not completions.empty():
                on_complete(completions.get_nowait())

    def _log_completion(self, completion: _Completion, progress: LoadProgress) -> None:
        collection_id = completion.window.collection_id
        self._progress_log(
            f"Items loaded from dataset {collection_id}: {completion.count}, "
            f"offset: {completion.window.offset}, "
            f"total loaded from dataset {collection_id}: "
            f"{progress.loaded_per_collection[collection_id]}, "
            f"total loaded: {progress.total_loaded}",
            extra={
                "collection_id": collection_id,
                "offset": completion.window.offset,
                "items": completion.count,
                "total_loaded": progress.total_loaded,
            },
        )

    async def load(
        self,
        collection_ids: Sequence[str],
        concat_items: bool = True,
        concat_collections: bool = True,
    ) -> List[Any]:
        """
        Load every requested item and return it in collection, then window, order.

        With both flags on, returns one flat list of items. `concat_items=False`
        keeps each collection as a list of window batches;
        `concat_collections=False` keeps one entry per collection.
        """
        start = time.perf_counter()
        windows = await self.plan(collection_ids)
        progress = LoadProgress(windows_planned=len(windows))
        slots: Dict[int, Dict[int, List[Record]]] = {
            index: {} for index in range(len(collection_ids))
        }

        def on_complete(completion: _Completion) -> None:
            window = completion.window
            progress.record(window.collection_id, completion.count)
            slots[window.collection_index][window.window_index] = completion.items or []
            self._log_completion(completion, progress)

        await self._execute(windows, None, on_complete)
        self._progress_log(
            f"Loading took {round(time.perf_counter() - start)} seconds",
            extra={"total_loaded": progress.total_loaded},
        )

        per_collection: List[Any] = []
        for collection_index in range(len(collection_ids)):
            batches = [
                slots[collection_index][window_index]
                for window_index in sorted(slots[collection_index])
            ]
            if concat_items:
                per_collection.append([item for batch in batches for item in batch])
            else:
                per_collection.append(batches)

        if concat_collections:
            return [entry for collection in per_collection for entry in collection]
        return per_collection

    async def process(
        self,
        collection_ids: Sequence[str],
        process_fn: ProcessFn,
        state_store: Optional[StateStore] = None,
        flush_interval_seconds: float = 15.0,
    ) -> LoadProgress:
        """
        Stream every window to `process_fn` as soon as it is fetched.

        When `state_store` is given, windows recorded as done by an earlier run
        are skipped, completed windows are marked done, and the state is
        flushed every `flush_interval_seconds` and once when the load ends.
        """
        start = time.perf_counter()
        state: Optional[LoadingState] = None
        if state_store is not None:
            state = await load_state(state_store)

        windows = await self.plan(collection_ids)
        progress = LoadProgress(windows_planned=len(windows))
        if state is not None:
            windows = pending_windows(windows, state)
            progress.windows_skipped = progress.windows_planned - len(windows)

        def on_complete(completion: _Completion) -> None:
            window = completion.window
            progress.record(window.collection_id, completion.count)
            if state is not None:
                state.mark_done(window.collection_id, window.offset, window.limit)
            self._log_completion(completion, progress)

        if state is None:
            await self._execute(windows, process_fn, on_complete)
        else:
            async with StatePersister(state, state_store, flush_interval_seconds):
                await self._execute(windows, process_fn, on_complete)

        self._progress_log(
            f"Loading took {round(time.perf_counter() - start)} seconds",
            extra={"total_loaded": progress.total_loaded},
        )
        return progress


__all__ = ["LoadProgress", "ParallelLoader", "ProcessFn"]
