"""
Window planning for parallel collection loads.

Each collection is cut into chunks of `batch_size` items; every chunk that
intersects the requested global `[offset, offset + limit)` range becomes one
Window, clipped to that range. Collections keep their input order and,
within a collection, windows are emitted by increasing chunk index.
"""

from __future__ import annotations

import math
from typing import List, Optional, Sequence, Tuple

from dataset_sql.domain.models import Window
from dataset_sql.loading.state import LoadingState
from dataset_sql.utils.logging import get_logger

log = get_logger(__name__)


def calculate_local_window(
    offset: int,
    limit: Optional[int],
    local_start: int,
    batch_size: int,
) -> Optional[Tuple[int, int]]:
    """
    Clip the chunk `[local_start, local_start + batch_size)` to the global range.

    Returns
    -------
    tuple[int, int] | None
        `(offset, limit)` of the clipped window, or None when the chunk lies
        entirely outside the requested range. `limit=None` means unbounded.
    """
    local_end = local_start + batch_size
    input_end = math.inf if limit is None else offset + limit

    if offset >= local_end:
        return None
    if input_end <= local_start or input_end <= offset:
        return None

    if input_end >= local_end:
        # Range runs to (or past) the end of the chunk
        window_limit = batch_size if offset < local_start else local_end - offset
    elif offset < local_start:
        # Range ends inside the chunk
        window_limit = int(input_end) - local_start
    else:
        # Both bounds inside the chunk
        window_limit = int(limit)

    return max(local_start, offset), window_limit


def plan_windows(
    item_counts: Sequence[Tuple[str, int]],
    batch_size: int,
    offset: int = 0,
    limit: Optional[int] = None,
) -> List[Window]:
    """
    Compute the ordered fetch windows for a list of collections.

    Parameters
    ----------
    item_counts : sequence of (collection_id, item_count)
        Collections in the order their items should appear.
    batch_size : int
        Maximum window size.
    offset, limit : int, int | None
        Global range applied to every collection independently.
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    windows: List[Window] = []
    for collection_index, (collection_id, item_count) in enumerate(item_counts):
        number_of_batches = math.ceil(item_count / batch_size)
        for window_index in range(number_of_batches):
            local = calculate_local_window(
                offset=offset,
                limit=limit,
                local_start=window_index * batch_size,
                batch_size=batch_size,
            )
            if local is None:
                continue
            window_offset, window_limit = local
            if window_offset >= item_count:
                continue
            # The last chunk may be shorter than batch_size
            window_limit = min(window_limit, item_count - window_offset)
            windows.append(
                Window(
                    collection_id=collection_id,
                    collection_index=collection_index,
                    window_index=window_index,
                    offset=window_offset,
                    limit=window_limit,
                )
            )
    return windows


def pending_windows(windows: Sequence[Window], state: LoadingState) -> List[Window]:
    """
    Drop windows already marked done and register the rest as not done.

    A done window recorded with a different limit is processed again. The
    state is mutated so a later flush records every planned window.
    """
    pending: List[Window] = []
    for window in windows:
        if not state.register(window.collection_id, window.offset, window.limit):
            log.info(
                f"Batch for dataset {window.collection_id}, offset: {window.offset} "
                "was already processed, skipping...",
                extra={"collection_id": window.collection_id, "offset": window.offset},
            )
            continue
        pending.append(window)
    return pending


__all__ = ["calculate_local_window", "pending_windows", "plan_windows"]
