"""
Loading package for dataset exports.

Window planning, the bounded parallel loader and resumable loading state.
"""

from dataset_sql.loading.loader import LoadProgress, ParallelLoader, ProcessFn
from dataset_sql.loading.planner import calculate_local_window, pending_windows, plan_windows
from dataset_sql.loading.state import (
    ApifyKeyValueStateStore,
    FileStateStore,
    LoadingState,
    StatePersister,
    StateStore,
    load_state,
)

__all__ = [
    "ApifyKeyValueStateStore",
    "FileStateStore",
    "LoadProgress",
    "LoadingState",
    "ParallelLoader",
    "ProcessFn",
    "StatePersister",
    "StateStore",
    "calculate_local_window",
    "load_state",
    "pending_windows",
    "plan_windows",
]
