"""
Resumable loading state.

The loading state maps
`collection_id -> {str(window_offset): {"done": bool, "limit": int}}`.
It is loaded once when a load starts, updated as windows finish processing,
flushed to a key-value slot on a fixed interval while the load runs, and
flushed one final time when the load ends (successfully or not).

Two stores are provided:
- FileStateStore: one JSON file, laid out like the platform's local
  key-value store (`<storage>/key_value_stores/default/<KEY>.json`).
- ApifyKeyValueStateStore: a record in a remote key-value store over HTTP.
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import httpx

from dataset_sql.utils.logging import get_logger

log = get_logger(__name__)

StateData = Dict[str, Dict[str, Dict[str, Any]]]


class LoadingState:
    """
    Per-window completion flags for one or more collections.

    All mutation happens from the loader's coordinating coroutine; readers
    take a snapshot with `to_dict()`.
    """

    def __init__(self, data: Optional[StateData] = None) -> None:
        self._data: StateData = copy.deepcopy(data) if data else {}

    @staticmethod
    def key(offset: int) -> str:
        # JSON object keys are strings; normalize so loaded and fresh state agree
        return str(offset)

    def register(self, collection_id: str, offset: int, limit: Optional[int] = None) -> bool:
        """
        Record a planned window. Returns False when it is already done.

        A done entry whose stored limit differs from `limit` (the collection
        grew or the range changed since it was recorded) is reset to not done.
        Entries written without a limit are taken as done.
        """
        entries = self._data.setdefault(collection_id, {})
        key = self.key(offset)
        entry = entries.get(key)
        if entry and entry.get("done"):
            recorded = entry.get("limit")
            if limit is None or recorded is None or recorded == limit:
                return False
        entries[key] = self._entry(False, limit)
        return True

    def mark_done(self, collection_id: str, offset: int, limit: Optional[int] = None) -> None:
        entries = self._data.setdefault(collection_id, {})
        entries[self.key(offset)] = self._entry(True, limit)

    @staticmethod
    def _entry(done: bool, limit: Optional[int]) -> Dict[str, Any]:
        if limit is None:
            return {"done": done}
        return {"done": done, "limit": limit}

    def to_dict(self) -> StateData:
        return copy.deepcopy(self._data)


@runtime_checkable
class StateStore(Protocol):
    """Key-value slot holding a persisted LoadingState."""

    async def load(self) -> Optional[StateData]:
        ...

    async def save(self, data: StateData) -> None:
        ...


class FileStateStore:
    """
    Persist the loading state as a JSON file.

    Writes go to a temporary sibling first and are moved into place, so a
    crash mid-write leaves the previous flush intact.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    @classmethod
    def in_storage(cls, storage_dir: Path | str, key: str) -> "FileStateStore":
        return cls(Path(storage_dir) / "key_value_stores" / "default" / f"{key}.json")

    def _read(self) -> Optional[StateData]:
        if not self.path.exists():
            return None
        with self.path.open("r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, data: StateData) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self.path)

    async def load(self) -> Optional[StateData]:
        return await asyncio.to_thread(self._read)

    async def save(self, data: StateData) -> None:
        await asyncio.to_thread(self._write, data)


class ApifyKeyValueStateStore:
    """
    Persist the loading state as a record of a remote key-value store.
    """

    def __init__(self, client: httpx.AsyncClient, store_id: str, key: str) -> None:
        self._client = client
        self.store_id = store_id
        self.key = key

    @property
    def _path(self) -> str:
        return f"/v2/key-value-stores/{self.store_id}/records/{self.key}"

    async def load(self) -> Optional[StateData]:
        response = await self._client.get(self._path)
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        response.raise_for_status()
        return response.json()

    async def save(self, data: StateData) -> None:
        response = await self._client.put(self._path, json=data)
        response.raise_for_status()


class StatePersister:
    """
    Flush a LoadingState on an interval while a load runs, and once at the end.

    Use as an async context manager around the load. Leaving the block
    cancels the periodic task before the final flush, so the final flush
    happens exactly once and never races a periodic one.
    """

    def __init__(
        self,
        state: LoadingState,
        store: StateStore,
        interval_seconds: float = 15.0,
    ) -> None:
        self.state = state
        self.store = store
        self.interval_seconds = interval_seconds
        self.flush_count = 0
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task[None]] = None

    async def flush(self) -> None:
        async with self._lock:
            await self.store.save(self.state.to_dict())
            self.flush_count += 1

    async def _flush_periodically(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.flush()
            except Exception as exc:
                # The next tick or the final flush retries
                log.warning(
                    "Periodic loading-state flush failed",
                    exc_info=True,
                    extra={"error": str(exc), "store": type(self.store).__name__},
                )

    async def __aenter__(self) -> "StatePersister":
        self._task = asyncio.create_task(self._flush_periodically())
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        if exc_type is None:
            await self.flush()
            return

        # The load failed; its error wins over a flush failure.
        try:
            await self.flush()
        except Exception:
            log.exception("Final loading-state flush failed after an aborted load")


async def load_state(store: StateStore) -> LoadingState:
    """Read the persisted state, starting empty when nothing was stored."""
    data = await store.load()
    return LoadingState(data or {})


__all__ = [
    "ApifyKeyValueStateStore",
    "FileStateStore",
    "LoadingState",
    "StatePersister",
    "StateStore",
    "load_state",
]
