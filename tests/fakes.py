"""
In-memory collaborators shared by the unit tests.

- FakeSource: collections of generated items, with optional per-window delays
  and failures, tracking how many reads are in flight.
- MemoryStateStore: loading-state slot that remembers every save.
- FakeDestination: records executed statements and answers existence queries.
"""

from __future__ import annotations

import asyncio
import random
from typing import Any, Dict, List, Optional, Sequence, Set

from dataset_sql.errors import FetchError, InsertError


class FakeSource:
    name = "fake"

    def __init__(
        self,
        counts: Dict[str, int],
        delays: Optional[Dict[int, float]] = None,
        fail_offsets: Optional[Dict[str, int]] = None,
        seed: Optional[int] = None,
    ) -> None:
        self.counts = counts
        self.delays = delays or {}
        self.fail_offsets = fail_offsets or {}
        self._rng = random.Random(seed) if seed is not None else None
        self.calls: List[tuple] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def item_count(self, collection_id: str) -> int:
        if collection_id not in self.counts:
            raise FetchError(f"Dataset {collection_id} was not found", collection_id=collection_id)
        return self.counts[collection_id]

    async def get_items(
        self,
        collection_id: str,
        offset: int,
        limit: int,
        fields: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        self.calls.append((collection_id, offset, limit))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._rng is not None:
                await asyncio.sleep(self._rng.uniform(0, 0.01))
            else:
                await asyncio.sleep(self.delays.get(offset, 0))
            if self.fail_offsets.get(collection_id) == offset:
                raise FetchError("boom", collection_id=collection_id, offset=offset)
            end = min(offset + limit, self.counts[collection_id])
            items = [{"collection": collection_id, "n": n} for n in range(offset, end)]
            if fields:
                items = [{key: item[key] for key in fields if key in item} for item in items]
            return items
        finally:
            self.in_flight -= 1


class MemoryStateStore:
    def __init__(self, data: Optional[dict] = None) -> None:
        self.data = data
        self.saves: List[dict] = []

    async def load(self) -> Optional[dict]:
        return self.data

    async def save(self, data: dict) -> None:
        self.saves.append(data)
        self.data = data


class FakeDestination:
    def __init__(
        self,
        existing: Optional[Set[Any]] = None,
        fail_when: Optional[str] = None,
        query_error: Optional[Exception] = None,
    ) -> None:
        self.existing = existing or set()
        self.fail_when = fail_when
        self.query_error = query_error
        self.statements: List[str] = []
        self.queries: List[tuple] = []
        self.closed = False

    async def execute(self, statement: str) -> int:
        if self.fail_when and self.fail_when in statement:
            raise InsertError("relation rejected the row", statement=statement)
        self.statements.append(statement)
        return statement.count("),(") + 1

    async def query(self, query: Any, params: Any = None) -> list:
        self.queries.append((query, params))
        if self.query_error is not None:
            raise self.query_error
        return [(1,)] if params and params[0] in self.existing else []

    async def close(self) -> None:
        self.closed = True
