"""
Table writer: the per-window processing step of an export.

Splits a window's items into row-groups, turns each group into one INSERT via
the InsertGenerator and executes it on the destination. Every statement is
logged before it runs and its outcome after, so a failed export can be
replayed from the log. A rejected statement is logged and the next row-group
still runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from dataset_sql.domain.models import Record, WindowContext
from dataset_sql.errors import InsertError
from dataset_sql.statements.insert import InsertGenerator
from dataset_sql.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_ROW_GROUP_SIZE = 10


class StatementExecutor(Protocol):
    async def execute(self, statement: str) -> int:
        ...


@dataclass
class WriteStats:
    statements_executed: int = 0
    statements_failed: int = 0
    rows_inserted: int = 0
    rows_skipped: int = 0


class TableWriter:
    """
    Write records to one table in row-groups of `row_group_size`.

    Instances are awaitable as `writer(items, context)`, matching the
    loader's processing-step signature.
    """

    def __init__(
        self,
        destination: StatementExecutor,
        generator: InsertGenerator,
        row_group_size: int = DEFAULT_ROW_GROUP_SIZE,
    ) -> None:
        if row_group_size <= 0:
            raise ValueError(f"row_group_size must be positive, got {row_group_size}")
        self.destination = destination
        self.generator = generator
        self.row_group_size = row_group_size
        self.stats = WriteStats()

    async def write(self, items: Sequence[Record], context: Optional[WindowContext] = None) -> None:
        window_extra = (
            {"collection_id": context.collection_id, "offset": context.offset} if context else {}
        )
        for start in range(0, len(items), self.row_group_size):
            prepared = await self.generator.prepare(items[start : start + self.row_group_size])
            self.stats.rows_skipped += prepared.skipped
            if prepared.statement is None:
                continue

            log.info(prepared.statement)
            try:
                affected = await self.destination.execute(prepared.statement)
            except InsertError as exc:
                self.stats.statements_failed += 1
                log.error(
                    f"Insert failed: {exc}",
                    extra={**window_extra, "row_group_start": start, "statement": exc.statement},
                )
                continue

            self.stats.statements_executed += 1
            self.stats.rows_inserted += affected
            log.info(
                f"Inserted {affected} rows",
                extra={**window_extra, "row_group_start": start, "rows": affected},
            )

    async def __call__(self, items: Sequence[Record], context: WindowContext) -> None:
        await self.write(items, context)


__all__ = ["DEFAULT_ROW_GROUP_SIZE", "StatementExecutor", "TableWriter", "WriteStats"]
