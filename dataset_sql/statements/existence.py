"""
Existence checks against the destination table.

One parameterized point read per candidate record:

    SELECT 1 FROM "table" WHERE "attr" = %s LIMIT 1

Identifiers are composed with `psycopg.sql`, the value is a bound parameter.
"""

from __future__ import annotations

import json
from typing import Any, Protocol, Sequence

import psycopg
from psycopg import sql

from dataset_sql.errors import DedupCheckError


class QueryExecutor(Protocol):
    """Anything that can run a parameterized query and return its rows."""

    async def query(self, query: sql.Composable, params: Sequence[Any]) -> list:
        ...


def existence_query(table: str, attr: str) -> sql.Composed:
    return sql.SQL("SELECT 1 FROM {table} WHERE {attr} = %s LIMIT 1").format(
        table=sql.Identifier(*table.split(".")),
        attr=sql.Identifier(attr),
    )


class ExistenceFilter:
    """
    Answer "does a row with attr == value already exist in table?".

    Raises DedupCheckError when the query itself fails; deciding what to do
    about it is up to the caller.
    """

    def __init__(self, executor: QueryExecutor) -> None:
        self._executor = executor
        self.checks = 0

    async def exists(self, table: str, attr: str, value: Any) -> bool:
        if isinstance(value, (dict, list)):
            value = json.dumps(value, ensure_ascii=False)
        self.checks += 1
        try:
            rows = await self._executor.query(existence_query(table, attr), (value,))
        except psycopg.Error as exc:
            raise DedupCheckError(
                f"Existence check on {table}.{attr} failed: {exc}"
            ) from exc
        return len(rows) > 0


__all__ = ["ExistenceFilter", "QueryExecutor", "existence_query"]
