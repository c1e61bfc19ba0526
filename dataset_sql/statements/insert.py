"""
Multi-row INSERT generation for heterogeneous records.

A row-group (a contiguous slice of records) becomes one statement:

    INSERT INTO "table" ("a","b","src") VALUES (1,'hi','x'),(2,NULL,'x');

The column list is the union of the non-metadata field names seen in that
row-group only, so two row-groups of the same run can have different column
lists. Static parameters are appended to every row, after the record columns.

Values are rendered as PostgreSQL literals. Strings are single-quoted with
quotes doubled; strings holding a backslash use the `E''` form with
backslashes doubled, which reads the same whatever
`standard_conforming_strings` is set to.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from dataset_sql.domain.models import Record
from dataset_sql.errors import DedupCheckError
from dataset_sql.statements.existence import ExistenceFilter
from dataset_sql.utils.logging import get_logger

log = get_logger(__name__)

RESERVED_PREFIX = "#"
NULL = "NULL"


class UnsafeValueError(ValueError):
    """A value that has no safe SQL literal form."""


def collect_columns(rows: Iterable[Mapping[str, Any]]) -> List[str]:
    """
    Union of field names across `rows`, in first-seen order.

    Fields starting with `#` are metadata and never become columns.
    """
    columns: Dict[str, None] = {}
    for row in rows:
        for key in row:
            if not key.startswith(RESERVED_PREFIX):
                columns.setdefault(key, None)
    return list(columns)


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def quote_table(table: str) -> str:
    """Quote a possibly schema-qualified table name (`schema.table`)."""
    return ".".join(quote_identifier(part) for part in table.split("."))


def escape_literal(value: Any) -> str:
    """
    Render a Python value as a SQL literal.

    Raises
    ------
    UnsafeValueError
        For text containing NUL, which PostgreSQL text cannot store.
    """
    if value is None:
        return NULL
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value) if math.isfinite(value) else NULL
    if isinstance(value, Decimal):
        return str(value) if value.is_finite() else NULL

    if isinstance(value, (dict, list, tuple)):
        text = json.dumps(value, ensure_ascii=False, default=str)
    else:
        text = str(value)

    if "\x00" in text:
        raise UnsafeValueError("text contains a NUL character")
    quoted = text.replace("'", "''")
    if "\\" in quoted:
        return "E'" + quoted.replace("\\", "\\\\") + "'"
    return "'" + quoted + "'"


def build_insert(table: str, columns: Sequence[str], value_rows: Sequence[Sequence[str]]) -> str:
    """Join already-escaped value tuples into one INSERT statement."""
    column_list = ",".join(quote_identifier(column) for column in columns)
    values = "),(".join(",".join(row) for row in value_rows)
    return f"INSERT INTO {quote_table(table)} ({column_list}) VALUES ({values});"


@dataclass(frozen=True)
class PreparedInsert:
    """Outcome of preparing one row-group."""

    statement: Optional[str]
    row_count: int
    skipped: int


class InsertGenerator:
    """
    Build INSERT statements for row-groups against one table.

    Parameters
    ----------
    table : str
        Target table, optionally `schema.table`.
    static_params : mapping, optional
        Column/value pairs appended to every row, in their defined order.
    exists_attr : str, optional
        Field used to skip records already present in the table. Needs an
        `existence_filter`. Each checked record costs one destination
        round-trip, so a row-group of N records may add N queries.
    existence_filter : ExistenceFilter, optional
        Point-read used for `exists_attr`.
    """

    def __init__(
        self,
        table: str,
        static_params: Optional[Mapping[str, Any]] = None,
        exists_attr: Optional[str] = None,
        existence_filter: Optional[ExistenceFilter] = None,
    ) -> None:
        if exists_attr and existence_filter is None:
            raise ValueError("exists_attr requires an existence_filter")
        self.table = table
        self.static_params = dict(static_params or {})
        self.exists_attr = exists_attr
        self.existence_filter = existence_filter
        self._static_values = [
            self._escape_field(column, value) for column, value in self.static_params.items()
        ]

    @staticmethod
    def _escape_field(column: str, value: Any) -> str:
        try:
            return escape_literal(value)
        except UnsafeValueError as exc:
            log.warning(
                f"Value of column {column} cannot be escaped, inserting NULL",
                extra={"column": column, "error": str(exc)},
            )
            return NULL

    async def _already_exists(self, row: Record) -> bool:
        if not self.exists_attr or self.existence_filter is None:
            return False
        if row.get(self.exists_attr) is None:
            return False
        try:
            return await self.existence_filter.exists(
                self.table, self.exists_attr, row[self.exists_attr]
            )
        except DedupCheckError as exc:
            # Prefer a possible duplicate over losing the record
            log.warning(
                "Existence check failed, record will be inserted",
                extra={"attribute": self.exists_attr, "error": str(exc)},
            )
            return False

    def _value_row(self, row: Record, columns: Sequence[str]) -> List[str]:
        values = [
            self._escape_field(column, row[column]) if column in row else NULL
            for column in columns
        ]
        values.extend(self._static_values)
        return values

    async def prepare(self, rows: Sequence[Record]) -> PreparedInsert:
        """Resolve columns, drop existing records and build the statement."""
        # Static parameters take precedence over record fields of the same name
        columns = [column for column in collect_columns(rows) if column not in self.static_params]
        all_columns = columns + list(self.static_params)
        if not all_columns:
            log.warning("Row-group has no insertable fields", extra={"rows": len(rows)})
            return PreparedInsert(statement=None, row_count=0, skipped=len(rows))

        value_rows: List[List[str]] = []
        skipped = 0
        for row in rows:
            if await self._already_exists(row):
                skipped += 1
                log.warning(
                    "object already exists, will not be inserted",
                    extra={"attribute": self.exists_attr, "value": row.get(self.exists_attr)},
                )
                continue
            value_rows.append(self._value_row(row, columns))

        if not value_rows:
            return PreparedInsert(statement=None, row_count=0, skipped=skipped)
        return PreparedInsert(
            statement=build_insert(self.table, all_columns, value_rows),
            row_count=len(value_rows),
            skipped=skipped,
        )

    async def create_insert(self, rows: Sequence[Record]) -> Optional[str]:
        """
        Return the INSERT statement for `rows`, or None when nothing is left to insert.
        """
        prepared = await self.prepare(rows)
        return prepared.statement


__all__ = [
    "InsertGenerator",
    "PreparedInsert",
    "RESERVED_PREFIX",
    "UnsafeValueError",
    "build_insert",
    "collect_columns",
    "escape_literal",
    "quote_identifier",
    "quote_table",
]
