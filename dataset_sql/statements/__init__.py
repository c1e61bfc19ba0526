"""
Statements package: INSERT generation and existence checks.
"""

from dataset_sql.statements.existence import ExistenceFilter, existence_query
from dataset_sql.statements.insert import (
    InsertGenerator,
    PreparedInsert,
    build_insert,
    collect_columns,
    escape_literal,
    quote_identifier,
    quote_table,
)

__all__ = [
    "ExistenceFilter",
    "InsertGenerator",
    "PreparedInsert",
    "build_insert",
    "collect_columns",
    "escape_literal",
    "existence_query",
    "quote_identifier",
    "quote_table",
]
