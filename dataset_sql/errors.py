"""
Exception hierarchy for dataset exports.

Every error raised on purpose by the exporter derives from ExportError so the
CLI (or any other caller) can tell failures apart by kind and pick a retry
policy:

- ConfigurationError: required input missing or invalid; raised before any work.
- FetchError: reading a remote collection failed; aborts the run.
- InsertError: the destination rejected a statement; callers log and continue.
- DedupCheckError: an existence query failed; the record is treated as new.
"""

from __future__ import annotations

from typing import Optional


class ExportError(Exception):
    """Base class for all exporter errors."""


class ConfigurationError(ExportError):
    """Missing or invalid run input."""


class FetchError(ExportError):
    """A collection (or one of its windows) could not be read."""

    def __init__(
        self,
        message: str,
        collection_id: Optional[str] = None,
        offset: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.collection_id = collection_id
        self.offset = offset


class InsertError(ExportError):
    """The destination rejected an insert statement."""

    def __init__(self, message: str, statement: Optional[str] = None) -> None:
        super().__init__(message)
        self.statement = statement


class DedupCheckError(ExportError):
    """An existence query against the destination failed."""


__all__ = [
    "ExportError",
    "ConfigurationError",
    "FetchError",
    "InsertError",
    "DedupCheckError",
]
