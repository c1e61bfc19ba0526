"""
Dataset SQL export - stream stored dataset items into a relational table.

This package reads large record collections (remote datasets or a local
storage directory) in parallel offset/limit windows and writes them into a
PostgreSQL table as multi-row INSERT statements, including:

- Window planning and bounded-concurrency loading with ordered results
- Resumable loading state persisted to a key-value store
- Safe literal escaping and optional skip-if-exists deduplication
- An optional HTTP CONNECT tunnel for reaching the destination through a proxy
"""

from __future__ import annotations

__version__ = "0.1.0"

# Public API exports
from dataset_sql.config import Settings, get_settings
from dataset_sql.domain.models import ConnectionConfig, ExportInput, load_export_input
from dataset_sql.errors import (
    ConfigurationError,
    DedupCheckError,
    ExportError,
    FetchError,
    InsertError,
)
from dataset_sql.loading import LoadingState, ParallelLoader, calculate_local_window
from dataset_sql.orchestrator import ExportSummary, run_export
from dataset_sql.statements import InsertGenerator
from dataset_sql.utils.logging import configure_logging, get_logger
from dataset_sql.writer import TableWriter

__all__ = [
    "__version__",
    # Configuration
    "Settings",
    "get_settings",
    # Input
    "ConnectionConfig",
    "ExportInput",
    "load_export_input",
    # Errors
    "ExportError",
    "ConfigurationError",
    "FetchError",
    "InsertError",
    "DedupCheckError",
    # Loading
    "LoadingState",
    "ParallelLoader",
    "calculate_local_window",
    # Writing
    "InsertGenerator",
    "TableWriter",
    # Orchestration
    "ExportSummary",
    "run_export",
    # Logging
    "configure_logging",
    "get_logger",
]
