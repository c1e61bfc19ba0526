"""
Domain package for dataset exports.

Exports the run input models and the value objects shared by the loader and
the writer. Keep this package focused on data definitions and validation.
"""

from dataset_sql.domain.models import (
    ConnectionConfig,
    ExportInput,
    Record,
    Window,
    WindowContext,
    load_export_input,
)

__all__ = [
    "ConnectionConfig",
    "ExportInput",
    "Record",
    "Window",
    "WindowContext",
    "load_export_input",
]
