"""
Logging setup for dataset exports.

Export logs double as a replay journal: every INSERT is logged before it runs,
and window/offset bookkeeping travels as `extra=` fields. Both formatters
therefore surface those fields: the console formatter appends them as
`key=value` pairs after the message, the JSON formatter emits them as
top-level keys next to an ISO-8601 timestamp.

Usage:
    from dataset_sql.utils.logging import configure_logging, get_logger

    configure_logging(level="INFO", json_logs=False)
    log = get_logger(__name__)
    log.info("Inserted 10 rows", extra={"collection_id": "abc", "offset": 0})
"""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Attributes every LogRecord carries; anything else came in through `extra=`.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

# Third-party loggers that are chatty at INFO (one line per HTTP request or
# pool connection) and drown out the per-window progress lines.
_QUIET_LOGGERS = ("httpx", "httpcore", "psycopg.pool")


def extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """
    Collect the `extra=` fields attached to a record.

    A nested `extra` dict (`record.extra = {...}`) is flattened into the
    result as well, so callers that attach one dict still get top-level keys.
    """
    fields = {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_ATTRS and key != "extra"
    }
    nested = getattr(record, "extra", None)
    if isinstance(nested, dict):
        fields.update(nested)
    return fields


def render_json(record: logging.LogRecord) -> str:
    payload: Dict[str, Any] = {
        "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
        **extra_fields(record),
    }
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return render_json(record)


class ConsoleFormatter(logging.Formatter):
    """Human-readable line with `extra=` fields appended as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = extra_fields(record)
        # The failing statement is already in the preceding INFO line
        fields.pop("statement", None)
        if not fields:
            return line
        pairs = " ".join(f"{key}={value}" for key, value in fields.items())
        head, sep, tail = line.partition("\n")
        return f"{head} | {pairs}{sep}{tail}"


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """
    Configure root logging for a CLI run.

    Parameters
    ----------
    level : str
        Root level name ("DEBUG" also shows per-window progress).
    json_logs : bool
        Emit JSON lines instead of the console format.
    """
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {
                    "()": ConsoleFormatter,
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
                "json": {"()": JsonFormatter},
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "formatter": "json" if json_logs else "console",
                    "level": level,
                }
            },
            "root": {"handlers": ["stderr"], "level": level},
            "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
        }
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)


__all__ = [
    "ConsoleFormatter",
    "JsonFormatter",
    "configure_logging",
    "extra_fields",
    "get_logger",
    "render_json",
]
