"""
Orchestrator for running one export end to end.

Usage (example from CLI):
    from dataset_sql.domain.models import load_export_input
    from dataset_sql.orchestrator import run_export

    summary = asyncio.run(run_export(load_export_input(payload)))
    print(summary.to_dict())

Steps: optional proxy tunnel (its loopback endpoint replaces the configured
host/port) -> destination pool -> either a parallel streaming load of every
dataset into the TableWriter, or a direct write of the inline rows ->
summary. Summaries can be saved to `results/` (`latest.json` plus a
timestamped archive).
"""

from __future__ import annotations

import contextlib
import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

import httpx

from dataset_sql.config import Settings, get_settings
from dataset_sql.domain.models import ConnectionConfig, ExportInput
from dataset_sql.infrastructure.db_factory import Destination
from dataset_sql.infrastructure.tunnel import ProxyTunnel
from dataset_sql.loading.loader import LoadProgress, ParallelLoader
from dataset_sql.loading.state import ApifyKeyValueStateStore, FileStateStore, StateStore
from dataset_sql.sources.abstract import CollectionSource
from dataset_sql.sources.apify import ApifyDatasetSource, build_api_client
from dataset_sql.sources.local import LocalDatasetSource
from dataset_sql.statements.existence import ExistenceFilter
from dataset_sql.statements.insert import InsertGenerator
from dataset_sql.utils.logging import get_logger
from dataset_sql.utils.profiler import profile_block
from dataset_sql.writer import TableWriter

log = get_logger(__name__)


class DestinationLike(Protocol):
    async def execute(self, statement: str) -> int:
        ...

    async def query(self, query: Any, params: Any = None) -> list:
        ...

    async def close(self) -> None:
        ...


DestinationFactory = Callable[[ConnectionConfig], Awaitable[DestinationLike]]


@dataclass
class ExportSummary:
    """Counts and timings for one export."""

    table: str
    collections: List[str] = field(default_factory=list)
    windows_planned: int = 0
    windows_skipped: int = 0
    windows_completed: int = 0
    items_loaded: int = 0
    statements_executed: int = 0
    statements_failed: int = 0
    rows_inserted: int = 0
    rows_skipped: int = 0
    existence_checks: int = 0
    duration_seconds: float = 0.0
    peak_rss_bytes: Optional[int] = None
    rss_growth_bytes: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _build_source(settings: Settings, client: httpx.AsyncClient) -> CollectionSource:
    if settings.data_source == "local":
        return LocalDatasetSource(settings.storage_dir)
    return ApifyDatasetSource(client)


def _build_state_store(settings: Settings, client: httpx.AsyncClient) -> StateStore:
    if settings.remote_state_store:
        return ApifyKeyValueStateStore(client, settings.key_value_store_id, settings.state_key)
    return FileStateStore.in_storage(settings.storage_dir, settings.state_key)


async def run_export(
    export_input: ExportInput,
    settings: Optional[Settings] = None,
    source: Optional[CollectionSource] = None,
    state_store: Optional[StateStore] = None,
    destination_factory: DestinationFactory = Destination.connect,
) -> ExportSummary:
    """
    Export the configured datasets (or inline rows) into the target table.

    Parameters
    ----------
    export_input : ExportInput
        Validated run input (see `load_export_input`).
    settings : Settings | None
        Defaults to the cached environment settings.
    source, state_store : optional
        Override the collection source / loading-state store built from settings.
    destination_factory : callable
        Opens the destination for a connection config.

    Raises
    ------
    FetchError
        When a dataset cannot be read; the loading state keeps finished windows.
    """
    settings = settings or get_settings()
    row_group_size = export_input.row_group_size or settings.multirow
    connection = export_input.connection
    table = export_input.table
    summary = ExportSummary(table=table, collections=export_input.collection_ids)

    async with contextlib.AsyncExitStack() as stack:
        if export_input.proxy_url:
            tunnel = await stack.enter_async_context(
                ProxyTunnel(export_input.proxy_url, connection.host, connection.port)
            )
            connection = connection.with_endpoint(*tunnel.endpoint)
            log.info(
                "New proxied connection details",
                extra={"host": connection.host, "port": connection.port},
            )

        destination = await destination_factory(connection)
        stack.push_async_callback(destination.close)

        existence_filter = ExistenceFilter(destination) if export_input.exists_attr else None
        generator = InsertGenerator(
            table=table,
            static_params=export_input.static_param,
            exists_attr=export_input.exists_attr,
            existence_filter=existence_filter,
        )
        writer = TableWriter(destination, generator, row_group_size=row_group_size)

        with profile_block("export") as stats:
            if export_input.collection_ids:
                progress = await _load_collections(
                    export_input, settings, writer, stack, source, state_store
                )
                summary.windows_planned = progress.windows_planned
                summary.windows_skipped = progress.windows_skipped
                summary.windows_completed = progress.windows_completed
                summary.items_loaded = progress.total_loaded
            else:
                rows = export_input.rows or []
                await writer.write(rows)
                summary.items_loaded = len(rows)

    summary.statements_executed = writer.stats.statements_executed
    summary.statements_failed = writer.stats.statements_failed
    summary.rows_inserted = writer.stats.rows_inserted
    summary.rows_skipped = writer.stats.rows_skipped
    if existence_filter is not None:
        summary.existence_checks = existence_filter.checks
    summary.duration_seconds = round(stats.duration_seconds, 2)
    summary.peak_rss_bytes = stats.peak_rss_bytes
    summary.rss_growth_bytes = stats.rss_growth_bytes
    log.debug("Export profile", extra=stats.as_extra())
    log.info("[EXPORT COMPLETE]", extra=summary.to_dict())
    return summary


async def _load_collections(
    export_input: ExportInput,
    settings: Settings,
    writer: TableWriter,
    stack: contextlib.AsyncExitStack,
    source: Optional[CollectionSource],
    state_store: Optional[StateStore],
) -> LoadProgress:
    if source is None or (export_input.persist_loading_state and state_store is None):
        client = build_api_client(
            token=settings.apify_token,
            base_url=settings.apify_api_base_url,
            timeout_seconds=settings.http_timeout_seconds,
        )
        stack.push_async_callback(client.aclose)
        source = source or _build_source(settings, client)
        if export_input.persist_loading_state and state_store is None:
            state_store = _build_state_store(settings, client)

    loader = ParallelLoader(
        source,
        concurrency=export_input.concurrency,
        batch_size=export_input.batch_size,
        offset=export_input.offset,
        limit=export_input.limit,
        fields=export_input.field_names,
        debug_log=export_input.debug_log,
    )
    return await loader.process(
        export_input.collection_ids,
        writer,
        state_store=state_store if export_input.persist_loading_state else None,
        flush_interval_seconds=settings.state_flush_interval_seconds,
    )


def persist_summary(summary: ExportSummary, results_dir: Path | str = "results") -> Path:
    """Write the summary to `latest.json` and a timestamped archive; return the archive path."""
    results_dir = Path(results_dir)
    results_dir.mkdir(parents=True, exist_ok=True)
    payload = {"timestamp": datetime.now(timezone.utc).isoformat(), **summary.to_dict()}
    latest_path = results_dir / "latest.json"
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    archive_path = results_dir / f"export-{timestamp}.json"

    for path in (latest_path, archive_path):
        with path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, sort_keys=True)

    log.info("Summary persisted", extra={"latest": str(latest_path), "archive": str(archive_path)})
    return archive_path


__all__ = ["ExportSummary", "persist_summary", "run_export"]
