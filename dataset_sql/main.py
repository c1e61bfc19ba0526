from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import typer

from dataset_sql.config import get_settings
from dataset_sql.domain.models import load_export_input
from dataset_sql.errors import ConfigurationError, FetchError
from dataset_sql.orchestrator import persist_summary, run_export
from dataset_sql.reporter import print_summary
from dataset_sql.utils.logging import configure_logging

app = typer.Typer(help="Export dataset items into a SQL table.")


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"source={settings.data_source} api={settings.apify_api_base_url} "
        f"storage={settings.storage_dir} | state={settings.state_location} "
        f"flush={settings.state_flush_interval_seconds}s | multirow={settings.multirow}"
    )


@app.command()
def export(
    input_path: Path = typer.Option(
        ...,
        "--input",
        "-i",
        exists=True,
        dir_okay=False,
        readable=True,
        help="Path to the INPUT JSON document (datasetId/rows, connection, table, ...).",
    ),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON."),
    persist: bool = typer.Option(
        True, "--persist/--no-persist", help="Save the summary under results/."
    ),
    results_dir: Path = typer.Option(Path("results"), "--results-dir", help="Summary directory."),
) -> None:
    """
    Run one export and print its summary.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=json_logs or settings.log_json)

    try:
        export_input = load_export_input(_read_input(input_path))
        summary = asyncio.run(run_export(export_input, settings=settings))
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        raise typer.Exit(code=130)
    except (ConfigurationError, FetchError) as exc:
        typer.echo(f"Export failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if persist:
        persist_summary(summary, results_dir)
    print_summary(summary.to_dict())


def _read_input(path: Path) -> dict:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"INPUT is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigurationError("INPUT must be a JSON object")
    return payload


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
