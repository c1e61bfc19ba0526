from __future__ import annotations

import json

from typer.testing import CliRunner

from dataset_sql import main as cli
from dataset_sql.config import Settings
from dataset_sql.errors import FetchError
from dataset_sql.orchestrator import ExportSummary

runner = CliRunner()

VALID_INPUT = {
    "rows": [{"a": 1}],
    "connection": {"host": "db.example.com"},
    "table": "t",
}


def _write_input(tmp_path, payload) -> str:
    path = tmp_path / "INPUT.json"
    path.write_text(json.dumps(payload))
    return str(path)


def test_info_prints_effective_settings():
    result = runner.invoke(cli.app, ["info"])

    assert result.exit_code == 0
    assert "multirow=" in result.output


def test_missing_table_exits_with_configuration_error(tmp_path):
    input_path = _write_input(tmp_path, {"rows": [], "connection": {"host": "db"}})

    result = runner.invoke(cli.app, ["export", "--input", input_path])

    assert result.exit_code == 1
    assert "table" in result.output


def test_unsupported_proxy_url_exits_with_configuration_error(tmp_path):
    payload = {**VALID_INPUT, "proxyUrl": "socks5://proxy:1080"}

    result = runner.invoke(cli.app, ["export", "--input", _write_input(tmp_path, payload)])

    assert result.exit_code == 1
    assert "Export failed" in result.output
    assert "proxyUrl" in result.output


def test_fetch_error_exits_non_zero(tmp_path, monkeypatch):
    async def failing_export(export_input, settings=None):
        raise FetchError("Dataset ds-1 was not found", collection_id="ds-1")

    monkeypatch.setattr(cli, "run_export", failing_export)

    result = runner.invoke(cli.app, ["export", "--input", _write_input(tmp_path, VALID_INPUT)])

    assert result.exit_code == 1
    assert "Dataset ds-1 was not found" in result.output


def test_successful_export_persists_summary(tmp_path, monkeypatch):
    async def fake_export(export_input, settings=None):
        return ExportSummary(table=export_input.table, items_loaded=1, rows_inserted=1)

    monkeypatch.setattr(cli, "run_export", fake_export)
    results_dir = tmp_path / "results"

    result = runner.invoke(
        cli.app,
        [
            "export",
            "--input",
            _write_input(tmp_path, VALID_INPUT),
            "--results-dir",
            str(results_dir),
        ],
    )

    assert result.exit_code == 0
    assert json.loads((results_dir / "latest.json").read_text())["rows_inserted"] == 1


def test_info_shows_local_state_file_for_local_source(monkeypatch):
    monkeypatch.setattr(
        cli,
        "get_settings",
        lambda: Settings(_env_file=None, data_source="local", key_value_store_id="kv-1"),
    )

    result = runner.invoke(cli.app, ["info"])

    assert result.exit_code == 0
    assert "kv-store:" not in result.output
    assert "PROCESS-FN-LOADING-STATE.json" in result.output
