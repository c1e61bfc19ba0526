"""
Domain models for dataset exports.

Defines the per-run input accepted by the exporter (mirroring the platform's
camelCase INPUT document), the destination connection parameters, and the
small value objects passed between the planner, loader and writer.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from dataset_sql.errors import ConfigurationError

Record = Dict[str, Any]


class ConnectionConfig(BaseModel):
    """
    Destination database connection parameters.
    """

    host: str = Field(..., min_length=1, description="Destination host name or address.")
    port: int = Field(5432, description="Destination port.")
    user: Optional[str] = Field(None, description="Login role.")
    password: Optional[str] = Field(None, description="Login password.")
    database: Optional[str] = Field(None, description="Database name.")
    pool_size: int = Field(10, alias="poolSize", gt=0, description="Max pooled connections.")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def with_endpoint(self, host: str, port: int) -> "ConnectionConfig":
        """Return a copy pointing at another host/port (e.g. a local tunnel)."""
        return self.model_copy(update={"host": host, "port": port})


class ExportInput(BaseModel):
    """
    Run input for one export.

    Either one or more dataset ids (directly, or via a webhook `resource`
    payload) or an inline `rows` list must be given.
    """

    dataset_id: Optional[str] = Field(None, alias="datasetId")
    dataset_ids: List[str] = Field(default_factory=list, alias="datasetIds")
    resource: Optional[Dict[str, Any]] = Field(None, description="Run object from a webhook.")
    rows: Optional[List[Record]] = None
    connection: Optional[ConnectionConfig] = None
    table: Optional[str] = None
    static_param: Dict[str, Any] = Field(default_factory=dict, alias="staticParam")
    exists_attr: Optional[str] = Field(None, alias="existsAttr")
    row_group_size: Optional[int] = Field(None, alias="rowGroupSize", gt=0)
    batch_size: int = Field(50_000, alias="batchSize", gt=0)
    concurrency: int = Field(20, gt=0)
    offset: int = Field(0, ge=0)
    limit: Optional[int] = Field(None, ge=0)
    field_names: Optional[List[str]] = Field(None, alias="fields")
    proxy_url: Optional[str] = Field(None, alias="proxyUrl")
    debug_log: bool = Field(False, alias="debugLog")
    persist_loading_state: bool = Field(False, alias="persistLoadingState")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("proxy_url")
    @classmethod
    def check_proxy_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        parsed = urlsplit(value)
        # Reading .port raises ValueError when the port is not a number
        if parsed.scheme != "http" or not parsed.hostname or parsed.port == 0:
            raise ValueError(
                f"proxyUrl must look like http://[user:pass@]host[:port], got {value!r}"
            )
        return value

    @property
    def collection_ids(self) -> List[str]:
        """Dataset ids to export, in input order and without repeats."""
        ids: List[str] = []
        candidates = []
        if self.resource and self.resource.get("defaultDatasetId"):
            candidates.append(self.resource["defaultDatasetId"])
        if self.dataset_id:
            candidates.append(self.dataset_id)
        candidates.extend(self.dataset_ids)
        for candidate in candidates:
            if candidate not in ids:
                ids.append(candidate)
        return ids


def load_export_input(payload: Dict[str, Any]) -> ExportInput:
    """
    Parse and validate a raw input document.

    Raises
    ------
    ConfigurationError
        When the payload does not parse, or no datasource, destination
        connection or table is given.
    """
    try:
        export_input = ExportInput.model_validate(payload)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid INPUT: {exc}") from exc

    if not export_input.collection_ids and export_input.rows is None:
        raise ConfigurationError('Missing "datasetId" or "rows" in INPUT!')
    if export_input.connection is None:
        raise ConfigurationError(
            'Missing "connection" attribute in INPUT or it has wrong format'
        )
    if not export_input.table:
        raise ConfigurationError('Missing "table" attribute in INPUT')
    return export_input


@dataclass(frozen=True)
class Window:
    """One bounded offset/limit fetch unit against a single collection."""

    collection_id: str
    collection_index: int
    window_index: int
    offset: int
    limit: int


@dataclass(frozen=True)
class WindowContext:
    """Handed to a per-window processing step alongside the items."""

    collection_id: str
    offset: int


__all__ = [
    "ConnectionConfig",
    "ExportInput",
    "Record",
    "Window",
    "WindowContext",
    "load_export_input",
]
