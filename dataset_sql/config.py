"""
Configuration settings for dataset exports.

Uses Pydantic Settings to load environment variables for the collection API,
local storage, loading-state persistence and logging. Per-run input (which
datasets, which table, which destination) lives in `dataset_sql.domain.models`.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_STATE_KEY = "PROCESS-FN-LOADING-STATE"


class Settings(BaseSettings):
    # Collection API
    apify_token: Optional[str] = Field(None, alias="APIFY_TOKEN")
    apify_api_base_url: str = Field("https://api.apify.com", alias="APIFY_API_BASE_URL")
    http_timeout_seconds: float = Field(60.0, alias="HTTP_TIMEOUT_SECONDS")

    # Storage
    data_source: Literal["apify", "local"] = Field("apify", alias="DATA_SOURCE")
    storage_dir: Path = Field(Path("storage"), alias="STORAGE_DIR")
    state_key: str = Field(DEFAULT_STATE_KEY, alias="STATE_KEY")
    key_value_store_id: Optional[str] = Field(None, alias="APIFY_DEFAULT_KEY_VALUE_STORE_ID")
    state_flush_interval_seconds: float = Field(15.0, alias="STATE_FLUSH_INTERVAL_SECONDS")

    # Application
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Export defaults
    multirow: int = Field(10, alias="MULTIROW", gt=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def remote_state_store(self) -> bool:
        """Loading state goes to the platform key-value store, not a local file."""
        return self.data_source == "apify" and bool(self.key_value_store_id)

    @property
    def state_location(self) -> str:
        if self.remote_state_store:
            return f"kv-store:{self.key_value_store_id}/{self.state_key}"
        return str(self.storage_dir / "key_value_stores" / "default" / f"{self.state_key}.json")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["DEFAULT_STATE_KEY", "Settings", "get_settings"]
