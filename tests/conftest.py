"""
Pytest configuration for dataset exports.

Provides fixtures for:
- In-memory destination and loading-state store (see `tests/fakes.py`)
- Settings pointing local storage at a temporary directory
- Database reachability for integration tests
"""

from __future__ import annotations

import os
from pathlib import Path

import psycopg
import pytest

from dataset_sql.config import Settings
from tests.fakes import FakeDestination, MemoryStateStore


@pytest.fixture
def fake_destination() -> FakeDestination:
    return FakeDestination()


@pytest.fixture
def memory_store() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """
    Settings pointing every store at a temporary directory.
    """
    return Settings(
        apify_token="test-token",
        data_source="local",
        storage_dir=tmp_path / "storage",
        state_flush_interval_seconds=60.0,
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn() -> str:
    """
    Database connection string for integration tests.
    """
    return (
        f"postgresql://{os.getenv('DB_USER', 'postgres')}:{os.getenv('DB_PASSWORD', 'postgres')}"
        f"@{os.getenv('DB_HOST', 'localhost')}:{os.getenv('DB_PORT', '5432')}"
        f"/{os.getenv('DB_NAME', 'postgres')}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            conn.execute("SELECT 1;")
        return True
    except psycopg.Error:
        return False
