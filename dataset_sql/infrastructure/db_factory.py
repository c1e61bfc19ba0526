"""
Destination database access for dataset exports.

Builds the psycopg async connection pool for a run's connection parameters
and wraps it in a Destination that executes statements and parameterized
queries. Each call borrows one pooled connection for its duration and gives
it back on success or failure; the pool commits on success and rolls back on
error when the connection is returned.

Pool opening is retried for transient connection failures using tenacity.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

import psycopg
from psycopg import sql
from psycopg.conninfo import make_conninfo
from psycopg_pool import AsyncConnectionPool, PoolTimeout
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from dataset_sql.domain.models import ConnectionConfig
from dataset_sql.errors import InsertError
from dataset_sql.utils.logging import get_logger

log = get_logger(__name__)

POOL_OPEN_TIMEOUT_SECONDS = 30.0


def build_conninfo(connection: ConnectionConfig) -> str:
    """Compose a libpq connection string from connection parameters."""
    params = {
        "host": connection.host,
        "port": connection.port,
        "user": connection.user,
        "password": connection.password,
        "dbname": connection.database,
    }
    return make_conninfo(**{key: value for key, value in params.items() if value is not None})


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, PoolTimeout)),
    reraise=True,
)
async def open_pool(
    connection: ConnectionConfig,
    timeout: float = POOL_OPEN_TIMEOUT_SECONDS,
) -> AsyncConnectionPool:
    """
    Open an async connection pool sized by `connection.pool_size`.

    Retries up to 3 times with exponential backoff for transient connection
    errors.

    Raises
    ------
    PoolTimeout
        If no connection could be established after all retry attempts.
    """
    pool = AsyncConnectionPool(
        conninfo=build_conninfo(connection),
        min_size=1,
        max_size=connection.pool_size,
        open=False,
    )
    try:
        await pool.open(wait=True, timeout=timeout)
    except BaseException:
        await pool.close()
        raise
    return pool


class Destination:
    """
    Statement execution against the destination database.

    Example
    -------
        destination = await Destination.connect(connection)
        try:
            await destination.execute('INSERT INTO "t" ("a") VALUES (1);')
        finally:
            await destination.close()
    """

    def __init__(self, pool: AsyncConnectionPool) -> None:
        self._pool = pool

    @classmethod
    async def connect(cls, connection: ConnectionConfig) -> "Destination":
        log.info(
            "Opening destination pool",
            extra={
                "host": connection.host,
                "port": connection.port,
                "pool_size": connection.pool_size,
            },
        )
        return cls(await open_pool(connection))

    async def execute(self, statement: str) -> int:
        """
        Execute one statement and return the affected row count.

        Raises
        ------
        InsertError
            If the database rejects the statement.
        """
        try:
            async with self._pool.connection() as conn:
                cursor = await conn.execute(statement)
                return cursor.rowcount
        except psycopg.Error as exc:
            raise InsertError(str(exc), statement=statement) from exc

    async def query(
        self,
        query: sql.Composable | str,
        params: Optional[Sequence[Any]] = None,
    ) -> List[tuple]:
        """Run a parameterized query and return all rows; psycopg errors propagate."""
        async with self._pool.connection() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()

    async def close(self) -> None:
        await self._pool.close()


__all__ = ["Destination", "build_conninfo", "open_pool"]
