"""
Query helpers shared by the repositories.

Every psycopg failure surfaces as DatabaseError; connection-level failures are
flagged recoverable so `with_db_retry` can back off and try again.
"""

import asyncio
import functools
from typing import Any

import psycopg

from calsync.db.pool import get_db_connection
from calsync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """Storage failure raised by the query helpers."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


def _as_database_error(e: psycopg.Error, operation: str, query: str) -> DatabaseError:
    recoverable = isinstance(e, psycopg.OperationalError)
    logger.error(
        "Database query failed",
        operation=operation,
        query=" ".join(query.split())[:100],
        recoverable=recoverable,
        error=str(e),
        error_type=type(e).__name__,
    )
    return DatabaseError(f"Query failed: {e}", operation=operation, recoverable=recoverable)


async def _run(query: str, params: tuple, connection, fetch: str):
    async def on(conn: psycopg.AsyncConnection):
        cursor = await conn.execute(query, params)
        if fetch == "one":
            return await cursor.fetchone()
        if fetch == "all":
            return await cursor.fetchall()
        return cursor.rowcount

    if connection is not None:
        return await on(connection)
    async with await get_db_connection() as conn:
        return await on(conn)


async def fetch_one(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> dict[str, Any] | None:
    """First row as a dict, or None."""
    try:
        return await _run(query, params, connection, "one")
    except psycopg.Error as e:
        raise _as_database_error(e, "fetch_one", query) from e


async def fetch_all(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> list[dict[str, Any]]:
    try:
        return await _run(query, params, connection, "all")
    except psycopg.Error as e:
        raise _as_database_error(e, "fetch_all", query) from e


async def fetch_val(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> Any:
    """First column of the first row (e.g. a RETURNING id)."""
    row = await fetch_one(query, params, connection=connection)
    return next(iter(row.values())) if row else None


async def execute_query(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> int:
    """Run a write and return the affected row count."""
    try:
        return await _run(query, params, connection, "rowcount")
    except psycopg.Error as e:
        raise _as_database_error(e, "execute", query) from e


def with_db_retry(max_retries: int = 3, base_delay: float = 0.1):
    """
    Retry a repository coroutine on recoverable DatabaseError.

    Backoff doubles per attempt starting at `base_delay`. Non-recoverable
    errors and the final failed attempt propagate unchanged.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except DatabaseError as e:
                    if not e.recoverable or attempt >= max_retries:
                        raise
                    delay = base_delay * (2**attempt)
                    attempt += 1
                    logger.warning(
                        "Retrying database operation",
                        operation=func.__name__,
                        attempt=attempt,
                        max_retries=max_retries,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
