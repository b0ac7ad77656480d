"""
Process-wide Postgres pool for connection, event and time-entry storage.

Connections come out configured with `dict_row`, autocommit and a UTC session,
so repositories can read timestamps as aware datetimes without conversion.
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from calsync.config import settings
from calsync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

POOL_CLOSE_TIMEOUT_SECONDS = 30.0


class DatabasePoolManager:
    """Owns the AsyncConnectionPool between lifespan startup and shutdown."""

    def __init__(self):
        self.pool: AsyncConnectionPool | None = None
        self._ready = False
        self._closed = False

    @property
    def is_ready(self) -> bool:
        return self._ready and not self._closed

    async def initialize(self) -> None:
        if self._ready:
            logger.warning("Database pool initialize called twice, ignoring")
            return
        if self._closed:
            raise RuntimeError("Database pool was closed and cannot be reopened")

        options = settings.get_db_pool_config()
        pool = AsyncConnectionPool(
            conninfo=settings.DATABASE_URL,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._prepare_connection,
            **options,
        )

        try:
            await pool.open(wait=True)
            self.pool = pool
            self._ready = True
            await self._probe()
        except Exception as e:
            logger.error(
                "Database pool startup failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            self._ready = False
            self.pool = None
            await pool.close()
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        logger.info(
            "Database pool ready",
            min_size=options["min_size"],
            max_size=options["max_size"],
            timeout=options["timeout"],
        )

    @staticmethod
    async def _prepare_connection(conn: psycopg.AsyncConnection) -> None:
        conn.row_factory = dict_row
        await conn.set_autocommit(True)
        await conn.execute(
            sql.SQL("SET application_name = {}").format(
                sql.Literal(f"calsync-{settings.environment}")
            )
        )
        await conn.execute("SET timezone = 'UTC'")
        await conn.execute("SET statement_timeout = '60s'")

    async def _probe(self) -> None:
        async with self.connection() as conn:
            cursor = await conn.execute("SELECT 1 AS ok")
            row = await cursor.fetchone()
        if not row or row["ok"] != 1:
            raise RuntimeError("Database probe returned an unexpected result")

    async def close(self) -> None:
        if not self._ready or self._closed:
            return

        self._ready = False
        self._closed = True
        try:
            await asyncio.wait_for(self.pool.close(), timeout=POOL_CLOSE_TIMEOUT_SECONDS)
            logger.info("Database pool closed")
        except TimeoutError:
            logger.warning(
                "Database pool did not close in time",
                timeout_seconds=POOL_CLOSE_TIMEOUT_SECONDS,
            )

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Borrow a pooled connection for the duration of the block."""
        if not self.is_ready:
            raise RuntimeError("Database pool not initialized. Call initialize() first.")

        async with self.pool.connection() as conn:
            yield conn

    async def health_check(self) -> dict[str, Any]:
        """Readiness snapshot: probe latency plus pool occupancy."""
        if not self.is_ready:
            return {"healthy": False, "error": "Pool not initialized", "service": "database_pool"}

        started = time.time()
        try:
            await self._probe()
        except Exception as e:
            logger.error("Database health probe failed", error=str(e))
            return {
                "healthy": False,
                "service": "database_pool",
                "error": str(e),
                "error_type": type(e).__name__,
            }

        stats = self.pool.get_stats()
        return {
            "healthy": True,
            "service": "database_pool",
            "connection_time_ms": round((time.time() - started) * 1000, 2),
            "pool_stats": {
                "pool_size": stats.get("pool_size", 0),
                "pool_available": stats.get("pool_available", 0),
                "requests_waiting": stats.get("requests_waiting", 0),
            },
        }


db_pool = DatabasePoolManager()


async def get_db_connection():
    """Pooled connection context manager."""
    return db_pool.connection()


async def db_health_check() -> dict[str, Any]:
    return await db_pool.health_check()
