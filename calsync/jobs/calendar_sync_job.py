"""
One-shot batch sync over every ACTIVE calendar connection.

Each connection is synced under its lease; a failing connection is logged
and counted, and the pass continues with the next one.
"""

import time
from datetime import UTC, datetime

from calsync.db.pool import db_pool
from calsync.dependencies import (
    get_connection_repository,
    get_provider_registry,
    get_sync_engine,
    get_sync_lock_manager,
)
from calsync.infrastructure.observability.logging import get_logger
from calsync.repositories.connection_repository import ConnectionRepository
from calsync.services.calendar.errors import SyncInProgressError
from calsync.services.calendar.providers.registry import close_registry
from calsync.services.calendar.sync_engine import CalendarSyncEngine
from calsync.services.calendar.sync_lock import SyncLockManager, sync_with_lock
from calsync.services.infrastructure.redis_client import fast_redis

logger = get_logger(__name__)


class CalendarSyncJobMetrics:
    """Counters for one batch sync pass."""

    def __init__(self):
        self.start_time = datetime.now(UTC)
        self.connections_processed = 0
        self.synced = 0
        self.skipped = 0
        self.in_progress = 0
        self.failures = 0
        self.events_upserted = 0
        self.events_deleted = 0
        self.errors: list[dict] = []

    def record_failure(self, connection_id: str, error: Exception) -> None:
        self.connections_processed += 1
        self.failures += 1
        self.errors.append(
            {
                "connection_id": connection_id,
                "error": str(error),
                "error_type": type(error).__name__,
            }
        )

    def summary(self) -> dict:
        return {
            "connections_processed": self.connections_processed,
            "synced": self.synced,
            "skipped": self.skipped,
            "in_progress": self.in_progress,
            "failures": self.failures,
            "events_upserted": self.events_upserted,
            "events_deleted": self.events_deleted,
            "duration_seconds": round((datetime.now(UTC) - self.start_time).total_seconds(), 2),
        }


async def run_calendar_sync_pass(
    engine: CalendarSyncEngine,
    locks: SyncLockManager,
    connections: ConnectionRepository,
) -> CalendarSyncJobMetrics:
    metrics = CalendarSyncJobMetrics()
    connection_ids = await connections.list_active_ids()
    logger.info("Calendar sync pass started", connection_count=len(connection_ids))

    for connection_id in connection_ids:
        started = time.time()
        try:
            result = await sync_with_lock(engine, locks, connection_id)
        except SyncInProgressError:
            metrics.connections_processed += 1
            metrics.in_progress += 1
            continue
        except Exception as e:
            logger.warning(
                "Calendar sync failed for connection",
                connection_id=connection_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            metrics.record_failure(connection_id, e)
            continue

        metrics.connections_processed += 1
        if result.status == "skipped":
            metrics.skipped += 1
        else:
            metrics.synced += 1
            metrics.events_upserted += result.upserted
            metrics.events_deleted += result.deleted

        logger.debug(
            "Connection synced",
            connection_id=connection_id,
            status=result.status,
            duration_ms=round((time.time() - started) * 1000, 2),
        )

    logger.info("Calendar sync pass completed", **metrics.summary())
    return metrics


async def run_calendar_sync_job() -> None:
    """Worker entrypoint: bring up storage, run one pass, tear down."""
    await db_pool.initialize()
    await fast_redis.initialize()
    try:
        await run_calendar_sync_pass(
            get_sync_engine(), get_sync_lock_manager(), get_connection_repository()
        )
    finally:
        await close_registry(get_provider_registry())
        await fast_redis.close()
        await db_pool.close()
