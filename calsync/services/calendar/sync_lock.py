"""
Per-connection sync lease on Redis.

A lease is a `SET NX EX` key holding a random token; release deletes it only
while it still holds that token. If Redis is unreachable the lease is not
enforced and the sync proceeds.
"""

import uuid
from contextlib import asynccontextmanager

from calsync.infrastructure.observability.logging import get_logger
from calsync.models.domain.calendar_domain import SyncResult
from calsync.services.calendar.errors import SyncInProgressError
from calsync.services.calendar.sync_engine import CalendarSyncEngine
from calsync.services.infrastructure.redis_client import FastRedisClient

logger = get_logger(__name__)

LOCK_KEY_PREFIX = "calendar_sync_lock"
DEFAULT_LOCK_TTL_SECONDS = 300


class SyncLockManager:
    def __init__(self, redis_client: FastRedisClient, ttl_seconds: int = DEFAULT_LOCK_TTL_SECONDS):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(connection_id: str) -> str:
        return f"{LOCK_KEY_PREFIX}:{connection_id}"

    @asynccontextmanager
    async def hold(self, connection_id: str):
        key = self._key(connection_id)
        token = uuid.uuid4().hex

        acquired = await self.redis.acquire_lease(key, token, self.ttl_seconds)
        if acquired is False:
            logger.info("Sync already in progress", connection_id=connection_id)
            raise SyncInProgressError(
                f"A sync is already running for connection {connection_id}",
                connection_id=connection_id,
            )
        if acquired is None:
            logger.warning("Sync lease unavailable, proceeding without lock", connection_id=connection_id)

        try:
            yield
        finally:
            if acquired:
                released = await self.redis.release_lease(key, token)
                if not released:
                    logger.warning("Sync lease expired before release", connection_id=connection_id)


async def sync_with_lock(
    engine: CalendarSyncEngine,
    locks: SyncLockManager,
    connection_id: str,
    tenant_id: str | None = None,
) -> SyncResult:
    """Run one engine sync while holding the connection's lease."""
    async with locks.hold(connection_id):
        return await engine.sync(connection_id, tenant_id=tenant_id)
