"""
Async Redis client for per-connection sync leases and the readiness probe.

Lease calls never raise: an unreachable Redis is reported as None from
`acquire_lease` so callers can decide to run without the lease.
"""

import redis.asyncio as redis

from calsync.config import settings
from calsync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Deletes the key only while it still holds the caller's token
_RELEASE_LEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class FastRedisClient:
    def __init__(self, url: str | None = None, max_connections: int = 20):
        self.url = url or settings.REDIS_URL
        self.max_connections = max_connections
        self.client: redis.Redis | None = None

    async def initialize(self) -> None:
        if self.client is not None:
            return

        client = redis.Redis.from_url(
            self.url,
            max_connections=self.max_connections,
            socket_connect_timeout=5,
            socket_timeout=5,
            health_check_interval=30,
            decode_responses=True,
        )
        try:
            await client.ping()
        except redis.RedisError as e:
            await client.aclose()
            logger.error("Redis unreachable at startup", error=str(e), error_type=type(e).__name__)
            raise RuntimeError("Redis initialization failed") from e

        self.client = client
        logger.info("Redis connected", max_connections=self.max_connections)

    async def close(self) -> None:
        if self.client is None:
            return
        client, self.client = self.client, None
        await client.aclose()
        logger.info("Redis client closed")

    async def _connected(self) -> redis.Redis:
        if self.client is None:
            logger.warning("Redis used before startup, connecting lazily")
            await self.initialize()
        return self.client

    async def ping(self) -> bool:
        try:
            client = await self._connected()
            return bool(await client.ping())
        except (redis.RedisError, RuntimeError) as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def acquire_lease(self, key: str, token: str, ttl_s: int) -> bool | None:
        """
        SET key token NX EX ttl.

        Returns:
            True if acquired, False if another holder owns it,
            None if Redis could not be reached.
        """
        try:
            client = await self._connected()
            return bool(await client.set(key, token, nx=True, ex=ttl_s))
        except (redis.RedisError, RuntimeError) as e:
            logger.error("Lease acquire failed", key=key, error=str(e))
            return None

    async def release_lease(self, key: str, token: str) -> bool:
        """Compare-and-delete; False when the lease already expired or changed hands."""
        try:
            client = await self._connected()
            return bool(await client.eval(_RELEASE_LEASE_SCRIPT, 1, key, token))
        except (redis.RedisError, RuntimeError) as e:
            logger.error("Lease release failed", key=key, error=str(e))
            return False


fast_redis = FastRedisClient()
