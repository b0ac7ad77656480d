"""
FastAPI application: calendar sync and time-entry suggestions.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from calsync.config import settings
from calsync.db.pool import db_pool
from calsync.dependencies import get_provider_registry
from calsync.infrastructure.observability.logging import get_logger, log_request, setup_logging
from calsync.routes import calendar, health, time_entries
from calsync.services.calendar.providers.registry import close_registry
from calsync.services.infrastructure.encryption_service import validate_encryption_config
from calsync.services.infrastructure.redis_client import fast_redis

setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


async def _shutdown(steps: list[tuple[str, object]]) -> list[str]:
    """Run close coroutines in order; collect failures instead of stopping."""
    errors = []
    for name, close in steps:
        try:
            await close()
        except Exception as e:
            logger.error("Shutdown step failed", step=name, error=str(e), error_type=type(e).__name__)
            errors.append(f"{name}: {e}")
    return errors


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Token encryption, Postgres and Redis must all be usable before serving."""
    logger.info("Calendar sync service starting", environment=settings.environment)

    if not validate_encryption_config():
        raise RuntimeError("ENCRYPTION_KEY missing or invalid")
    if not settings.GOOGLE_WEBHOOK_TOKEN:
        logger.warning(
            "GOOGLE_WEBHOOK_TOKEN not set, Google webhook channels cannot be verified",
            environment=settings.environment,
        )

    await db_pool.initialize()
    try:
        await fast_redis.initialize()
    except Exception:
        await db_pool.close()
        raise

    logger.info("Calendar sync service ready")
    yield

    errors = await _shutdown(
        [
            ("providers", lambda: close_registry(get_provider_registry())),
            ("redis", fast_redis.close),
            ("database", db_pool.close),
        ]
    )
    if errors:
        logger.warning("Shutdown finished with errors", errors=errors)
    else:
        logger.info("Calendar sync service stopped")


app = FastAPI(
    title="Calendar Sync",
    description="Calendar provider sync and meeting-to-time-entry suggestions",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(calendar.router)
app.include_router(time_entries.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.time() - start_time) * 1000, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
