"""
Worker process entrypoint (`calsync-worker [job]`).

The job defaults to WORKER_JOB, then to `calendar_sync`.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from calsync.config import settings
from calsync.infrastructure.observability.logging import get_logger, setup_logging
from calsync.jobs.calendar_sync_job import run_calendar_sync_job

logger = get_logger(__name__)

DEFAULT_JOB = "calendar_sync"

JOB_REGISTRY: dict[str, Callable[[], Awaitable[None]]] = {
    DEFAULT_JOB: run_calendar_sync_job,
}


def _resolve_job_name() -> str:
    requested = sys.argv[1] if len(sys.argv) > 1 else os.getenv("WORKER_JOB", DEFAULT_JOB)
    return requested.strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    name = (job_name or _resolve_job_name()).strip().lower()
    job = JOB_REGISTRY.get(name)
    if job is None:
        known = ", ".join(sorted(JOB_REGISTRY))
        raise ValueError(f"Unknown worker job '{name}' (known: {known})")

    logger.info("Worker job starting", job=name)
    await job()
    logger.info("Worker job finished", job=name)


def main() -> None:
    setup_logging(log_level=settings.LOG_LEVEL)
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
