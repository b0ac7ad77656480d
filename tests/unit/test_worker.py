import pytest

from calsync.jobs import worker
from calsync.jobs.calendar_sync_job import run_calendar_sync_pass
from calsync.models.domain.calendar_domain import CalendarProvider, ConnectionStatus
from calsync.services.calendar.errors import ProviderUnavailableError
from calsync.services.calendar.providers.base import EventPage


@pytest.mark.asyncio
async def test_run_worker_runs_job(monkeypatch):
    called = {"ok": False}

    async def dummy_job():
        called["ok"] = True

    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", dummy_job)

    await worker.run_worker("dummy")

    assert called["ok"] is True


@pytest.mark.asyncio
async def test_run_worker_unknown_job():
    with pytest.raises(ValueError):
        await worker.run_worker("missing")


def test_calendar_sync_is_default_job(monkeypatch):
    monkeypatch.setattr(worker.sys, "argv", ["calsync-worker"])
    monkeypatch.delenv("WORKER_JOB", raising=False)

    assert worker._resolve_job_name() == "calendar_sync"


@pytest.mark.asyncio
async def test_sync_pass_continues_past_failing_connection(
    sync_engine, lock_manager, connection_repo, fake_adapter
):
    failing = connection_repo.add(user_id="user-a")
    healthy = connection_repo.add(user_id="user-b", sync_cursor="C0")
    connection_repo.add(user_id="user-c", status=ConnectionStatus.REVOKED)
    connection_repo.add(user_id="user-d", provider=CalendarProvider.MICROSOFT)
    fake_adapter.script = [
        ProviderUnavailableError("Calendar API unavailable"),
        EventPage(events=[], next_sync_cursor="C1"),
    ]

    metrics = await run_calendar_sync_pass(sync_engine, lock_manager, connection_repo)

    assert metrics.connections_processed == 3
    assert metrics.failures == 1
    assert metrics.errors[0]["connection_id"] == failing.id
    assert metrics.synced == 1
    assert metrics.skipped == 1
    assert connection_repo.rows[healthy.id].sync_cursor == "C1"


@pytest.mark.asyncio
async def test_sync_pass_counts_connections_already_syncing(
    sync_engine, lock_manager, connection_repo, fake_adapter
):
    connection = connection_repo.add()

    async with lock_manager.hold(connection.id):
        metrics = await run_calendar_sync_pass(sync_engine, lock_manager, connection_repo)

    assert metrics.in_progress == 1
    assert fake_adapter.calls == []
