import pytest

from calsync.services.calendar.errors import SyncInProgressError
from calsync.services.calendar.providers.base import EventPage
from calsync.services.calendar.sync_lock import sync_with_lock


@pytest.mark.asyncio
async def test_second_holder_is_rejected_while_lease_held(lock_manager, fake_redis):
    async with lock_manager.hold("conn-1"):
        assert "calendar_sync_lock:conn-1" in fake_redis.store
        with pytest.raises(SyncInProgressError) as exc:
            async with lock_manager.hold("conn-1"):
                pass

    assert exc.value.connection_id == "conn-1"
    assert fake_redis.store == {}


@pytest.mark.asyncio
async def test_leases_are_per_connection(lock_manager, fake_redis):
    async with lock_manager.hold("conn-1"):
        async with lock_manager.hold("conn-2"):
            assert len(fake_redis.store) == 2


@pytest.mark.asyncio
async def test_lease_released_when_body_raises(lock_manager, fake_redis):
    with pytest.raises(RuntimeError):
        async with lock_manager.hold("conn-1"):
            raise RuntimeError("sync blew up")

    assert fake_redis.store == {}


@pytest.mark.asyncio
async def test_redis_outage_does_not_block_sync(lock_manager, fake_redis):
    fake_redis.unavailable = True
    entered = False

    async with lock_manager.hold("conn-1"):
        entered = True

    assert entered is True


@pytest.mark.asyncio
async def test_sync_with_lock_runs_engine(sync_engine, lock_manager, connection_repo, fake_adapter, fake_redis):
    connection = connection_repo.add()
    fake_adapter.script = [EventPage(events=[], next_sync_cursor="C1")]

    result = await sync_with_lock(sync_engine, lock_manager, connection.id, tenant_id="tenant-1")

    assert result.status == "success"
    assert fake_redis.store == {}


@pytest.mark.asyncio
async def test_sync_with_lock_rejects_concurrent_run(sync_engine, lock_manager, connection_repo, fake_adapter):
    connection = connection_repo.add()

    async with lock_manager.hold(connection.id):
        with pytest.raises(SyncInProgressError):
            await sync_with_lock(sync_engine, lock_manager, connection.id)

    assert fake_adapter.calls == []
