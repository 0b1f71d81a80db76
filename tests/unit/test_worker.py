import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from catalog_sync.core.enums import SyncStatus, SyncType, TenantStatus
from catalog_sync.core.exceptions import SyncError
from catalog_sync.core.utils import utcnow
from catalog_sync.models.sync_job import SyncJob
from catalog_sync.processors.base import SyncResult
from catalog_sync.processors.product_processor import SyncMode
from catalog_sync.services.job_queue import enqueue_job, fetch_next_pending_job, mark_job_processing
from catalog_sync.worker import WorkerPool, process_job
from tests.fixtures.tenant_fixtures import make_tenant
from tests.mocks.mock_source import make_source


async def queue(db, tenant_id, sync_type, **metadata):
    job = await enqueue_job(db, tenant_id=tenant_id, sync_type=sync_type, metadata=metadata or None)
    await db.commit()
    return job.id


async def reload(session_factory, job_id):
    async with session_factory() as session:
        return await session.get(SyncJob, job_id)


def make_pool(session_factory, runner=None):
    return WorkerPool(
        concurrency=1,
        poll_interval=0.01,
        session_factory=session_factory,
        job_runner=runner or process_job,
        stalled_minutes=30,
    )


"""
1. Job Outcome Tests
"""

@pytest.mark.asyncio
async def test_run_once_completes_job_with_counters(db_session, session_factory, tenant):
    job_id = await queue(db_session, tenant.id, SyncType.STOCK)
    runner = AsyncMock(return_value=SyncResult(items_processed=3, items_updated=2, items_failed=1))

    assert await make_pool(session_factory, runner).run_once() is True

    job = await reload(session_factory, job_id)
    assert job.status == SyncStatus.COMPLETED.value
    assert job.attempts == 1
    assert (job.items_processed, job.items_updated, job.items_failed) == (3, 2, 1)
    assert job.started_at is not None
    assert job.completed_at is not None
    runner.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_once_records_failure_and_continues(db_session, session_factory, tenant):
    job_id = await queue(db_session, tenant.id, SyncType.STOCK)
    runner = AsyncMock(side_effect=SyncError("Source unreachable"))

    assert await make_pool(session_factory, runner).run_once() is True

    job = await reload(session_factory, job_id)
    assert job.status == SyncStatus.FAILED.value
    assert job.error_message == "Source unreachable"


@pytest.mark.asyncio
async def test_execute_reraises_after_marking_failed(db_session, session_factory, tenant):
    job_id = await queue(db_session, tenant.id, SyncType.CONFIG)
    pool = make_pool(session_factory, AsyncMock(side_effect=SyncError("boom")))

    async with session_factory() as session:
        job = await fetch_next_pending_job(session)
        await mark_job_processing(session, job)
        await session.commit()
        with pytest.raises(SyncError):
            await pool.execute(session, job)

    assert (await reload(session_factory, job_id)).status == SyncStatus.FAILED.value


@pytest.mark.asyncio
async def test_run_once_with_empty_queue(session_factory, tenant):
    assert await make_pool(session_factory, AsyncMock()).run_once() is False


"""
2. Job Routing Tests
"""

@pytest.mark.asyncio
async def test_order_jobs_complete_as_noop(db_session, session_factory, tenant):
    job_id = await queue(db_session, tenant.id, SyncType.ORDER)

    await make_pool(session_factory).run_once()

    job = await reload(session_factory, job_id)
    assert job.status == SyncStatus.COMPLETED.value
    assert job.items_processed == 0
    assert "not implemented" in job.job_metadata["result"]["details"]["message"]


@pytest.mark.asyncio
async def test_inactive_tenant_fails_job(db_session, session_factory, tenant):
    db_session.add(make_tenant("tenant-2", status=TenantStatus.PAUSED))
    await db_session.commit()
    job_id = await queue(db_session, "tenant-2", SyncType.STOCK)

    await make_pool(session_factory).run_once()

    job = await reload(session_factory, job_id)
    assert job.status == SyncStatus.FAILED.value
    assert job.error_message == "Tenant tenant-2 is PAUSED"


@pytest.mark.asyncio
async def test_undecryptable_credentials_fail_job(db_session, session_factory, tenant):
    tenant.source_credentials = "not-an-encrypted-blob"
    await db_session.commit()
    job_id = await queue(db_session, tenant.id, SyncType.STOCK)

    await make_pool(session_factory).run_once()

    job = await reload(session_factory, job_id)
    assert job.status == SyncStatus.FAILED.value
    assert job.error_message


@pytest.mark.asyncio
async def test_config_job_runs_config_sync(db_session, session_factory, tenant, mocker):
    source = make_source()
    from_credentials = mocker.patch("catalog_sync.worker.SourceClient.from_credentials", return_value=source)
    job_id = await queue(db_session, tenant.id, SyncType.CONFIG)

    await make_pool(session_factory).run_once()

    job = await reload(session_factory, job_id)
    assert job.status == SyncStatus.COMPLETED.value
    assert job.items_created == 11
    from_credentials.assert_called_once_with(
        "https://erp.example.com", {"username": "api-user", "password": "api-pass"},
    )
    source.authenticate.assert_awaited_once()


@pytest.mark.asyncio
async def test_product_job_options_reach_the_processor(db_session, session_factory, tenant, mocker):
    mocker.patch("catalog_sync.worker.SourceClient.from_credentials", return_value=make_source())
    processor_class = mocker.patch("catalog_sync.worker.ProductSyncProcessor")
    processor_class.return_value.run = AsyncMock(return_value=SyncResult())
    job_id = await queue(db_session, tenant.id, SyncType.FULL_PRODUCT, skipExisting=True)

    await make_pool(session_factory).run_once()

    processor_class.return_value.run.assert_awaited_once()
    kwargs = processor_class.call_args.kwargs
    assert kwargs["mode"] == SyncMode.FULL
    assert kwargs["options"] == {"skipExisting": True}
    assert kwargs["job_id"] == job_id


"""
3. Pool Lifecycle Tests
"""

@pytest.mark.asyncio
async def test_recover_resets_stalled_jobs(db_session, session_factory, tenant):
    job_id = await queue(db_session, tenant.id, SyncType.STOCK)
    job = await db_session.get(SyncJob, job_id)
    job.status = SyncStatus.PROCESSING.value
    job.started_at = utcnow() - timedelta(hours=2)
    await db_session.commit()

    assert await make_pool(session_factory, AsyncMock()).recover() == 1
    assert (await reload(session_factory, job_id)).status == SyncStatus.PENDING.value


@pytest.mark.asyncio
async def test_pool_drains_queue_until_stopped(db_session, session_factory, tenant):
    job_ids = [await queue(db_session, tenant.id, SyncType.STOCK) for _ in range(3)]
    runner = AsyncMock(return_value=SyncResult())
    pool = make_pool(session_factory, runner)

    await pool.start()
    for _ in range(200):
        if runner.await_count == 3:
            break
        await asyncio.sleep(0.01)
    pool.stop()
    await pool.wait()

    assert not pool.running
    for job_id in job_ids:
        assert (await reload(session_factory, job_id)).status == SyncStatus.COMPLETED.value
