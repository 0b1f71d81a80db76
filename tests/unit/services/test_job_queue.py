from datetime import timedelta

import pytest
from sqlalchemy import select

from catalog_sync.core.enums import SyncStatus, SyncType
from catalog_sync.core.utils import utcnow
from catalog_sync.models.sync_job import SyncJob
from catalog_sync.services.job_queue import (
    STALLED_JOB_MESSAGE,
    cleanup_finished_jobs,
    enqueue_job,
    fetch_next_pending_job,
    has_open_job,
    mark_job_completed,
    mark_job_failed,
    mark_job_processing,
    peek_queue_count,
    recover_stalled_jobs,
)


@pytest.mark.asyncio
async def test_enqueue_creates_pending_job(db_session, tenant):
    job = await enqueue_job(db_session, tenant_id=tenant.id, sync_type=SyncType.STOCK, metadata={"batchSize": 10})
    await db_session.commit()

    assert job.id is not None
    assert job.status == SyncStatus.PENDING.value
    assert job.sync_type == "STOCK"
    assert job.job_metadata == {"batchSize": 10}
    assert await peek_queue_count(db_session) == 1


@pytest.mark.asyncio
async def test_fetch_next_pending_job_is_oldest_first(db_session, tenant):
    first = await enqueue_job(db_session, tenant_id=tenant.id, sync_type=SyncType.CONFIG)
    await enqueue_job(db_session, tenant_id=tenant.id, sync_type=SyncType.STOCK)
    await db_session.commit()

    job = await fetch_next_pending_job(db_session)

    assert job.id == first.id


@pytest.mark.asyncio
async def test_job_lifecycle_completed(db_session, tenant):
    job = await enqueue_job(db_session, tenant_id=tenant.id, sync_type=SyncType.FULL_PRODUCT)
    await mark_job_processing(db_session, job)

    assert job.status == SyncStatus.PROCESSING.value
    assert job.attempts == 1
    assert job.started_at is not None

    await mark_job_completed(
        db_session, job,
        {"items_processed": 5, "items_created": 3, "items_updated": 1, "items_failed": 1},
        {"success": True},
    )
    await db_session.commit()

    assert job.status == SyncStatus.COMPLETED.value
    assert (job.items_processed, job.items_created, job.items_updated, job.items_failed) == (5, 3, 1, 1)
    assert job.job_metadata["result"] == {"success": True}
    assert await fetch_next_pending_job(db_session) is None


@pytest.mark.asyncio
async def test_failed_job_message_is_truncated(db_session, tenant):
    job = await enqueue_job(db_session, tenant_id=tenant.id, sync_type=SyncType.STOCK)
    await mark_job_failed(db_session, job, "x" * 5000)

    assert job.status == SyncStatus.FAILED.value
    assert len(job.error_message) == 2000
    assert job.completed_at is not None


@pytest.mark.asyncio
async def test_has_open_job(db_session, tenant):
    job = await enqueue_job(db_session, tenant_id=tenant.id, sync_type=SyncType.STOCK)
    await db_session.commit()

    assert await has_open_job(db_session, tenant.id, SyncType.STOCK)
    assert not await has_open_job(db_session, tenant.id, SyncType.CONFIG)

    await mark_job_failed(db_session, job, "boom")
    await db_session.commit()

    assert not await has_open_job(db_session, tenant.id, SyncType.STOCK)


@pytest.mark.asyncio
async def test_recover_stalled_jobs_only_resets_old_ones(db_session, tenant):
    stalled = await enqueue_job(db_session, tenant_id=tenant.id, sync_type=SyncType.FULL_PRODUCT)
    recent = await enqueue_job(db_session, tenant_id=tenant.id, sync_type=SyncType.STOCK)
    await mark_job_processing(db_session, stalled)
    await mark_job_processing(db_session, recent)
    stalled.started_at = utcnow() - timedelta(hours=2)
    await db_session.commit()

    recovered = await recover_stalled_jobs(db_session, threshold_minutes=30)

    await db_session.refresh(stalled)
    await db_session.refresh(recent)
    assert recovered == 1
    assert stalled.status == SyncStatus.PENDING.value
    assert stalled.error_message == STALLED_JOB_MESSAGE
    assert recent.status == SyncStatus.PROCESSING.value


@pytest.mark.asyncio
async def test_cleanup_keeps_failed_jobs(db_session, tenant):
    done = await enqueue_job(db_session, tenant_id=tenant.id, sync_type=SyncType.STOCK)
    failed = await enqueue_job(db_session, tenant_id=tenant.id, sync_type=SyncType.STOCK)
    await mark_job_completed(db_session, done, {})
    await mark_job_failed(db_session, failed, "boom")
    done.completed_at = utcnow() - timedelta(days=40)
    failed.completed_at = utcnow() - timedelta(days=40)
    await db_session.commit()

    deleted = await cleanup_finished_jobs(db_session, days=30)

    remaining = (await db_session.execute(select(SyncJob.id))).scalars().all()
    assert deleted == 1
    assert remaining == [failed.id]
