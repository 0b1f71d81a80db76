from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select

from catalog_sync.core.enums import SyncStatus, SyncType, TenantStatus
from catalog_sync.core.utils import ensure_aware, utcnow
from catalog_sync.models.sync_job import SyncJob, SyncSchedule
from catalog_sync.scheduler import SyncScheduler, cleanup_old_records, enqueue_due_schedules, next_run_time
from catalog_sync.services.job_queue import enqueue_job
from tests.fixtures.tenant_fixtures import make_tenant


async def add_schedule(db, tenant_id, sync_type=SyncType.STOCK, cron="*/15 * * * *", **kwargs):
    schedule = SyncSchedule(tenant_id=tenant_id, sync_type=sync_type.value, cron_schedule=cron, **kwargs)
    db.add(schedule)
    await db.commit()
    return schedule


async def jobs_for(db, schedule_id):
    result = await db.execute(select(SyncJob).where(SyncJob.schedule_id == schedule_id))
    return result.scalars().all()


def test_next_run_time():
    now = datetime(2024, 3, 1, 10, 7, tzinfo=timezone.utc)

    assert next_run_time("*/15 * * * *", now) == datetime(2024, 3, 1, 10, 15, tzinfo=timezone.utc)
    assert next_run_time("0 3 * * *", now) == datetime(2024, 3, 2, 3, 0, tzinfo=timezone.utc)


def test_next_run_time_rejects_invalid_expression():
    with pytest.raises(ValueError):
        next_run_time("every day")


"""
1. Enqueue Tests
"""

@pytest.mark.asyncio
async def test_due_schedule_gets_a_job(db_session, tenant):
    schedule = await add_schedule(db_session, tenant.id)
    now = utcnow()

    assert await enqueue_due_schedules(db_session, now) == 1

    jobs = await jobs_for(db_session, schedule.id)
    assert len(jobs) == 1
    assert jobs[0].sync_type == SyncType.STOCK.value
    assert jobs[0].status == SyncStatus.PENDING.value
    assert ensure_aware(schedule.next_run_at) > now
    assert schedule.last_run_at is not None


@pytest.mark.asyncio
async def test_schedule_is_not_due_before_next_run(db_session, tenant):
    await add_schedule(db_session, tenant.id)
    now = utcnow()
    await enqueue_due_schedules(db_session, now)

    assert await enqueue_due_schedules(db_session, now + timedelta(seconds=1)) == 0


@pytest.mark.asyncio
async def test_open_job_blocks_enqueue_but_advances_schedule(db_session, tenant):
    past = utcnow() - timedelta(minutes=5)
    schedule = await add_schedule(db_session, tenant.id, next_run_at=past)
    await enqueue_job(db_session, tenant_id=tenant.id, sync_type=SyncType.STOCK, schedule_id=schedule.id)
    await db_session.commit()

    assert await enqueue_due_schedules(db_session) == 0

    assert len(await jobs_for(db_session, schedule.id)) == 1
    assert ensure_aware(schedule.next_run_at) > past


@pytest.mark.asyncio
async def test_inactive_tenants_and_disabled_schedules_are_skipped(db_session, tenant):
    db_session.add(make_tenant("tenant-2", status=TenantStatus.SUSPENDED))
    await db_session.commit()
    suspended = await add_schedule(db_session, "tenant-2")
    disabled = await add_schedule(db_session, tenant.id, enabled=False)

    assert await enqueue_due_schedules(db_session) == 0
    assert await jobs_for(db_session, suspended.id) == []
    assert await jobs_for(db_session, disabled.id) == []


@pytest.mark.asyncio
async def test_invalid_cron_does_not_block_other_schedules(db_session, tenant):
    broken = await add_schedule(db_session, tenant.id, cron="not a cron")
    valid = await add_schedule(db_session, tenant.id, sync_type=SyncType.CONFIG, cron="0 * * * *")

    assert await enqueue_due_schedules(db_session) == 1
    assert await jobs_for(db_session, broken.id) == []
    assert broken.next_run_at is None
    assert len(await jobs_for(db_session, valid.id)) == 1


"""
2. Maintenance Tests
"""

@pytest.mark.asyncio
async def test_cleanup_removes_old_completed_jobs(db_session, tenant):
    job = await enqueue_job(db_session, tenant_id=tenant.id, sync_type=SyncType.STOCK)
    job.status = SyncStatus.COMPLETED.value
    job.created_at = utcnow() - timedelta(days=60)
    job.completed_at = utcnow() - timedelta(days=60)
    await db_session.commit()

    counts = await cleanup_old_records(db_session)

    assert counts["jobs"] == 1
    assert counts["logs"] == 0


def test_scheduler_registers_enqueue_and_cleanup():
    scheduler = SyncScheduler(session_factory=MagicMock()).create()

    assert {job.id for job in scheduler.get_jobs()} == {"enqueue_due_schedules", "cleanup_old_records"}
