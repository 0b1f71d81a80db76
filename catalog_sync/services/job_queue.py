"""Helpers for enqueuing, claiming and finishing sync jobs."""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.enums import SyncDirection, SyncStatus, SyncType
from catalog_sync.core.utils import utcnow
from catalog_sync.models.sync_job import SyncJob

logger = logging.getLogger(__name__)

STALLED_JOB_MESSAGE = "Job was stalled and reset"
ERROR_MESSAGE_LIMIT = 2000


async def enqueue_job(
    db: AsyncSession,
    *,
    tenant_id: str,
    sync_type: SyncType,
    direction: SyncDirection = SyncDirection.SOURCE_TO_DESTINATION,
    schedule_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> SyncJob:
    """Create a PENDING job."""
    job = SyncJob(
        tenant_id=tenant_id,
        schedule_id=schedule_id,
        sync_type=SyncType(sync_type).value,
        direction=SyncDirection(direction).value,
        status=SyncStatus.PENDING.value,
        job_metadata=metadata,
    )
    db.add(job)
    await db.flush()
    await db.refresh(job)
    return job


async def fetch_next_pending_job(db: AsyncSession) -> Optional[SyncJob]:
    """Fetch the next pending job (using SKIP LOCKED to avoid contention)."""
    stmt = (
        select(SyncJob)
        .where(SyncJob.status == SyncStatus.PENDING.value)
        .order_by(SyncJob.created_at.asc(), SyncJob.id.asc())
        .limit(1)
        .with_for_update(skip_locked=True)
    )
    result = await db.execute(stmt)
    return result.scalars().first()


async def mark_job_processing(db: AsyncSession, job: SyncJob) -> None:
    job.status = SyncStatus.PROCESSING.value
    job.started_at = utcnow()
    job.attempts = (job.attempts or 0) + 1
    await db.flush()


async def mark_job_completed(db: AsyncSession, job: SyncJob, counters: Dict[str, int],
                             result: Optional[Dict[str, Any]] = None) -> None:
    job.status = SyncStatus.COMPLETED.value
    job.error_message = None
    job.items_processed = counters.get("items_processed", 0)
    job.items_created = counters.get("items_created", 0)
    job.items_updated = counters.get("items_updated", 0)
    job.items_failed = counters.get("items_failed", 0)
    job.completed_at = utcnow()
    if result is not None:
        job.job_metadata = {**(job.job_metadata or {}), "result": result}
    await db.flush()


async def mark_job_failed(db: AsyncSession, job: SyncJob, error_message: str) -> None:
    job.status = SyncStatus.FAILED.value
    job.error_message = (error_message or "Unknown error")[:ERROR_MESSAGE_LIMIT]
    job.completed_at = utcnow()
    await db.flush()


async def has_open_job(db: AsyncSession, tenant_id: str, sync_type: SyncType,
                       schedule_id: Optional[int] = None) -> bool:
    """True when a PENDING or PROCESSING job exists for the tenant and type (and schedule)."""
    stmt = select(func.count(SyncJob.id)).where(
        SyncJob.tenant_id == tenant_id,
        SyncJob.sync_type == SyncType(sync_type).value,
        SyncJob.status.in_([SyncStatus.PENDING.value, SyncStatus.PROCESSING.value]),
    )
    if schedule_id is not None:
        stmt = stmt.where(SyncJob.schedule_id == schedule_id)
    result = await db.execute(stmt)
    return (result.scalar() or 0) > 0


async def peek_queue_count(db: AsyncSession) -> int:
    """Check how many jobs are still pending (without locking)."""
    stmt = select(func.count(SyncJob.id)).where(SyncJob.status == SyncStatus.PENDING.value)
    result = await db.execute(stmt)
    return result.scalar() or 0


async def recover_stalled_jobs(db: AsyncSession, threshold_minutes: int) -> int:
    """
    Put jobs stuck in PROCESSING for longer than the threshold back to PENDING.
    Run once when the worker pool starts, before any job is claimed.
    """
    cutoff = utcnow() - timedelta(minutes=threshold_minutes)
    stmt = (
        update(SyncJob)
        .where(
            SyncJob.status == SyncStatus.PROCESSING.value,
            SyncJob.started_at < cutoff,
        )
        .values(status=SyncStatus.PENDING.value, error_message=STALLED_JOB_MESSAGE)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()
    recovered = result.rowcount or 0
    if recovered:
        logger.warning(f"Reset {recovered} stalled jobs to PENDING")
    return recovered


async def cleanup_finished_jobs(db: AsyncSession, days: int) -> int:
    """Delete COMPLETED/CANCELLED jobs older than `days`. FAILED jobs are kept for inspection."""
    cutoff = utcnow() - timedelta(days=days)
    stmt = delete(SyncJob).where(
        SyncJob.status.in_([SyncStatus.COMPLETED.value, SyncStatus.CANCELLED.value]),
        SyncJob.completed_at < cutoff,
    )
    result = await db.execute(stmt)
    await db.commit()
    return result.rowcount or 0
