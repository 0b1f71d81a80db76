"""
Turns sync schedules into queued jobs.

Every minute, each enabled schedule of an active tenant whose next_run_at
has passed gets a PENDING job (unless one of the same schedule is still
PENDING or PROCESSING) and its next_run_at is computed from the cron
expression. Old jobs and sync logs are cleaned up once a day.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.core.config import get_settings
from catalog_sync.core.enums import SyncDirection, SyncType, TenantStatus
from catalog_sync.core.utils import utcnow
from catalog_sync.database import get_session_factory
from catalog_sync.models.sync_job import SyncSchedule
from catalog_sync.models.tenant import Tenant
from catalog_sync.services.job_queue import cleanup_finished_jobs, enqueue_job, has_open_job
from catalog_sync.services.sync_log_service import cleanup_sync_logs_older_than

logger = logging.getLogger(__name__)


def next_run_time(cron_expression: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Next fire time of a crontab expression after `now` (UTC).

    Raises:
        ValueError: invalid cron expression
    """
    now = now or utcnow()
    trigger = CronTrigger.from_crontab(cron_expression, timezone=timezone.utc)
    return trigger.get_next_fire_time(None, now)


async def enqueue_due_schedules(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Enqueue a job for every due schedule. Returns the number of jobs created."""
    now = now or utcnow()
    stmt = (
        select(SyncSchedule)
        .join(Tenant, Tenant.id == SyncSchedule.tenant_id)
        .where(
            SyncSchedule.enabled.is_(True),
            Tenant.status == TenantStatus.ACTIVE.value,
            or_(SyncSchedule.next_run_at.is_(None), SyncSchedule.next_run_at <= now),
        )
        .order_by(SyncSchedule.priority.desc(), SyncSchedule.id.asc())
    )
    schedules = (await db.execute(stmt)).scalars().all()

    created = 0
    for schedule in schedules:
        try:
            upcoming = next_run_time(schedule.cron_schedule, now)
        except ValueError as e:
            logger.warning(f"Schedule {schedule.id} has an invalid cron expression '{schedule.cron_schedule}': {e}")
            continue

        if await has_open_job(db, schedule.tenant_id, SyncType(schedule.sync_type), schedule_id=schedule.id):
            logger.info(f"Schedule {schedule.id} still has an open job, not enqueuing another")
        else:
            await enqueue_job(
                db,
                tenant_id=schedule.tenant_id,
                sync_type=SyncType(schedule.sync_type),
                direction=SyncDirection(schedule.direction),
                schedule_id=schedule.id,
            )
            schedule.last_run_at = now
            created += 1
        schedule.next_run_at = upcoming

    await db.commit()
    if created:
        logger.info(f"Enqueued {created} scheduled sync jobs")
    return created


async def cleanup_old_records(db: AsyncSession) -> dict:
    settings = get_settings()
    jobs = await cleanup_finished_jobs(db, settings.JOB_RETENTION_DAYS)
    logs = await cleanup_sync_logs_older_than(db, settings.SYNC_LOG_RETENTION_DAYS)
    logger.info(f"Cleanup completed: {jobs} jobs, {logs} sync log rows deleted")
    return {"jobs": jobs, "logs": logs}


def job_listener(event):
    """Listen to job events for logging"""
    if event.exception:
        logger.error(f"Scheduler job {event.job_id} crashed: {event.exception}")
    else:
        logger.debug(f"Scheduler job {event.job_id} executed")


class SyncScheduler:

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self.session_factory = session_factory or get_session_factory()
        self.scheduler: Optional[AsyncIOScheduler] = None

    async def enqueue_task(self) -> int:
        async with self.session_factory() as session:
            return await enqueue_due_schedules(session)

    async def cleanup_task(self) -> dict:
        async with self.session_factory() as session:
            return await cleanup_old_records(session)

    def create(self) -> AsyncIOScheduler:
        scheduler = AsyncIOScheduler(timezone=timezone.utc)
        scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
        scheduler.add_job(
            self.enqueue_task,
            CronTrigger(minute="*"),
            id="enqueue_due_schedules",
            name="Enqueue Due Sync Schedules",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        scheduler.add_job(
            self.cleanup_task,
            CronTrigger(hour=3, minute=0),
            id="cleanup_old_records",
            name="Cleanup Old Jobs And Logs",
            replace_existing=True,
            max_instances=1,
        )
        return scheduler

    def start(self) -> None:
        if self.scheduler is None:
            self.scheduler = self.create()
        if not self.scheduler.running:
            self.scheduler.start()
            for job in self.scheduler.get_jobs():
                logger.info(f"  - {job.name}: {job.trigger}")
            logger.info("Scheduler started successfully")

    def stop(self) -> None:
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
