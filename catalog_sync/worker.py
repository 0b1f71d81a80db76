"""
Purpose: Execute queued sync jobs.

Functionality: A pool of asyncio tasks, each looping claim -> run -> finish.
A job is claimed with SELECT ... FOR UPDATE SKIP LOCKED, flipped to
PROCESSING, and handed to process_job, which decrypts the tenant's
credentials, builds both clients and runs exactly one orchestrator for the
job's sync type. The job ends COMPLETED with its counters and result, or
FAILED with the error message; the error is then re-raised into the task
loop, which logs it and moves on to the next job.

Jobs left in PROCESSING by a crashed worker are reset to PENDING when the
pool starts.
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.core.config import get_settings
from catalog_sync.core.encryption import decrypt_json
from catalog_sync.core.enums import SyncType, TenantStatus
from catalog_sync.core.exceptions import SyncError
from catalog_sync.core.logging_config import get_job_logger
from catalog_sync.database import get_session_factory
from catalog_sync.integrations.factory import create_destination_client
from catalog_sync.models.sync_job import SyncJob
from catalog_sync.models.tenant import Tenant
from catalog_sync.processors.base import SyncResult
from catalog_sync.processors.config_processor import ConfigSyncProcessor
from catalog_sync.processors.product_processor import ProductSyncProcessor, SyncMode
from catalog_sync.processors.stock_processor import StockSyncProcessor
from catalog_sync.services.job_queue import (
    fetch_next_pending_job,
    mark_job_completed,
    mark_job_failed,
    mark_job_processing,
    recover_stalled_jobs,
)
from catalog_sync.services.source.client import SourceClient

logger = logging.getLogger(__name__)

JobRunner = Callable[[AsyncSession, SyncJob], Awaitable[SyncResult]]

NOT_IMPLEMENTED_TYPES = (SyncType.ORDER, SyncType.CUSTOMER)


async def process_job(db: AsyncSession, job: SyncJob) -> SyncResult:
    """
    Run the orchestrator for one job.

    Raises:
        SyncError: unknown tenant or inactive tenant
        CredentialDecryptionError: stored credentials cannot be decrypted
        Any phase-level error of the orchestrator
    """
    sync_type = SyncType(job.sync_type)
    if sync_type in NOT_IMPLEMENTED_TYPES:
        logger.info(f"{sync_type.value} sync is not implemented, completing job {job.id} as a no-op")
        return SyncResult(details={"message": f"{sync_type.value} sync is not implemented"})

    tenant = await db.get(Tenant, job.tenant_id)
    if tenant is None:
        raise SyncError(f"Tenant {job.tenant_id} does not exist")
    if tenant.status != TenantStatus.ACTIVE.value:
        raise SyncError(f"Tenant {tenant.id} is {tenant.status}")

    source_credentials = decrypt_json(tenant.source_credentials)
    destination_credentials = decrypt_json(tenant.destination_credentials)

    source = SourceClient.from_credentials(tenant.source_url, source_credentials)
    destination = create_destination_client(db, tenant.id, tenant.destination_url, destination_credentials)
    await source.authenticate()
    await destination.authenticate()

    args = (db, tenant.id, source, destination)
    kwargs = {"job_id": job.id, "options": dict(job.job_metadata or {})}

    if sync_type == SyncType.CONFIG:
        return await ConfigSyncProcessor(*args, **kwargs).run()
    if sync_type == SyncType.FULL_PRODUCT:
        return await ProductSyncProcessor(*args, mode=SyncMode.FULL, **kwargs).run()
    if sync_type == SyncType.PRODUCT_DELTA:
        return await ProductSyncProcessor(*args, mode=SyncMode.DELTA, **kwargs).run()
    if sync_type == SyncType.STOCK:
        return await StockSyncProcessor(*args, **kwargs).run()
    raise SyncError(f"Unsupported sync type {sync_type.value}")


class WorkerPool:

    def __init__(
        self,
        concurrency: Optional[int] = None,
        poll_interval: Optional[float] = None,
        session_factory: Optional[async_sessionmaker] = None,
        job_runner: JobRunner = process_job,
        stalled_minutes: Optional[int] = None,
    ):
        settings = get_settings()
        self.concurrency = concurrency or settings.WORKER_CONCURRENCY
        self.poll_interval = poll_interval if poll_interval is not None else settings.WORKER_POLL_INTERVAL
        self.stalled_minutes = stalled_minutes or settings.STALLED_JOB_MINUTES
        self.session_factory = session_factory or get_session_factory()
        self.job_runner = job_runner
        self._stopping = False
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks) and not self._stopping

    async def execute(self, session: AsyncSession, job: SyncJob) -> SyncResult:
        """Run one claimed job and record the outcome on it."""
        job_id = job.id
        job_log = get_job_logger(job_id, job.tenant_id, job.sync_type)
        job_log.info("Job started")
        try:
            result = await self.job_runner(session, job)
        except Exception as exc:
            await session.rollback()
            failed_job = await session.get(SyncJob, job_id)
            await mark_job_failed(session, failed_job, str(exc))
            await session.commit()
            job_log.error(f"Job failed: {str(exc)}", exc_info=True)
            raise

        job = await session.get(SyncJob, job_id)
        await mark_job_completed(session, job, result.counters(), result.to_dict())
        await session.commit()
        job_log.info(
            f"Job completed: {result.items_processed} processed, {result.items_created} created, "
            f"{result.items_updated} updated, {result.items_failed} failed"
        )
        return result

    async def run_once(self) -> bool:
        """Claim and run at most one job. Returns False when the queue was empty."""
        async with self.session_factory() as session:
            job = await fetch_next_pending_job(session)
            if job is None:
                await session.rollback()
                return False
            await mark_job_processing(session, job)
            await session.commit()
            job_id = job.id

            try:
                await self.execute(session, job)
            except Exception as exc:
                logger.error(f"Sync job {job_id} failed: {str(exc)}")
            return True

    async def _worker(self, number: int) -> None:
        logger.info(f"Worker {number} started")
        while not self._stopping:
            try:
                processed = await self.run_once()
            except Exception as exc:
                logger.error(f"Worker {number} could not claim or record a job: {str(exc)}", exc_info=True)
                processed = False
            if not processed:
                await asyncio.sleep(self.poll_interval)
        logger.info(f"Worker {number} stopped")

    async def recover(self) -> int:
        async with self.session_factory() as session:
            return await recover_stalled_jobs(session, self.stalled_minutes)

    async def start(self) -> None:
        recovered = await self.recover()
        if recovered:
            logger.warning(f"Recovered {recovered} stalled jobs before starting")
        self._stopping = False
        self._tasks = [asyncio.create_task(self._worker(i + 1)) for i in range(self.concurrency)]
        logger.info(f"Worker pool started with concurrency {self.concurrency}")

    def stop(self) -> None:
        """Ask every worker to exit after its current job."""
        self._stopping = True

    async def wait(self) -> None:
        await asyncio.gather(*self._tasks)
        self._tasks = []
        logger.info("Worker pool stopped")

    async def run_forever(self) -> None:
        await self.start()
        await self.wait()
