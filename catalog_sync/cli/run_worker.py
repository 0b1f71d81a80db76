# catalog_sync/cli/run_worker.py
import asyncio
import logging
import signal

import click

from catalog_sync.core.enums import SyncType
from catalog_sync.core.logging_config import configure_logging
from catalog_sync.database import get_session
from catalog_sync.scheduler import SyncScheduler
from catalog_sync.services.job_queue import enqueue_job
from catalog_sync.worker import WorkerPool

logger = logging.getLogger(__name__)


@click.group()
@click.option('--log-level', default=None, help='Overrides LOG_LEVEL')
def cli(log_level):
    """Catalog sync worker commands"""
    configure_logging(log_level)


@cli.command()
@click.option('--concurrency', type=int, default=None, help='Parallel jobs (default: WORKER_CONCURRENCY)')
@click.option('--no-scheduler', is_flag=True, help='Only process jobs, do not enqueue scheduled ones')
def worker(concurrency, no_scheduler):
    """Run the worker pool until SIGINT/SIGTERM"""

    async def _run():
        pool = WorkerPool(concurrency=concurrency)
        scheduler = None if no_scheduler else SyncScheduler()

        def _shutdown():
            logger.info("Shutdown requested - workers exit after their current job")
            pool.stop()
            if scheduler:
                scheduler.stop()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _shutdown)

        if scheduler:
            scheduler.start()
        await pool.run_forever()

    asyncio.run(_run())


@cli.command()
@click.argument('tenant_id')
@click.argument('sync_type', type=click.Choice([t.value for t in SyncType]))
@click.option('--skip-existing', is_flag=True, help='Product syncs: leave existing products untouched')
def enqueue(tenant_id, sync_type, skip_existing):
    """Queue a one-off sync job for a tenant"""

    async def _enqueue():
        async with get_session() as session:
            metadata = {"skipExisting": True} if skip_existing else None
            job = await enqueue_job(session, tenant_id=tenant_id, sync_type=SyncType(sync_type), metadata=metadata)
            await session.commit()
            return job.id

    job_id = asyncio.run(_enqueue())
    click.echo(f"Queued {sync_type} job {job_id} for tenant {tenant_id}")


if __name__ == "__main__":
    cli()
