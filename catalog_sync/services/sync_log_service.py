"""
Purpose: Append-only audit trail of per-entity sync outcomes.

Functionality: Rows are buffered in memory and written in batches (auto flush
every SYNC_LOG_BATCH_SIZE rows, explicit flush() at the end of a run). Also
offers recent-log queries and retention cleanup for the scheduler.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.config import get_settings
from catalog_sync.core.enums import SyncAction
from catalog_sync.core.exceptions import DatabaseError
from catalog_sync.core.utils import utcnow
from catalog_sync.models.sync_log import SyncLog

logger = logging.getLogger(__name__)


class SyncLogService:
    def __init__(self, db: AsyncSession, tenant_id: str, job_id: Optional[int] = None,
                 batch_size: Optional[int] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.job_id = job_id
        self.batch_size = batch_size or get_settings().SYNC_LOG_BATCH_SIZE
        self._buffer: List[Dict[str, Any]] = []

    @property
    def pending(self) -> int:
        return len(self._buffer)

    async def log(self, entity_type: str, entity_id: Any, action: SyncAction, success: bool = True,
                  details: Optional[Dict[str, Any]] = None) -> None:
        self._buffer.append({
            "tenant_id": self.tenant_id,
            "job_id": self.job_id,
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "action": SyncAction(action).value,
            "success": success,
            "details": details,
        })
        if len(self._buffer) >= self.batch_size:
            await self.flush()

    async def log_create(self, entity_type: str, entity_id: Any, details: Optional[Dict[str, Any]] = None) -> None:
        await self.log(entity_type, entity_id, SyncAction.CREATE, True, details)

    async def log_update(self, entity_type: str, entity_id: Any, details: Optional[Dict[str, Any]] = None) -> None:
        await self.log(entity_type, entity_id, SyncAction.UPDATE, True, details)

    async def log_skip(self, entity_type: str, entity_id: Any, reason: str) -> None:
        await self.log(entity_type, entity_id, SyncAction.SKIP, True, {"reason": reason})

    async def log_error(self, entity_type: str, entity_id: Any, error: str,
                        details: Optional[Dict[str, Any]] = None) -> None:
        await self.log(entity_type, entity_id, SyncAction.ERROR, False, {**(details or {}), "error": error})

    async def flush(self) -> int:
        """Write buffered rows. Returns how many were written."""
        if not self._buffer:
            return 0
        rows, self._buffer = self._buffer, []
        try:
            self.db.add_all([SyncLog(**row) for row in rows])
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to write {len(rows)} sync log rows: {str(e)}", exc_info=True)
            raise DatabaseError(f"Failed to write sync logs: {str(e)}") from e
        logger.debug(f"Flushed {len(rows)} sync log rows for tenant {self.tenant_id}")
        return len(rows)

    async def get_recent(self, limit: int = 100, entity_type: Optional[str] = None,
                         only_failures: bool = False) -> List[SyncLog]:
        stmt = select(SyncLog).where(SyncLog.tenant_id == self.tenant_id)
        if entity_type:
            stmt = stmt.where(SyncLog.entity_type == entity_type)
        if only_failures:
            stmt = stmt.where(SyncLog.success.is_(False))
        stmt = stmt.order_by(SyncLog.created_at.desc(), SyncLog.id.desc()).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def cleanup_older_than(self, days: int) -> int:
        cutoff = utcnow() - timedelta(days=days)
        result = await self.db.execute(
            delete(SyncLog).where(SyncLog.tenant_id == self.tenant_id, SyncLog.created_at < cutoff)
        )
        await self.db.commit()
        return result.rowcount or 0


async def cleanup_sync_logs_older_than(db: AsyncSession, days: int) -> int:
    """Delete sync log rows of every tenant older than `days`."""
    cutoff = utcnow() - timedelta(days=days)
    result = await db.execute(delete(SyncLog).where(SyncLog.created_at < cutoff))
    await db.commit()
    deleted = result.rowcount or 0
    if deleted:
        logger.info(f"Deleted {deleted} sync log rows older than {days} days")
    return deleted
