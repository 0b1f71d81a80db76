"""Watermarks per (tenant, sync type)."""

import logging
from datetime import datetime
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.enums import SyncType
from catalog_sync.core.utils import ensure_aware, utcnow
from catalog_sync.models.sync_state import SyncState

logger = logging.getLogger(__name__)


def _type_value(sync_type: Union[SyncType, str]) -> str:
    return getattr(sync_type, "value", sync_type)


class SyncStateService:
    """Reads and advances the sync_state rows of one tenant."""

    def __init__(self, db: AsyncSession, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id

    async def get_state(self, sync_type: Union[SyncType, str]) -> Optional[SyncState]:
        stmt = select(SyncState).where(
            SyncState.tenant_id == self.tenant_id,
            SyncState.sync_type == _type_value(sync_type),
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_last_successful_sync(self, sync_type: Union[SyncType, str]) -> Optional[datetime]:
        state = await self.get_state(sync_type)
        return ensure_aware(state.last_successful_sync_at) if state else None

    async def _get_or_create(self, sync_type: Union[SyncType, str]) -> SyncState:
        state = await self.get_state(sync_type)
        if state is None:
            state = SyncState(tenant_id=self.tenant_id, sync_type=_type_value(sync_type))
            self.db.add(state)
        return state

    async def mark_attempt(self, sync_type: Union[SyncType, str], at: Optional[datetime] = None) -> None:
        state = await self._get_or_create(sync_type)
        state.last_sync_at = at or utcnow()
        await self.db.commit()

    async def mark_success(self, sync_type: Union[SyncType, str], at: Optional[datetime] = None) -> datetime:
        """Advance the watermark. Only called once a run has finished its item loop."""
        at = at or utcnow()
        state = await self._get_or_create(sync_type)
        state.last_sync_at = at
        state.last_successful_sync_at = at
        await self.db.commit()
        logger.info(f"Advanced {_type_value(sync_type)} watermark for tenant {self.tenant_id} to {at.isoformat()}")
        return at

    async def hours_since_success(self, sync_type: Union[SyncType, str]) -> Optional[float]:
        """Age of the last successful sync in hours, None if it never succeeded."""
        last = await self.get_last_successful_sync(sync_type)
        if last is None:
            return None
        return (utcnow() - last).total_seconds() / 3600
