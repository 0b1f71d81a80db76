# catalog_sync/models/sync_log.py
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, JSON
from sqlalchemy.sql import func

from catalog_sync.database import Base


class SyncLog(Base):
    """
    Append-only audit trail of what a sync did to each entity.
    Rows are written in batches by SyncLogService.
    """
    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    job_id = Column(Integer, ForeignKey("sync_jobs.id", ondelete="SET NULL"), nullable=True, index=True)
    entity_type = Column(String(32), nullable=False, index=True)
    entity_id = Column(String(128), nullable=False)
    action = Column(String(16), nullable=False)       # create, update, skip, delete, error
    success = Column(Boolean, nullable=False, default=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self) -> str:
        return (f"<SyncLog(id={self.id}, entity={self.entity_type}:{self.entity_id}, "
                f"action={self.action}, success={self.success})>")
