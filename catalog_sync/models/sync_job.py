# catalog_sync/models/sync_job.py
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Boolean, ForeignKey
from sqlalchemy.sql import func

from catalog_sync.database import Base
from catalog_sync.core.enums import SyncDirection, SyncStatus


class SyncSchedule(Base):
    """Recurring sync intent for a tenant, expressed as a cron expression."""

    __tablename__ = "sync_schedules"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    sync_type = Column(String(32), nullable=False)
    cron_schedule = Column(String(64), nullable=False)
    direction = Column(String(32), nullable=False, default=SyncDirection.SOURCE_TO_DESTINATION.value)
    priority = Column(Integer, nullable=False, default=0)
    enabled = Column(Boolean, nullable=False, default=True)
    last_run_at = Column(DateTime(timezone=True), nullable=True)
    next_run_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<SyncSchedule(id={self.id}, tenant={self.tenant_id}, type={self.sync_type}, cron='{self.cron_schedule}')>"


class SyncJob(Base):
    """
    One concrete execution of a sync. Workers claim PENDING rows, flip them to
    PROCESSING and finish with COMPLETED (plus counters) or FAILED (plus message).
    """

    __tablename__ = "sync_jobs"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    schedule_id = Column(Integer, ForeignKey("sync_schedules.id", ondelete="SET NULL"), nullable=True)
    sync_type = Column(String(32), nullable=False, index=True)
    direction = Column(String(32), nullable=False, default=SyncDirection.SOURCE_TO_DESTINATION.value)
    status = Column(String(16), nullable=False, default=SyncStatus.PENDING.value, index=True)
    error_message = Column(Text, nullable=True)
    job_metadata = Column("metadata", JSON, nullable=True)   # options in, result out

    attempts = Column(Integer, nullable=False, default=0)
    items_processed = Column(Integer, nullable=False, default=0)
    items_created = Column(Integer, nullable=False, default=0)
    items_updated = Column(Integer, nullable=False, default=0)
    items_failed = Column(Integer, nullable=False, default=0)

    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<SyncJob(id={self.id}, tenant={self.tenant_id}, type={self.sync_type}, status={self.status})>"
