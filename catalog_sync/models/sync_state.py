# catalog_sync/models/sync_state.py
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func

from catalog_sync.database import Base


class SyncState(Base):
    """
    Watermark per (tenant, sync type). Delta fetches are bounded by
    last_successful_sync_at; last_sync_at records the latest attempt.
    """
    __tablename__ = "sync_state"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    sync_type = Column(String(32), nullable=False)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    last_successful_sync_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'sync_type', name='uq_sync_state_tenant_type'),
    )

    def __repr__(self) -> str:
        return (f"<SyncState(tenant={self.tenant_id}, type={self.sync_type}, "
                f"last_success={self.last_successful_sync_at})>")
