# catalog_sync/models/tenant_config.py
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint, JSON
from sqlalchemy.sql import func

from catalog_sync.database import Base
from catalog_sync.core.enums import ConfigValueType


class TenantConfig(Base):
    """Typed key/value settings per tenant (frontend URL, price ids, destination defaults...)."""
    __tablename__ = "tenant_configs"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    key = Column(String(128), nullable=False)
    value = Column(JSON, nullable=True)
    value_type = Column(String(16), nullable=False, default=ConfigValueType.STRING.value)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'key', name='uq_tenant_configs_tenant_key'),
    )

    def __repr__(self) -> str:
        return f"<TenantConfig(tenant={self.tenant_id}, key='{self.key}', type={self.value_type})>"
