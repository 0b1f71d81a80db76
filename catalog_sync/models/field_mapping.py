# catalog_sync/models/field_mapping.py
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, JSON
from sqlalchemy.sql import func

from catalog_sync.database import Base
from catalog_sync.core.enums import FieldTransform


class FieldMappingRule(Base):
    """
    Tenant-defined copy rule applied on top of the standard product transform,
    e.g. source "variationSalesPrices.0.price" -> destination "customFields.basePrice"
    with transform "multiply" and params {"factor": 2}.
    """
    __tablename__ = "field_mapping_rules"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    entity_type = Column(String(32), nullable=False)      # sync type the rule applies to
    source_path = Column(String(255), nullable=False)
    dest_path = Column(String(255), nullable=False)
    transform_type = Column(String(16), nullable=False, default=FieldTransform.DIRECT.value)
    transform_params = Column(JSON, nullable=True)
    is_required = Column(Boolean, nullable=False, default=False)
    default_value = Column(JSON, nullable=True)
    position = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return (f"<FieldMappingRule(tenant={self.tenant_id}, {self.source_path} -> {self.dest_path}, "
                f"transform={self.transform_type})>")
