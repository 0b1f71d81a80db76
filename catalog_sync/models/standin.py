# catalog_sync/models/standin.py
"""
Tables behind the persistence-backed destination. They let a tenant run the
whole pipeline (and the test suite) without a reachable storefront.
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, UniqueConstraint, JSON
from sqlalchemy.sql import func

from catalog_sync.database import Base


class StandInProduct(Base):
    __tablename__ = "standin_products"

    id = Column(String(32), primary_key=True)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    product_number = Column(String(128), nullable=False)
    parent_id = Column(String(32), nullable=True)
    name = Column(String, nullable=True)
    stock = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'product_number', name='uq_standin_products_tenant_number'),
    )

    def __repr__(self) -> str:
        return f"<StandInProduct(id={self.id}, number='{self.product_number}', stock={self.stock})>"


class StandInEntity(Base):
    """Manufacturers, units, categories, property groups/options, media and media folders."""
    __tablename__ = "standin_entities"

    id = Column(String(32), primary_key=True)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    entity_type = Column(String(32), nullable=False, index=True)
    name = Column(String, nullable=True)
    parent_id = Column(String(32), nullable=True)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<StandInEntity(id={self.id}, type={self.entity_type}, name='{self.name}')>"
