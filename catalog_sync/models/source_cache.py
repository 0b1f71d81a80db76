# catalog_sync/models/source_cache.py
"""
Local replicas of source ERP configuration data.

Refreshed by the config sync and read by the resolvers and the product
transformer, so product syncs never have to call the source for them.
`names` is always a {lang: name} dict rebuilt from the source detail records.
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, UniqueConstraint, JSON
from sqlalchemy.orm import declared_attr

from catalog_sync.database import Base


class CachedSourceMixin:
    id = Column(Integer, primary_key=True)

    @declared_attr
    def tenant_id(cls):
        return Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)

    source_id = Column(Integer, nullable=False)
    names = Column(JSON, nullable=True)
    raw_data = Column(JSON, nullable=True)
    synced_at = Column(DateTime(timezone=True), nullable=True)

    @declared_attr
    def __table_args__(cls):
        return (
            UniqueConstraint('tenant_id', 'source_id', name=f'uq_{cls.__tablename__}_tenant_source'),
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(tenant={self.tenant_id}, source={self.source_id})>"


class CachedCategory(CachedSourceMixin, Base):
    __tablename__ = "source_categories"

    parent_id = Column(Integer, nullable=True)
    level = Column(Integer, nullable=False, default=0)
    type = Column(String(32), nullable=True)
    linklist = Column(Boolean, nullable=False, default=True)
    sitemap = Column(Boolean, nullable=False, default=True)
    has_children = Column(Boolean, nullable=False, default=False)


class CachedAttribute(CachedSourceMixin, Base):
    __tablename__ = "source_attributes"

    backend_name = Column(String(255), nullable=True)
    position = Column(Integer, nullable=False, default=0)
    display_type = Column(String(32), nullable=True)
    # [{"id", "backendName", "position", "image", "names": {lang: name}}]
    values = Column(JSON, nullable=True)


class CachedSalesPrice(CachedSourceMixin, Base):
    __tablename__ = "source_sales_prices"

    type = Column(String(32), nullable=True)          # "default", "rrp", ...
    position = Column(Integer, nullable=False, default=0)
    currency = Column(String(8), nullable=True)


class CachedManufacturer(CachedSourceMixin, Base):
    __tablename__ = "source_manufacturers"

    name = Column(String(255), nullable=False)
    external_name = Column(String(255), nullable=True)
    logo = Column(String, nullable=True)
    url = Column(String, nullable=True)
    position = Column(Integer, nullable=False, default=0)


class CachedUnit(CachedSourceMixin, Base):
    __tablename__ = "source_units"

    unit_of_measurement = Column(String(32), nullable=True)
    position = Column(Integer, nullable=False, default=0)


class CachedProperty(CachedSourceMixin, Base):
    __tablename__ = "source_properties"

    cast = Column(String(32), nullable=True)          # shortText, selection, multiSelection, int, ...
    type_identifier = Column(String(32), nullable=True)
    position = Column(Integer, nullable=False, default=0)
    property_group_id = Column(Integer, nullable=True)
    # [{"id", "position", "names": {lang: value}}]
    selections = Column(JSON, nullable=True)
