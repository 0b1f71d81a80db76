# catalog_sync/models/mappings.py
"""
Source id -> destination id correspondences, one table per entity kind.

Every table shares the same shape (MappingMixin). Two-level kinds (attribute
values, property selections, free-text property values) also record the
parent they hang under (ChildMappingMixin) because a destination option can
only exist inside a destination group.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint, Text
from sqlalchemy.orm import declared_attr
from sqlalchemy.sql import func

from catalog_sync.database import Base
from catalog_sync.core.enums import MappingKind, MappingStatus, MappingType


class MappingMixin:
    id = Column(Integer, primary_key=True)

    @declared_attr
    def tenant_id(cls):
        return Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)

    source_id = Column(String(128), nullable=False)
    dest_id = Column(String(64), nullable=False)
    mapping_type = Column(String(16), nullable=False, default=MappingType.AUTO.value)
    status = Column(String(16), nullable=False, default=MappingStatus.ACTIVE.value)
    last_sync_action = Column(String(16), nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    last_seen_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @declared_attr
    def __table_args__(cls):
        return (
            UniqueConstraint('tenant_id', 'source_id', name=f'uq_{cls.__tablename__}_tenant_source'),
        )

    def __repr__(self) -> str:
        return (f"<{type(self).__name__}(tenant={self.tenant_id}, source={self.source_id}, "
                f"dest={self.dest_id}, type={self.mapping_type}, status={self.status})>")


class ChildMappingMixin(MappingMixin):
    parent_source_id = Column(String(128), nullable=False)
    parent_dest_id = Column(String(64), nullable=False)


class CategoryMapping(MappingMixin, Base):
    __tablename__ = "category_mappings"


class ManufacturerMapping(MappingMixin, Base):
    __tablename__ = "manufacturer_mappings"


class UnitMapping(MappingMixin, Base):
    __tablename__ = "unit_mappings"


class SalesPriceMapping(MappingMixin, Base):
    __tablename__ = "sales_price_mappings"


class AttributeMapping(MappingMixin, Base):
    """Source attribute -> destination property group."""
    __tablename__ = "attribute_mappings"


class AttributeValueMapping(ChildMappingMixin, Base):
    """Source attribute value -> destination property option (parent: attribute)."""
    __tablename__ = "attribute_value_mappings"


class PropertyMapping(MappingMixin, Base):
    """Source property -> destination property group."""
    __tablename__ = "property_mappings"

    source_group_id = Column(String(128), nullable=True)   # source-side property group, informational


class PropertySelectionMapping(ChildMappingMixin, Base):
    """Source property selection -> destination property option (parent: property)."""
    __tablename__ = "property_selection_mappings"


class PropertyValueMapping(ChildMappingMixin, Base):
    """
    Free-text property value -> destination property option. source_id is the
    md5 of "<propertyId>:<value>" so equal values share one option.
    """
    __tablename__ = "property_value_mappings"

    original_value = Column(Text, nullable=True)


class ProductMapping(MappingMixin, Base):
    """Source variation -> destination product."""
    __tablename__ = "product_mappings"

    source_item_id = Column(String(128), nullable=True)
    dest_product_number = Column(String(128), nullable=True)


class MediaMapping(Base):
    """Source image URL -> destination media, keyed by md5 of the URL."""
    __tablename__ = "media_mappings"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    url_hash = Column(String(32), nullable=False)
    source_url = Column(Text, nullable=False)
    source_type = Column(String(32), nullable=False)
    source_entity_id = Column(String(128), nullable=True)
    dest_id = Column(String(64), nullable=False)
    dest_folder_id = Column(String(64), nullable=True)
    file_name = Column(String(255), nullable=True)
    mime_type = Column(String(64), nullable=True)
    file_size = Column(Integer, nullable=True)
    mapping_type = Column(String(16), nullable=False, default=MappingType.AUTO.value)
    status = Column(String(16), nullable=False, default=MappingStatus.ACTIVE.value)
    last_sync_action = Column(String(16), nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'url_hash', name='uq_media_mappings_tenant_hash'),
    )

    def __repr__(self) -> str:
        return f"<MediaMapping(tenant={self.tenant_id}, hash={self.url_hash}, dest={self.dest_id})>"


MAPPING_MODELS = {
    MappingKind.CATEGORY: CategoryMapping,
    MappingKind.MANUFACTURER: ManufacturerMapping,
    MappingKind.UNIT: UnitMapping,
    MappingKind.SALES_PRICE: SalesPriceMapping,
    MappingKind.ATTRIBUTE: AttributeMapping,
    MappingKind.ATTRIBUTE_VALUE: AttributeValueMapping,
    MappingKind.PROPERTY: PropertyMapping,
    MappingKind.PROPERTY_SELECTION: PropertySelectionMapping,
    MappingKind.PROPERTY_VALUE: PropertyValueMapping,
    MappingKind.PRODUCT: ProductMapping,
}

CHILD_KINDS = {
    MappingKind.ATTRIBUTE_VALUE,
    MappingKind.PROPERTY_SELECTION,
    MappingKind.PROPERTY_VALUE,
}
