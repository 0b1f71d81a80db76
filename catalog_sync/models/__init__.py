from .tenant import Tenant
from .sync_job import SyncSchedule, SyncJob
from .sync_state import SyncState
from .mappings import (
    CategoryMapping,
    ManufacturerMapping,
    UnitMapping,
    SalesPriceMapping,
    AttributeMapping,
    AttributeValueMapping,
    PropertyMapping,
    PropertySelectionMapping,
    PropertyValueMapping,
    ProductMapping,
    MediaMapping,
    MAPPING_MODELS,
    CHILD_KINDS,
)
from .source_cache import (
    CachedCategory,
    CachedAttribute,
    CachedSalesPrice,
    CachedManufacturer,
    CachedUnit,
    CachedProperty,
)
from .sync_log import SyncLog
from .tenant_config import TenantConfig
from .field_mapping import FieldMappingRule
from .standin import StandInProduct, StandInEntity

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'Tenant',
    'SyncSchedule',
    'SyncJob',
    'SyncState',
    'CategoryMapping',
    'ManufacturerMapping',
    'UnitMapping',
    'SalesPriceMapping',
    'AttributeMapping',
    'AttributeValueMapping',
    'PropertyMapping',
    'PropertySelectionMapping',
    'PropertyValueMapping',
    'ProductMapping',
    'MediaMapping',
    'MAPPING_MODELS',
    'CHILD_KINDS',
    'CachedCategory',
    'CachedAttribute',
    'CachedSalesPrice',
    'CachedManufacturer',
    'CachedUnit',
    'CachedProperty',
    'SyncLog',
    'TenantConfig',
    'FieldMappingRule',
    'StandInProduct',
    'StandInEntity',
]
