"""
Shared enums and constants used across the application.
"""

from enum import Enum


class TenantStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    SUSPENDED = "SUSPENDED"


class SyncType(str, Enum):
    """Kinds of sync a job can request"""
    CONFIG = "CONFIG"
    FULL_PRODUCT = "FULL_PRODUCT"
    PRODUCT_DELTA = "PRODUCT_DELTA"
    STOCK = "STOCK"
    ORDER = "ORDER"          # accepted, not implemented
    CUSTOMER = "CUSTOMER"    # accepted, not implemented


class SyncDirection(str, Enum):
    SOURCE_TO_DESTINATION = "SOURCE_TO_DESTINATION"
    DESTINATION_TO_SOURCE = "DESTINATION_TO_SOURCE"
    BI_DIRECTIONAL = "BI_DIRECTIONAL"


class SyncStatus(str, Enum):
    """Lifecycle of a SyncJob row"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class MappingType(str, Enum):
    MANUAL = "MANUAL"   # set by an operator, never overwritten automatically
    AUTO = "AUTO"       # created by a resolver or orchestrator


class MappingStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ORPHANED = "ORPHANED"   # source id missing from the latest full fetch


class MappingKind(str, Enum):
    """One mapping table per kind"""
    CATEGORY = "category"
    ATTRIBUTE = "attribute"
    ATTRIBUTE_VALUE = "attribute_value"
    PROPERTY = "property"
    PROPERTY_SELECTION = "property_selection"
    PROPERTY_VALUE = "property_value"
    MANUFACTURER = "manufacturer"
    UNIT = "unit"
    SALES_PRICE = "sales_price"
    PRODUCT = "product"


class SyncAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    SKIP = "skip"
    DELETE = "delete"
    ERROR = "error"


class MediaSourceType(str, Enum):
    PRODUCT_IMAGE = "PRODUCT_IMAGE"
    ATTRIBUTE_VALUE_IMAGE = "ATTRIBUTE_VALUE_IMAGE"
    CATEGORY_IMAGE = "CATEGORY_IMAGE"
    MANUFACTURER_LOGO = "MANUFACTURER_LOGO"


class ConfigValueType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class FieldTransform(str, Enum):
    DIRECT = "direct"
    MULTIPLY = "multiply"
    DIVIDE = "divide"
    MAP = "map"
