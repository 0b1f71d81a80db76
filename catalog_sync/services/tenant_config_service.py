"""
Purpose: Typed access to the per-tenant key/value settings table.

Functionality: Generic get/set/delete plus typed getters (string, number,
boolean, array, mapping) that coerce and warn on a mismatched stored type,
and convenience getters for the well-known keys in ConfigKeys. All keys of a
tenant are loaded in one query and kept for a short TTL.
"""
import logging
import time
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.enums import ConfigValueType
from catalog_sync.models.tenant_config import TenantConfig

logger = logging.getLogger(__name__)

CONFIG_CACHE_TTL = 60.0
DEFAULT_PROPERTY_REFERRERS = ["1.00"]
DEFAULT_TAX_RATE = 19.0


class ConfigKeys:
    """Well-known tenant configuration keys"""
    SOURCE_FRONTEND_URL = "sourceFrontendUrl"

    # Sales price ids
    DEFAULT_SALES_PRICE_ID = "defaultSalesPriceId"
    RRP_SALES_PRICE_ID = "rrpSalesPriceId"

    # Property visibility, e.g. ["1.00"] for the webshop referrer
    PROPERTY_REFERRERS = "propertyReferrers"
    PROPERTY_CLIENTS = "propertyClients"

    # {sourceTaxId: destinationTaxId}
    TAX_MAPPINGS = "taxMappings"

    # Destination defaults
    DESTINATION_TAX_ID = "destinationTaxId"
    DESTINATION_TAX_RATE = "destinationTaxRate"
    DESTINATION_CURRENCY_ID = "destinationCurrencyId"
    DESTINATION_ROOT_CATEGORY_ID = "destinationRootCategoryId"
    DESTINATION_SALES_CHANNEL_ID = "destinationSalesChannelId"
    DESTINATION_CMS_PAGE_ID = "destinationCmsPageId"


def infer_value_type(value: Any) -> ConfigValueType:
    if isinstance(value, bool):
        return ConfigValueType.BOOLEAN
    if isinstance(value, (int, float)):
        return ConfigValueType.NUMBER
    if isinstance(value, list):
        return ConfigValueType.ARRAY
    if isinstance(value, dict):
        return ConfigValueType.OBJECT
    return ConfigValueType.STRING


class TenantConfigService:
    """Service for reading and writing tenant configuration"""

    def __init__(self, db: AsyncSession, tenant_id: str, ttl: float = CONFIG_CACHE_TTL):
        self.db = db
        self.tenant_id = tenant_id
        self.ttl = ttl
        self._values: Optional[Dict[str, Any]] = None
        self._loaded_at = 0.0

    def invalidate(self) -> None:
        self._values = None

    async def get_all(self) -> Dict[str, Any]:
        if self._values is not None and (time.monotonic() - self._loaded_at) < self.ttl:
            return self._values
        result = await self.db.execute(select(TenantConfig).where(TenantConfig.tenant_id == self.tenant_id))
        self._values = {row.key: row.value for row in result.scalars().all()}
        self._loaded_at = time.monotonic()
        return self._values

    async def get(self, key: str, default: Any = None) -> Any:
        values = await self.get_all()
        value = values.get(key)
        return default if value is None else value

    async def exists(self, key: str) -> bool:
        return key in await self.get_all()

    async def get_string(self, key: str) -> Optional[str]:
        value = await self.get(key)
        if value is None:
            return None
        if not isinstance(value, str):
            logger.warning(f"Config value {key} for tenant {self.tenant_id} is not a string ({type(value).__name__})")
            return str(value)
        return value

    async def get_number(self, key: str) -> Optional[float]:
        value = await self.get(key)
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            logger.warning(f"Config value {key} for tenant {self.tenant_id} is not a number ({type(value).__name__})")
            try:
                return float(value)
            except (TypeError, ValueError):
                return None
        return value

    async def get_boolean(self, key: str) -> Optional[bool]:
        value = await self.get(key)
        if value is None:
            return None
        if not isinstance(value, bool):
            logger.warning(f"Config value {key} for tenant {self.tenant_id} is not a boolean ({type(value).__name__})")
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
        return value

    async def get_array(self, key: str) -> Optional[List[Any]]:
        value = await self.get(key)
        if value is None:
            return None
        if not isinstance(value, list):
            logger.warning(f"Config value {key} for tenant {self.tenant_id} is not an array")
            return None
        return value

    async def get_mapping(self, key: str) -> Optional[Dict[str, Any]]:
        value = await self.get(key)
        if value is None:
            return None
        if not isinstance(value, dict):
            logger.warning(f"Config value {key} for tenant {self.tenant_id} is not an object")
            return None
        return value

    async def set(self, key: str, value: Any, description: Optional[str] = None,
                  value_type: Optional[ConfigValueType] = None) -> TenantConfig:
        result = await self.db.execute(
            select(TenantConfig).where(TenantConfig.tenant_id == self.tenant_id, TenantConfig.key == key)
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = TenantConfig(tenant_id=self.tenant_id, key=key)
            self.db.add(row)
        row.value = value
        row.value_type = (value_type or infer_value_type(value)).value
        if description is not None:
            row.description = description
        await self.db.commit()
        self.invalidate()
        logger.debug(f"Set config {key} for tenant {self.tenant_id}")
        return row

    async def set_many(self, values: Dict[str, Any]) -> None:
        for key, value in values.items():
            await self.set(key, value)

    async def delete(self, key: str) -> bool:
        result = await self.db.execute(
            delete(TenantConfig).where(TenantConfig.tenant_id == self.tenant_id, TenantConfig.key == key)
        )
        await self.db.commit()
        self.invalidate()
        return (result.rowcount or 0) > 0

    # Well-known keys

    async def get_source_frontend_url(self) -> Optional[str]:
        return await self.get_string(ConfigKeys.SOURCE_FRONTEND_URL)

    async def get_default_sales_price_id(self) -> Optional[int]:
        value = await self.get_number(ConfigKeys.DEFAULT_SALES_PRICE_ID)
        return int(value) if value is not None else None

    async def get_rrp_sales_price_id(self) -> Optional[int]:
        value = await self.get_number(ConfigKeys.RRP_SALES_PRICE_ID)
        return int(value) if value is not None else None

    async def get_property_referrers(self) -> List[str]:
        referrers = await self.get_array(ConfigKeys.PROPERTY_REFERRERS)
        return [str(r) for r in referrers] if referrers is not None else list(DEFAULT_PROPERTY_REFERRERS)

    async def get_property_clients(self) -> Optional[List[str]]:
        """None means properties of every client are imported."""
        clients = await self.get_array(ConfigKeys.PROPERTY_CLIENTS)
        return [str(c) for c in clients] if clients is not None else None

    async def get_tax_mappings(self) -> Dict[str, str]:
        return await self.get_mapping(ConfigKeys.TAX_MAPPINGS) or {}

    async def get_destination_tax_id(self, source_tax_id: Optional[Any] = None) -> Optional[str]:
        if source_tax_id is not None:
            mapped = (await self.get_tax_mappings()).get(str(source_tax_id))
            if mapped:
                return mapped
        return await self.get_string(ConfigKeys.DESTINATION_TAX_ID)

    async def get_destination_tax_rate(self) -> float:
        value = await self.get_number(ConfigKeys.DESTINATION_TAX_RATE)
        return float(value) if value is not None else DEFAULT_TAX_RATE

    async def get_destination_currency_id(self) -> Optional[str]:
        return await self.get_string(ConfigKeys.DESTINATION_CURRENCY_ID)

    async def get_destination_root_category_id(self) -> Optional[str]:
        return await self.get_string(ConfigKeys.DESTINATION_ROOT_CATEGORY_ID)

    async def get_destination_sales_channel_id(self) -> Optional[str]:
        return await self.get_string(ConfigKeys.DESTINATION_SALES_CHANNEL_ID)

    async def get_destination_cms_page_id(self) -> Optional[str]:
        return await self.get_string(ConfigKeys.DESTINATION_CMS_PAGE_ID)
