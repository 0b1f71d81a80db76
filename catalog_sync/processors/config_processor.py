"""
Purpose: Refresh the local replica of the source ERP's configuration.

Functionality: Fetches categories, attributes (with values), sales prices,
manufacturers, units and properties, writes them into the source cache and
reconciles the mapping tables against what the source still has: mappings
whose source id disappeared become ORPHANED, reappearing ones ACTIVE again.
Destination entities are not created here; the resolvers create them on
demand during the product sync.

Role: Runs as its own CONFIG job and nested inside a product sync whenever
the cached configuration is older than the tenant's staleness threshold.
"""
import logging
from typing import Any, Callable, Dict, List, Optional

from catalog_sync.core.config import get_settings
from catalog_sync.core.enums import MappingKind, SyncType
from catalog_sync.processors.base import BaseProcessor, SyncResult
from catalog_sync.services.mapping_store import MappingStore
from catalog_sync.services.source.client import filter_properties
from catalog_sync.services.source_cache import SourceCacheRepository
from catalog_sync.services.sync_state_service import SyncStateService
from catalog_sync.services.tenant_config_service import TenantConfigService

logger = logging.getLogger(__name__)


def _ids(records: List[Dict[str, Any]]) -> List[str]:
    return [str(r["id"]) for r in records if r.get("id") is not None]


def _child_ids(records: List[Dict[str, Any]], *keys: str) -> List[str]:
    ids = []
    for record in records:
        for key in keys:
            for child in record.get(key) or []:
                if child.get("id") is not None:
                    ids.append(str(child["id"]))
    return ids


# cache kind -> [(mapping kind, source ids seen in the fetched records)]
RECONCILED_KINDS: Dict[str, List[tuple]] = {
    "categories": [(MappingKind.CATEGORY, _ids)],
    "attributes": [
        (MappingKind.ATTRIBUTE, _ids),
        (MappingKind.ATTRIBUTE_VALUE, lambda records: _child_ids(records, "values", "attributeValues")),
    ],
    "sales_prices": [(MappingKind.SALES_PRICE, _ids)],
    "manufacturers": [(MappingKind.MANUFACTURER, _ids)],
    "units": [(MappingKind.UNIT, _ids)],
    "properties": [
        (MappingKind.PROPERTY, _ids),
        (MappingKind.PROPERTY_SELECTION, lambda records: _child_ids(records, "selections")),
    ],
}


class ConfigSyncProcessor(BaseProcessor):

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.cache = SourceCacheRepository(self.db, self.tenant_id)
        self.state = SyncStateService(self.db, self.tenant_id)
        self.config = TenantConfigService(self.db, self.tenant_id)

    async def _fetch_properties(self) -> List[Dict[str, Any]]:
        properties = await self.source.get_all_properties()
        referrers = await self.config.get_property_referrers()
        clients = await self.config.get_property_clients()
        visible = filter_properties(properties, referrers, clients)
        logger.info(f"Keeping {len(visible)} of {len(properties)} properties visible for referrers {referrers}")
        return visible

    def _fetchers(self) -> Dict[str, Callable]:
        return {
            "categories": self.source.get_all_categories,
            "attributes": self.source.get_all_attributes,
            "sales_prices": self.source.get_all_sales_prices,
            "manufacturers": self.source.get_all_manufacturers,
            "units": self.source.get_all_units,
            "properties": self._fetch_properties,
        }

    async def sync_kind(self, kind: str, fetch: Callable) -> Dict[str, Any]:
        records = await fetch()
        written = await self.cache.upsert(kind, records)

        orphaned = 0
        reactivated = 0
        for mapping_kind, seen_ids in RECONCILED_KINDS[kind]:
            store = MappingStore(self.db, self.tenant_id, mapping_kind)
            o, r = await store.reconcile_seen(seen_ids(records))
            orphaned += o
            reactivated += r

        counts = {
            "synced": written.synced,
            "created": written.created,
            "updated": written.updated,
            "errors": written.errors,
            "orphaned": orphaned,
            "reactivated": reactivated,
        }
        logger.info(f"Config sync of {kind} for tenant {self.tenant_id}: {counts}")
        return counts

    async def run(self) -> SyncResult:
        """
        Raises:
            SourceAuthError, SourceFetchError, DatabaseError: a whole kind could not be synced
        """
        self.start_timer()
        result = SyncResult()
        await self.state.mark_attempt(SyncType.CONFIG)

        for kind, fetch in self._fetchers().items():
            counts = await self.sync_kind(kind, fetch)
            result.details[kind] = counts
            result.items_processed += counts["synced"] + counts["errors"]
            result.items_created += counts["created"]
            result.items_updated += counts["updated"]
            result.items_failed += counts["errors"]
            if counts["errors"]:
                result.add_error(f"{counts['errors']} {kind} records could not be cached")

        await self.state.mark_success(SyncType.CONFIG)
        self.finish(result)
        logger.info(
            f"Config sync completed for tenant {self.tenant_id}: {result.items_created} created, "
            f"{result.items_updated} updated, {result.items_failed} failed in {result.duration_ms}ms"
        )
        return result


async def get_config_age(state: SyncStateService) -> Optional[float]:
    """Hours since the last successful config sync, None if there never was one."""
    return await state.hours_since_success(SyncType.CONFIG)


async def is_config_stale(state: SyncStateService, threshold_hours: Optional[float] = None) -> bool:
    threshold = threshold_hours if threshold_hours is not None else get_settings().CONFIG_STALE_HOURS
    age = await get_config_age(state)
    return age is None or age >= threshold
