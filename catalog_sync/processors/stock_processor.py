"""
Stock sync: net stock per variation, summed over all warehouses, pushed to
the products the variations are mapped to. Variations without an active
product mapping are ignored; the product sync is what creates products.
"""
import logging
from collections import defaultdict
from typing import Any, Dict, List

from catalog_sync.core.config import get_settings
from catalog_sync.core.enums import MappingKind, SyncType
from catalog_sync.core.utils import chunked
from catalog_sync.integrations.base import StockUpdate
from catalog_sync.processors.base import BaseProcessor, SyncResult
from catalog_sync.services.mapping_store import MappingStore
from catalog_sync.services.sync_log_service import SyncLogService
from catalog_sync.services.sync_state_service import SyncStateService

logger = logging.getLogger(__name__)

ENTITY_TYPE = "stock"


def aggregate_stock(rows: List[Dict[str, Any]]) -> Dict[str, int]:
    """{variationId: net stock over every warehouse}"""
    totals: Dict[str, float] = defaultdict(float)
    for row in rows:
        variation_id = row.get("variationId")
        if variation_id is None:
            continue
        net = row.get("stockNet", row.get("netStock")) or 0
        totals[str(variation_id)] += net
    return {variation_id: int(total) for variation_id, total in totals.items()}


class StockSyncProcessor(BaseProcessor):

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.state = SyncStateService(self.db, self.tenant_id)
        self.products = MappingStore(self.db, self.tenant_id, MappingKind.PRODUCT)
        self.sync_log = SyncLogService(self.db, self.tenant_id, job_id=self.job_id)
        self.batch_size = int(self.options.get("batchSize") or get_settings().STOCK_BATCH_SIZE)

    async def build_updates(self, totals: Dict[str, int]) -> List[StockUpdate]:
        mappings = await self.products.get_batch(totals.keys())
        updates = []
        for variation_id, stock in totals.items():
            entry = mappings.get(variation_id)
            if entry is None or not entry.is_active:
                continue
            updates.append(StockUpdate(
                id=entry.dest_id,
                stock=stock,
                product_number=entry.extra.get("dest_product_number"),
                variation_id=variation_id,
            ))
        return updates

    async def run(self) -> SyncResult:
        self.start_timer()
        result = SyncResult()
        await self.state.mark_attempt(SyncType.STOCK)

        rows = await self.source.get_stock_management()
        totals = aggregate_stock(rows)
        updates = await self.build_updates(totals)
        result.details["variations"] = len(totals)
        result.details["unmapped"] = len(totals) - len(updates)
        logger.info(f"Stock sync for tenant {self.tenant_id}: {len(updates)} of {len(totals)} variations are mapped")

        for batch in chunked(updates, self.batch_size):
            outcomes = await self.destination.batch_update_stock(batch)
            for update, outcome in zip(batch, outcomes):
                if outcome.success:
                    result.record_updated()
                    await self.sync_log.log_update(ENTITY_TYPE, update.variation_id,
                                                   {"id": update.id, "stock": update.stock})
                else:
                    result.record_failed(f"Stock of {update.product_number or update.id}: {outcome.error}")
                    await self.sync_log.log_error(ENTITY_TYPE, update.variation_id, outcome.error or "Unknown error",
                                                  {"id": update.id, "stock": update.stock})
        await self.sync_log.flush()

        await self.state.mark_success(SyncType.STOCK)
        self.finish(result)
        logger.info(
            f"Stock sync completed for tenant {self.tenant_id}: {result.items_updated} updated, "
            f"{result.items_failed} failed in {result.duration_ms}ms"
        )
        return result
