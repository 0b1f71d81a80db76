"""
Purpose: Mirror source variations into destination products.

Functionality:
- Makes sure the cached source configuration is fresh (nested config sync
  when it is older than the tenant's threshold).
- FULL fetches every variation, DELTA only those updated since the
  PRODUCT_DELTA watermark. A DELTA without a watermark runs as FULL.
- Per batch: resolve referenced entities, upload item images, then per
  variation transform, look the product up by SKU and create or update it.
  Each outcome is written to the sync log and tallied; a failing variation
  never stops the run.
- Product mappings are upserted per batch; a FULL run finally marks the
  mappings of variations that disappeared as ORPHANED.
- The watermark only advances after the whole loop has completed, and it is
  set to the time the run started so changes made during the run are picked
  up by the next delta.
"""
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from catalog_sync.core.config import get_settings
from catalog_sync.core.enums import MappingKind, MappingType, SyncAction, SyncType
from catalog_sync.core.exceptions import DestinationServiceError, TransformationError
from catalog_sync.core.utils import chunked, dedupe, utcnow
from catalog_sync.models.tenant import Tenant
from catalog_sync.processors.base import BaseProcessor, SyncResult
from catalog_sync.processors.config_processor import ConfigSyncProcessor, get_config_age
from catalog_sync.resolvers.base import ResolverContext
from catalog_sync.resolvers.dependencies import DependencyResolver
from catalog_sync.services.field_mapping_service import FieldMappingService
from catalog_sync.services.mapping_store import MappingRecord, MappingStore
from catalog_sync.services.source_cache import SourceCacheRepository
from catalog_sync.services.sync_log_service import SyncLogService
from catalog_sync.services.sync_state_service import SyncStateService
from catalog_sync.services.tenant_config_service import TenantConfigService
from catalog_sync.transformers.cache import TenantCache
from catalog_sync.transformers.field_mapping import compile_rules
from catalog_sync.transformers.product_transformer import (
    DEFAULT_CURRENCY_ID,
    ProductTransformer,
    TransformContext,
    is_main_variation,
)

logger = logging.getLogger(__name__)

ENTITY_TYPE = "product"


class SyncMode(str, Enum):
    FULL = "FULL"
    DELTA = "DELTA"


class ProductSyncProcessor(BaseProcessor):

    def __init__(self, *args, mode: SyncMode = SyncMode.DELTA, **kwargs):
        super().__init__(*args, **kwargs)
        self.mode = SyncMode(mode)
        self.settings = get_settings()
        self.state = SyncStateService(self.db, self.tenant_id)
        self.config = TenantConfigService(self.db, self.tenant_id)
        self.products = MappingStore(self.db, self.tenant_id, MappingKind.PRODUCT)
        self.sync_log = SyncLogService(self.db, self.tenant_id, job_id=self.job_id)
        self.transformer = ProductTransformer(self.db, TenantCache(ttl=self.settings.TRANSFORM_CACHE_TTL))
        self.resolver = DependencyResolver(ResolverContext(
            self.db,
            self.tenant_id,
            self.destination,
            cache=SourceCacheRepository(self.db, self.tenant_id),
            config=self.config,
        ))
        self.skip_existing = bool(self.options.get("skipExisting", False))
        self.batch_size = int(self.options.get("batchSize") or self.settings.PRODUCT_BATCH_SIZE)

    # Phases

    async def _stale_threshold(self) -> float:
        tenant = await self.db.get(Tenant, self.tenant_id)
        default = self.settings.CONFIG_STALE_HOURS
        return tenant.stale_threshold_hours(default) if tenant else default

    async def ensure_fresh_config(self, result: SyncResult) -> None:
        threshold = await self._stale_threshold()
        age = await get_config_age(self.state)
        if age is not None and age < threshold:
            logger.debug(f"Config for tenant {self.tenant_id} is {age:.1f}h old, threshold {threshold}h")
            return

        if age is None:
            logger.info(f"No config sync recorded for tenant {self.tenant_id}, running one first")
        else:
            logger.info(f"Config for tenant {self.tenant_id} is {age:.1f}h old (threshold {threshold}h), refreshing")
        config_result = await ConfigSyncProcessor(
            self.db, self.tenant_id, self.source, self.destination, job_id=self.job_id,
        ).run()
        self.transformer.invalidate(self.tenant_id)
        result.details["config"] = config_result.to_dict()

    async def resolve_mode(self) -> SyncMode:
        if self.mode == SyncMode.DELTA:
            if await self.state.get_last_successful_sync(SyncType.PRODUCT_DELTA) is None:
                logger.info(f"No product watermark for tenant {self.tenant_id}, running a full sync")
                return SyncMode.FULL
        return self.mode

    async def fetch_variations(self, mode: SyncMode) -> List[Dict[str, Any]]:
        if mode == SyncMode.FULL:
            return await self.source.get_all_variations()
        since = await self.state.get_last_successful_sync(SyncType.PRODUCT_DELTA)
        return await self.source.get_variations_delta(since)

    async def build_context(self) -> TransformContext:
        rules = await FieldMappingService(self.db, self.tenant_id).get_compiled_rules(ENTITY_TYPE)
        if self.options.get("fieldMappings"):
            rules = rules + compile_rules(self.options["fieldMappings"])

        context = TransformContext(
            tenant_id=self.tenant_id,
            currency_id=await self.config.get_destination_currency_id() or DEFAULT_CURRENCY_ID,
            tax_id=await self.config.get_destination_tax_id(),
            tax_rate=await self.config.get_destination_tax_rate(),
            tax_mappings=await self.config.get_tax_mappings(),
            default_sales_price_id=await self.config.get_default_sales_price_id(),
            rrp_sales_price_id=await self.config.get_rrp_sales_price_id(),
            rules=rules,
        )
        if not context.tax_id:
            logger.warning(f"No destination tax id configured for tenant {self.tenant_id}")
        return context

    async def load_parent_ids(self, batch: List[Dict[str, Any]], context: TransformContext) -> None:
        main_ids = dedupe(
            str(v["mainVariationId"]) for v in batch
            if not is_main_variation(v) and str(v.get("mainVariationId")) not in context.parent_ids
        )
        if not main_ids:
            return
        for source_id, entry in (await self.products.get_batch(main_ids)).items():
            context.parent_ids[source_id] = entry.dest_id

    async def load_media(self, batch: List[Dict[str, Any]], context: TransformContext) -> None:
        for variation in batch:
            item_id = variation.get("itemId")
            if item_id is None or str(item_id) in context.media:
                continue
            images = await self.source.get_item_images(item_id)
            context.media[str(item_id)] = await self.resolver.media.resolve_product_images(
                item_id, images, variation.get("number"),
            )

    # Items

    async def _existing_product_id(self, variation: Dict[str, Any], sku: str) -> Optional[str]:
        manual = await self.products.get(variation.get("id"))
        if manual is not None and manual.mapping_type == MappingType.MANUAL.value:
            return manual.dest_id
        existing = await self.destination.get_product_by_sku(sku)
        return existing.get("id") if existing else None

    async def process_variation(self, variation: Dict[str, Any], context: TransformContext,
                                result: SyncResult, records: List[MappingRecord]) -> None:
        variation_id = variation.get("id")
        try:
            product = await self.transformer.transform(variation, context)
        except TransformationError as e:
            result.record_failed(f"Variation {variation_id}: {str(e)}")
            await self.sync_log.log_error(ENTITY_TYPE, variation_id, str(e))
            return

        sku = product["productNumber"]
        try:
            product_id = await self._existing_product_id(variation, sku)
            if product_id and self.skip_existing:
                result.record_skipped()
                await self.sync_log.log_skip(ENTITY_TYPE, variation_id, "Product already exists")
                outcome_id, action = product_id, SyncAction.SKIP
            elif product_id:
                outcome = await self.destination.update_product(product_id, product)
                outcome_id, action = outcome.id, SyncAction.UPDATE
            else:
                outcome = await self.destination.create_product(product)
                outcome_id, action = outcome.id, SyncAction.CREATE
        except DestinationServiceError as e:
            result.record_failed(f"Variation {variation_id} ({sku}): {str(e)}")
            await self.sync_log.log_error(ENTITY_TYPE, variation_id, str(e), {"productNumber": sku})
            return

        if action != SyncAction.SKIP:
            if not outcome.success:
                result.record_failed(f"Variation {variation_id} ({sku}): {outcome.error}")
                await self.sync_log.log_error(ENTITY_TYPE, variation_id, outcome.error or "Unknown error",
                                              {"productNumber": sku})
                return
            if action == SyncAction.CREATE:
                result.record_created()
                await self.sync_log.log_create(ENTITY_TYPE, variation_id, {"productNumber": sku, "id": outcome_id})
            else:
                result.record_updated()
                await self.sync_log.log_update(ENTITY_TYPE, variation_id, {"productNumber": sku, "id": outcome_id})

        if is_main_variation(variation):
            context.parent_ids[str(variation_id)] = outcome_id
        records.append(MappingRecord(
            variation_id, outcome_id, action, MappingType.AUTO,
            extra={"source_item_id": variation.get("itemId"), "dest_product_number": sku},
        ))

    async def process_batch(self, batch: List[Dict[str, Any]], context: TransformContext,
                            result: SyncResult) -> None:
        context.references = await self.resolver.resolve(batch)
        await self.load_parent_ids(batch, context)
        await self.load_media(batch, context)

        records: List[MappingRecord] = []
        for variation in batch:
            await self.process_variation(variation, context, result, records)
        await self.products.upsert_batch(records)

    async def run(self) -> SyncResult:
        """
        Raises:
            SourceAuthError, SourceFetchError, DatabaseError: fetch or persistence failed as a whole
        """
        self.start_timer()
        result = SyncResult()
        started_at = utcnow()

        await self.ensure_fresh_config(result)
        mode = await self.resolve_mode()
        result.details["mode"] = mode.value
        await self.state.mark_attempt(SyncType.PRODUCT_DELTA)

        variations = await self.fetch_variations(mode)
        # Parents before their children
        variations.sort(key=lambda v: 0 if is_main_variation(v) else 1)
        logger.info(f"{mode.value} product sync for tenant {self.tenant_id}: {len(variations)} variations")

        context = await self.build_context()
        for batch in chunked(variations, self.batch_size):
            await self.process_batch(batch, context, result)
            logger.info(
                f"Product sync progress for tenant {self.tenant_id}: "
                f"{result.items_processed}/{len(variations)} processed"
            )
        await self.sync_log.flush()

        if mode == SyncMode.FULL:
            orphaned, reactivated = await self.products.reconcile_seen(v.get("id") for v in variations)
            result.details["orphaned"] = orphaned
            result.details["reactivated"] = reactivated

        await self.state.mark_success(SyncType.PRODUCT_DELTA, at=started_at)
        result.details["resolvers"] = self.resolver.stats
        self.finish(result)
        logger.info(
            f"Product sync completed for tenant {self.tenant_id}: {result.items_created} created, "
            f"{result.items_updated} updated, {result.items_failed} failed in {result.duration_ms}ms"
        )
        return result
