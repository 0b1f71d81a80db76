"""
Category resolver. Destination categories form a tree, so a category can
only be created once its parent exists: missing ancestors are created
first, walking up through the cached source categories.
"""
import logging
from typing import Any, Dict, List, Optional, Set

from catalog_sync.core.enums import MappingKind, MappingType, SyncAction
from catalog_sync.resolvers.base import BaseResolver
from catalog_sync.services.mapping_store import MappingRecord
from catalog_sync.transformers.localization import build_translations, pick_name

logger = logging.getLogger(__name__)


class CategoryResolver(BaseResolver):
    kind = MappingKind.CATEGORY
    label = "category"

    def __init__(self, context):
        super().__init__(context)
        self._categories: Optional[Dict[str, Any]] = None
        self._root_id: Optional[str] = None
        self._cms_page_id: Optional[str] = None
        self._settings_loaded = False
        self._records: List[MappingRecord] = []

    async def _load_settings(self) -> None:
        if self._settings_loaded:
            return
        self._root_id = await self.context.config.get_destination_root_category_id()
        self._cms_page_id = await self.context.config.get_destination_cms_page_id()
        if not self._root_id:
            logger.warning(f"No destination root category configured for tenant {self.tenant_id}; "
                           f"top-level categories are created without a parent")
        if not self._cms_page_id:
            logger.warning(f"No destination CMS page configured for tenant {self.tenant_id}")
        self._settings_loaded = True

    async def load_sources(self, source_ids: List[str]) -> Dict[str, Any]:
        # Whole tree, read once per run
        if self._categories is None:
            cached = await self.context.cache.get_categories()
            self._categories = {str(k): v for k, v in cached.items()}
        return self._categories

    async def build_payload(self, source_id: str, source: Any) -> Dict[str, Any]:
        parent_dest_id = self._root_id
        if source.parent_id:
            parent_dest_id = self.lookup.get(str(source.parent_id))

        payload = {
            "name": pick_name(source.names, fallback="Unnamed Category"),
            "active": True,
            "visible": True,
            "level": source.level or 0,
        }
        if parent_dest_id:
            payload["parentId"] = parent_dest_id
        if self._cms_page_id:
            payload["cmsPageId"] = self._cms_page_id
        translations = build_translations(source.names)
        if translations:
            payload["translations"] = translations
        return payload

    async def create(self, payload: Dict[str, Any]):
        return await self.destination.create_category(payload)

    async def _ensure(self, source_id: str, categories: Dict[str, Any], visiting: Set[str]) -> Optional[str]:
        if source_id in self.lookup:
            return self.lookup[source_id]
        if source_id in self.failed_ids:
            return None
        if source_id in visiting:
            self._fail(source_id, "category parent cycle detected")
            return None

        source = categories.get(source_id)
        if source is None:
            self._fail(source_id, "not found in the local source cache")
            return None

        visiting.add(source_id)
        if source.parent_id:
            parent_id = str(source.parent_id)
            if parent_id not in self.lookup:
                # A parent mapped in an earlier run counts as resolved
                await self.preload([parent_id])
            if await self._ensure(parent_id, categories, visiting) is None:
                visiting.discard(source_id)
                self._fail(source_id, f"parent category {parent_id} could not be resolved")
                return None
        visiting.discard(source_id)

        dest_id = await self.create_one(source_id, source)
        if dest_id:
            self._records.append(MappingRecord(source_id, dest_id, SyncAction.CREATE, MappingType.AUTO))
        return dest_id

    async def resolve(self, source_ids) -> Dict[str, str]:
        source_ids = [str(s) for s in source_ids if s is not None]
        unmapped = await self.preload(source_ids)
        if unmapped:
            await self._load_settings()
            categories = await self.load_sources(unmapped)
            self._records = []
            for source_id in unmapped:
                await self._ensure(source_id, categories, set())
            records, self._records = self._records, []
            await self.persist(records)
        return {i: self.lookup[i] for i in source_ids if i in self.lookup}
