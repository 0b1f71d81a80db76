from typing import Any, Dict, List

from catalog_sync.core.enums import MappingKind
from catalog_sync.resolvers.base import BaseResolver
from catalog_sync.transformers.localization import build_translations, pick_name


class UnitResolver(BaseResolver):
    kind = MappingKind.UNIT
    label = "unit"

    async def load_sources(self, source_ids: List[str]) -> Dict[str, Any]:
        cached = await self.context.cache.get_units(source_ids)
        return {str(k): v for k, v in cached.items()}

    async def build_payload(self, source_id: str, source: Any) -> Dict[str, Any]:
        short_code = source.unit_of_measurement or f"U{source_id}"
        payload = {
            "shortCode": short_code,
            "name": pick_name(source.names, fallback=short_code),
        }
        translations = build_translations(source.names)
        if translations:
            payload["translations"] = translations
        return payload

    async def create(self, payload: Dict[str, Any]):
        return await self.destination.create_unit(payload)
