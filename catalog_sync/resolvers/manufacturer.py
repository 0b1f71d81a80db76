from typing import Any, Dict, List

from catalog_sync.core.enums import MappingKind
from catalog_sync.resolvers.base import BaseResolver

class ManufacturerResolver(BaseResolver):
    kind = MappingKind.MANUFACTURER
    label = "manufacturer"

    async def load_sources(self, source_ids: List[str]) -> Dict[str, Any]:
        cached = await self.context.cache.get_manufacturers(source_ids)
        return {str(k): v for k, v in cached.items()}

    async def build_payload(self, source_id: str, source: Any) -> Dict[str, Any]:
        raw = source.raw_data or {}
        payload = {"name": source.name or source.external_name or f"Manufacturer {source_id}"}
        if source.url:
            payload["link"] = source.url
        if raw.get("comment"):
            payload["description"] = raw["comment"]
        return payload

    async def create(self, payload: Dict[str, Any]):
        return await self.destination.create_manufacturer(payload)
