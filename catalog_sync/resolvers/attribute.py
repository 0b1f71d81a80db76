"""
Attributes drive the variant axes: a source attribute becomes a destination
property group and each of its values a property option inside that group.
Variations only reference value ids, so the owning attribute is looked up
through the cached attribute values.
"""
import logging
from typing import Any, Dict, List, Optional

from catalog_sync.core.enums import MappingKind
from catalog_sync.resolvers.base import BaseResolver, ChildResolver, ResolverContext
from catalog_sync.resolvers.media import MediaResolver
from catalog_sync.transformers.localization import build_translations, pick_name

logger = logging.getLogger(__name__)

DISPLAY_TYPES = {
    "image": "media",
    "dropdown": "select",
}


def group_display_type(source_display_type: Optional[str]) -> str:
    return DISPLAY_TYPES.get(source_display_type or "", "text")


class AttributeGroupResolver(BaseResolver):
    kind = MappingKind.ATTRIBUTE
    label = "attribute"

    async def load_sources(self, source_ids: List[str]) -> Dict[str, Any]:
        cached = await self.context.cache.get_attributes(source_ids)
        return {str(k): v for k, v in cached.items()}

    async def build_payload(self, source_id: str, source: Any) -> Dict[str, Any]:
        payload = {
            "name": source.backend_name or pick_name(source.names, fallback="Unnamed Property Group"),
            "displayType": group_display_type(source.display_type),
            "sortingType": "alphanumeric",
            "position": source.position or 0,
        }
        translations = build_translations(source.names)
        if translations:
            payload["translations"] = translations
        return payload

    async def create(self, payload: Dict[str, Any]):
        return await self.destination.create_property_group(payload)


class AttributeResolver(ChildResolver):
    """Resolves attribute value ids to property option ids, creating groups on the way."""
    kind = MappingKind.ATTRIBUTE_VALUE
    label = "attribute value"

    def __init__(self, context: ResolverContext, groups: Optional[AttributeGroupResolver] = None,
                 media: Optional[MediaResolver] = None):
        super().__init__(context, groups or AttributeGroupResolver(context))
        self.media = media
        self._index: Optional[Dict[int, Dict[str, Any]]] = None
        self._frontend_url: Optional[str] = None

    def parent_source_id(self, source: Dict[str, Any]) -> str:
        return str(source["attribute"].source_id)

    async def load_sources(self, source_ids: List[str]) -> Dict[str, Any]:
        if self._index is None:
            self._index = await self.context.cache.attribute_values_index()
            if self.media is not None:
                self._frontend_url = await self.context.config.get_source_frontend_url()
                if not self._frontend_url:
                    logger.warning(f"Source frontend URL not configured for tenant {self.tenant_id}, "
                                   f"attribute value images are skipped")
        return {i: self._index[int(i)] for i in source_ids if int(i) in self._index}

    async def build_payload(self, source_id: str, source: Dict[str, Any]) -> Dict[str, Any]:
        attribute = source["attribute"]
        value = source["value"]

        payload = {
            "groupId": self.group_id_for(source),
            "name": value.get("backendName") or pick_name(value.get("names"), fallback="Unnamed Property Option"),
            "position": value.get("position") or 0,
        }
        translations = build_translations(value.get("names"))
        if translations:
            payload["translations"] = translations

        if self.media is not None and self._frontend_url and group_display_type(attribute.display_type) == "media":
            media_id = await self.media.resolve_attribute_value_image(self._frontend_url, attribute, value)
            if media_id:
                payload["mediaId"] = media_id
        return payload

    async def create(self, payload: Dict[str, Any]):
        return await self.destination.create_property_option(payload)
