"""
Properties are descriptive (non variant) characteristics. A property becomes
a destination property group; its values become options of that group,
either from a predefined selection or from free text. Free-text values are
keyed by md5("<propertyId>:<value>") so every product carrying the same
value shares one option.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from catalog_sync.core.enums import MappingKind, MappingType, SyncAction
from catalog_sync.resolvers.base import BaseResolver, ChildResolver, ResolverContext
from catalog_sync.services.mapping_store import MappingRecord
from catalog_sync.transformers.localization import build_translations, pick_name, to_locale
from catalog_sync.transformers.references import (
    free_text_properties,
    property_value,
    property_selection_ids,
    property_value_hash,
    raw_relation_value,
)

logger = logging.getLogger(__name__)


def cached_property_dict(row: Any) -> Dict[str, Any]:
    return {"cast": row.cast, "selections": row.selections or []}


class PropertyGroupResolver(BaseResolver):
    kind = MappingKind.PROPERTY
    label = "property"

    async def load_sources(self, source_ids: List[str]) -> Dict[str, Any]:
        cached = await self.context.cache.get_properties(source_ids)
        return {str(k): v for k, v in cached.items()}

    async def build_payload(self, source_id: str, source: Any) -> Dict[str, Any]:
        payload = {
            "name": pick_name(source.names, fallback="Unnamed Property Group"),
            "displayType": "text",
            "sortingType": "alphanumeric",
            "position": source.position or 0,
        }
        translations = build_translations(source.names)
        if translations:
            payload["translations"] = translations
        return payload

    async def create(self, payload: Dict[str, Any]):
        return await self.destination.create_property_group(payload)

    def mapping_record(self, source_id: str, dest_id: str, source: Any) -> MappingRecord:
        extra = {}
        if source.property_group_id is not None:
            extra["source_group_id"] = str(source.property_group_id)
        return MappingRecord(source_id, dest_id, SyncAction.CREATE, MappingType.AUTO, extra=extra)


class PropertySelectionResolver(ChildResolver):
    kind = MappingKind.PROPERTY_SELECTION
    label = "property selection"

    def __init__(self, context: ResolverContext, groups: PropertyGroupResolver):
        super().__init__(context, groups)
        self._index: Optional[Dict[int, Dict[str, Any]]] = None

    def parent_source_id(self, source: Dict[str, Any]) -> str:
        return str(source["property"].source_id)

    async def load_sources(self, source_ids: List[str]) -> Dict[str, Any]:
        if self._index is None:
            self._index = {}
            for prop in (await self.context.cache.get_properties()).values():
                for selection in prop.selections or []:
                    if selection.get("id") is not None:
                        self._index[int(selection["id"])] = {"property": prop, "selection": selection}
        return {i: self._index[int(i)] for i in source_ids if int(i) in self._index}

    async def build_payload(self, source_id: str, source: Dict[str, Any]) -> Dict[str, Any]:
        selection = source["selection"]
        payload = {
            "groupId": self.group_id_for(source),
            "name": pick_name(selection.get("names"), fallback="Unnamed Property Option"),
            "position": selection.get("position") or 0,
        }
        translations = build_translations(selection.get("names"))
        if translations:
            payload["translations"] = translations
        return payload

    async def create(self, payload: Dict[str, Any]):
        return await self.destination.create_property_option(payload)


class PropertyValueResolver(ChildResolver):
    """Free-text values. Values must be registered before they can be resolved."""
    kind = MappingKind.PROPERTY_VALUE
    label = "property value"

    def __init__(self, context: ResolverContext, groups: PropertyGroupResolver):
        super().__init__(context, groups)
        self.values: Dict[str, Dict[str, Any]] = {}

    def register(self, property_id: Any, value: str, lang: str = "de") -> str:
        key = property_value_hash(property_id, value)
        self.values.setdefault(key, {"property_id": str(property_id), "value": value, "lang": lang})
        return key

    def parent_source_id(self, source: Dict[str, Any]) -> str:
        return source["property_id"]

    async def load_sources(self, source_ids: List[str]) -> Dict[str, Any]:
        return {i: self.values[i] for i in source_ids if i in self.values}

    async def build_payload(self, source_id: str, source: Dict[str, Any]) -> Dict[str, Any]:
        value = source["value"]
        translations = {to_locale("de"): {"name": value}, to_locale("en"): {"name": value}}
        translations[to_locale(source["lang"])] = {"name": value}
        return {
            "groupId": self.group_id_for(source),
            "name": value,
            "position": 0,
            "translations": translations,
        }

    async def create(self, payload: Dict[str, Any]):
        return await self.destination.create_property_option(payload)

    def mapping_record(self, source_id: str, dest_id: str, source: Dict[str, Any]) -> MappingRecord:
        record = super().mapping_record(source_id, dest_id, source)
        record.extra = {"original_value": source["value"]}
        return record


class PropertyResolver:
    """Entry point used by the product sync for both kinds of property options."""

    def __init__(self, context: ResolverContext):
        self.context = context
        self.groups = PropertyGroupResolver(context)
        self.selections = PropertySelectionResolver(context, self.groups)
        self.values = PropertyValueResolver(context, self.groups)
        self._properties: Optional[Dict[str, Dict[str, Any]]] = None

    async def cached_properties(self) -> Dict[str, Dict[str, Any]]:
        if self._properties is None:
            rows = await self.context.cache.get_properties()
            self._properties = {str(k): cached_property_dict(v) for k, v in rows.items()}
        return self._properties

    async def free_text_keys(self, variation: Dict[str, Any]) -> List[str]:
        """Register the free-text values of a variation and return their keys."""
        properties = await self.cached_properties()
        keys = []
        for prop in free_text_properties(variation):
            cached = properties.get(str(prop["propertyId"]))
            if cached is None:
                # hidden for the configured referrers
                continue
            value = property_value(prop, cached)
            if not value:
                continue
            _, lang = raw_relation_value(prop.get("relationValues"))
            keys.append(self.values.register(prop["propertyId"], value, lang))
        return keys

    async def resolve_selections(self, selection_ids: Iterable[Any]) -> Dict[str, str]:
        return await self.selections.resolve(selection_ids)

    async def resolve_variations(self, variations: List[Dict[str, Any]]) -> Dict[str, str]:
        """
        Resolve every property option the variations reference.

        Returns:
            {selection id or value key: option dest id}
        """
        selection_ids = []
        value_keys = []
        for variation in variations:
            selection_ids.extend(property_selection_ids(variation))
            value_keys.extend(await self.free_text_keys(variation))

        resolved = await self.selections.resolve(selection_ids)
        resolved.update(await self.values.resolve(value_keys))
        return resolved

    @property
    def stats(self) -> Dict[str, Dict[str, int]]:
        return {
            "groups": self.groups.stats.to_dict(),
            "selections": self.selections.stats.to_dict(),
            "values": self.values.stats.to_dict(),
        }
