"""
Runs every resolver over a batch of variations before they are transformed.
Groups are handled before options (the option resolvers resolve their groups
first), and the result is a set of lookups the transformer reads from.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from catalog_sync.resolvers.attribute import AttributeResolver
from catalog_sync.resolvers.base import ResolverContext
from catalog_sync.resolvers.category import CategoryResolver
from catalog_sync.resolvers.manufacturer import ManufacturerResolver
from catalog_sync.resolvers.media import MediaResolver
from catalog_sync.resolvers.property import PropertyResolver
from catalog_sync.resolvers.unit import UnitResolver
from catalog_sync.transformers.references import attribute_value_ids, category_ids, manufacturer_id, unit_id

logger = logging.getLogger(__name__)


@dataclass
class ResolvedReferences:
    """source id -> destination id, one dict per kind"""
    categories: Dict[str, str] = field(default_factory=dict)
    attribute_options: Dict[str, str] = field(default_factory=dict)
    property_options: Dict[str, str] = field(default_factory=dict)
    manufacturers: Dict[str, str] = field(default_factory=dict)
    units: Dict[str, str] = field(default_factory=dict)


class DependencyResolver:

    def __init__(self, context: ResolverContext):
        self.context = context
        self.media = MediaResolver(context)
        self.categories = CategoryResolver(context)
        self.manufacturers = ManufacturerResolver(context)
        self.units = UnitResolver(context)
        self.attributes = AttributeResolver(context, media=self.media)
        self.properties = PropertyResolver(context)

    async def resolve(self, variations: List[Dict[str, Any]]) -> ResolvedReferences:
        category_source_ids = []
        value_ids = []
        manufacturer_ids = []
        unit_ids = []
        for variation in variations:
            category_source_ids.extend(category_ids(variation))
            value_ids.extend(attribute_value_ids(variation))
            manufacturer_ids.append(manufacturer_id(variation))
            unit_ids.append(unit_id(variation))

        refs = ResolvedReferences()
        refs.categories = await self.categories.resolve(category_source_ids)
        refs.manufacturers = await self.manufacturers.resolve(manufacturer_ids)
        refs.units = await self.units.resolve(unit_ids)
        refs.attribute_options = await self.attributes.resolve(value_ids)
        refs.property_options = await self.properties.resolve_variations(variations)
        return refs

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "categories": self.categories.stats.to_dict(),
            "manufacturers": self.manufacturers.stats.to_dict(),
            "units": self.units.stats.to_dict(),
            "attributeGroups": self.attributes.groups.stats.to_dict(),
            "attributeValues": self.attributes.stats.to_dict(),
            "properties": self.properties.stats,
            "media": self.media.stats.to_dict(),
        }
