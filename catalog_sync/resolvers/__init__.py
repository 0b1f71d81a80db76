from catalog_sync.resolvers.attribute import AttributeGroupResolver, AttributeResolver
from catalog_sync.resolvers.base import BaseResolver, ChildResolver, ResolverContext, ResolverStats
from catalog_sync.resolvers.category import CategoryResolver
from catalog_sync.resolvers.dependencies import DependencyResolver, ResolvedReferences
from catalog_sync.resolvers.manufacturer import ManufacturerResolver
from catalog_sync.resolvers.media import MediaResolver, file_name_from_url
from catalog_sync.resolvers.property import PropertyResolver
from catalog_sync.resolvers.unit import UnitResolver
