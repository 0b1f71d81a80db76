"""
Purpose: Turn source variations into destination product payloads.

Functionality:
- Main variations become parent products (no parentId, no options); every
  other variation becomes a child product of its main variation's product,
  with its attribute values as variant `options`.
- Base fields: product number, localized name/description, stock summed over
  warehouses, price (main + list price), tax, categories, manufacturer, unit.
- Destination ids of referenced entities are read from the lookups the
  resolvers produced for the batch; an unresolved reference is left out.
- Tenant field mapping rules run last and may override any base field.

Source config the transform needs (sales price types, properties) is read
from the local source cache through a per-tenant TenantCache.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.config import get_settings
from catalog_sync.core.exceptions import TransformationError
from catalog_sync.resolvers.dependencies import ResolvedReferences
from catalog_sync.services.source_cache import SourceCacheRepository
from catalog_sync.transformers.cache import TenantCache
from catalog_sync.transformers.field_mapping import CompiledRule, apply_rules
from catalog_sync.transformers.localization import (
    DEFAULT_LANGUAGE_PREFERENCE,
    build_text_translations,
    resolve_text,
)
from catalog_sync.transformers.references import (
    attribute_value_ids,
    category_ids,
    free_text_properties,
    manufacturer_id,
    property_selection_ids,
    property_value,
    property_value_hash,
    unit_id,
)

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY_ID = "EUR"
DEFAULT_TAX_RATE = 19.0
DEFAULT_PRICE_TYPE = "default"
RRP_PRICE_TYPE = "rrp"


@dataclass
class TransformConfig:
    """Source configuration snapshot of one tenant"""
    sales_price_types: Dict[int, str] = field(default_factory=dict)
    properties: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class TransformContext:
    tenant_id: str
    currency_id: str = DEFAULT_CURRENCY_ID
    tax_id: Optional[str] = None
    tax_rate: float = DEFAULT_TAX_RATE
    tax_mappings: Dict[str, str] = field(default_factory=dict)
    default_sales_price_id: Optional[int] = None
    rrp_sales_price_id: Optional[int] = None
    language_preference: Sequence[str] = DEFAULT_LANGUAGE_PREFERENCE
    rules: List[CompiledRule] = field(default_factory=list)
    references: ResolvedReferences = field(default_factory=ResolvedReferences)
    # source item id -> [{"mediaId", "position"}]
    media: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    # main variation id -> destination product id
    parent_ids: Dict[str, str] = field(default_factory=dict)


@dataclass
class BatchTransformResult:
    products: List[Tuple[Dict[str, Any], Dict[str, Any]]] = field(default_factory=list)
    errors: List[Tuple[Any, str]] = field(default_factory=list)


def is_main_variation(variation: Dict[str, Any]) -> bool:
    if "isMain" in variation:
        return bool(variation["isMain"])
    main_id = variation.get("mainVariationId")
    return main_id is None or main_id == variation.get("id")


def calculate_stock(variation: Dict[str, Any]) -> int:
    """Net stock summed over all warehouses."""
    total = 0
    for entry in variation.get("stock") or []:
        total += entry.get("netStock") or 0
    return int(total)


def net_from_gross(gross: float, tax_rate: float) -> float:
    return round(gross / (1 + tax_rate / 100), 4)


class ProductTransformer:
    """Stateless apart from the per-tenant config cache."""

    def __init__(self, db: AsyncSession, cache: Optional[TenantCache] = None):
        self.db = db
        self.cache = cache or TenantCache(ttl=get_settings().TRANSFORM_CACHE_TTL)

    async def get_config(self, tenant_id: str) -> TransformConfig:
        async def load() -> TransformConfig:
            repository = SourceCacheRepository(self.db, tenant_id)
            sales_prices = await repository.get_sales_prices()
            properties = await repository.get_properties()
            return TransformConfig(
                sales_price_types={sp_id: sp.type for sp_id, sp in sales_prices.items()},
                properties={
                    str(p_id): {"cast": p.cast, "selections": p.selections or []}
                    for p_id, p in properties.items()
                },
            )

        return await self.cache.get(tenant_id, load)

    def invalidate(self, tenant_id: str) -> None:
        self.cache.invalidate(tenant_id)

    # Price

    def _price_type(self, entry: Dict[str, Any], config: TransformConfig) -> Optional[str]:
        sales_price_id = entry.get("salesPriceId")
        if sales_price_id is None:
            return None
        return config.sales_price_types.get(int(sales_price_id))

    def _find_main_price(self, prices: List[Dict[str, Any]], config: TransformConfig,
                         context: TransformContext) -> Dict[str, Any]:
        if context.default_sales_price_id is not None:
            for entry in prices:
                if entry.get("salesPriceId") == context.default_sales_price_id:
                    return entry
        for entry in prices:
            if self._price_type(entry, config) == DEFAULT_PRICE_TYPE:
                return entry
        return prices[0]

    def _find_rrp(self, prices: List[Dict[str, Any]], main: Dict[str, Any], config: TransformConfig,
                  context: TransformContext) -> Optional[Dict[str, Any]]:
        for entry in prices:
            if entry is main or entry.get("salesPriceId") == main.get("salesPriceId"):
                continue
            if context.rrp_sales_price_id is not None:
                if entry.get("salesPriceId") == context.rrp_sales_price_id:
                    return entry
            elif self._price_type(entry, config) == RRP_PRICE_TYPE:
                return entry
        return None

    def transform_prices(self, variation: Dict[str, Any], config: TransformConfig,
                         context: TransformContext) -> List[Dict[str, Any]]:
        prices = [p for p in variation.get("variationSalesPrices") or [] if p.get("price") is not None]
        if not prices:
            return [{"currencyId": context.currency_id, "gross": 0, "net": 0, "linked": True, "listPrice": None}]

        main = self._find_main_price(prices, config, context)
        gross = float(main["price"])
        explicit_net = main.get("priceNet", main.get("netPrice"))
        net = float(explicit_net) if explicit_net is not None else net_from_gross(gross, context.tax_rate)

        price = {"currencyId": context.currency_id, "gross": gross, "net": net, "linked": True, "listPrice": None}

        rrp = self._find_rrp(prices, main, config, context)
        if rrp is not None and float(rrp["price"]) > gross:
            rrp_gross = float(rrp["price"])
            price["listPrice"] = {
                "gross": rrp_gross,
                "net": net_from_gross(rrp_gross, context.tax_rate),
                "linked": True,
            }
        return [price]

    # References

    @staticmethod
    def _ids(source_ids, lookup: Dict[str, str]) -> List[Dict[str, str]]:
        refs = []
        for source_id in source_ids:
            dest_id = lookup.get(str(source_id))
            if dest_id and {"id": dest_id} not in refs:
                refs.append({"id": dest_id})
        return refs

    def attribute_options(self, variation: Dict[str, Any], context: TransformContext) -> List[Dict[str, str]]:
        return self._ids(attribute_value_ids(variation), context.references.attribute_options)

    def property_options(self, variation: Dict[str, Any], config: TransformConfig,
                         context: TransformContext) -> List[Dict[str, str]]:
        keys = [str(s) for s in property_selection_ids(variation)]
        for prop in free_text_properties(variation):
            cached = config.properties.get(str(prop["propertyId"]))
            if cached is None:
                continue
            value = property_value(prop, cached)
            if value:
                keys.append(property_value_hash(prop["propertyId"], value))
        return self._ids(keys, context.references.property_options)

    def _tax_id(self, variation: Dict[str, Any], context: TransformContext) -> Optional[str]:
        vat_id = variation.get("vatId")
        if vat_id is not None and context.tax_mappings.get(str(vat_id)):
            return context.tax_mappings[str(vat_id)]
        return context.tax_id

    # Products

    async def transform_base(self, variation: Dict[str, Any], context: TransformContext) -> Dict[str, Any]:
        config = await self.get_config(context.tenant_id)
        item = variation.get("item") or {}
        texts = variation.get("variationTexts") or variation.get("texts")
        item_texts = item.get("texts") or item.get("itemTexts")

        name_text = resolve_text(texts, "name", context.language_preference, item_texts)
        description_text = resolve_text(texts, "description", context.language_preference, item_texts)

        product: Dict[str, Any] = {
            "productNumber": variation.get("number") or f"SRC-{variation.get('id')}",
            "name": name_text.get("name") or f"Product {variation.get('id')}",
            "stock": calculate_stock(variation),
            "active": variation.get("isActive", True) is not False,
            "price": self.transform_prices(variation, config, context),
        }
        description = description_text.get("description") or name_text.get("shortDescription")
        if description:
            product["description"] = description

        tax_id = self._tax_id(variation, context)
        if tax_id:
            product["taxId"] = tax_id

        categories = self._ids(category_ids(variation), context.references.categories)
        if categories:
            product["categories"] = categories

        manufacturer = context.references.manufacturers.get(str(manufacturer_id(variation)))
        if manufacturer:
            product["manufacturerId"] = manufacturer
        unit = context.references.units.get(str(unit_id(variation)))
        if unit:
            product["unitId"] = unit

        barcodes = variation.get("variationBarcodes") or []
        if barcodes and barcodes[0].get("code"):
            product["ean"] = barcodes[0]["code"]
        if variation.get("weightG"):
            product["weight"] = variation["weightG"] / 1000

        if context.rules:
            apply_rules(context.rules, variation, product, variation.get("id"))
        return product

    def _translations(self, variation: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        texts = variation.get("variationTexts") or variation.get("texts")
        if not texts:
            item = variation.get("item") or {}
            texts = item.get("texts") or item.get("itemTexts")
        return build_text_translations(texts)

    def _media(self, variation: Dict[str, Any], context: TransformContext) -> List[Dict[str, Any]]:
        return context.media.get(str(variation.get("itemId")), [])

    async def transform_as_parent(self, variation: Dict[str, Any], context: TransformContext) -> Dict[str, Any]:
        config = await self.get_config(context.tenant_id)
        product = await self.transform_base(variation, context)
        product.pop("parentId", None)
        product.pop("options", None)

        # Attribute values are informational properties on a parent
        properties = self.attribute_options(variation, context)
        for option in self.property_options(variation, config, context):
            if option not in properties:
                properties.append(option)
        if properties:
            product["properties"] = properties

        translations = self._translations(variation)
        if translations:
            product["translations"] = translations
        media = self._media(variation, context)
        if media:
            product["media"] = media
        return product

    async def transform_as_child(self, variation: Dict[str, Any], parent_id: str,
                                 context: TransformContext) -> Dict[str, Any]:
        config = await self.get_config(context.tenant_id)
        product = await self.transform_base(variation, context)
        product["parentId"] = parent_id

        options = self.attribute_options(variation, context)
        if options:
            product["options"] = options
        properties = self.property_options(variation, config, context)
        if properties:
            product["properties"] = properties

        translations = self._translations(variation)
        if translations:
            product["translations"] = translations
        media = self._media(variation, context)
        if media:
            product["media"] = media
        return product

    async def _transform(self, variation: Dict[str, Any], context: TransformContext) -> Dict[str, Any]:
        if is_main_variation(variation):
            return await self.transform_as_parent(variation, context)

        main_id = str(variation.get("mainVariationId"))
        parent_id = context.parent_ids.get(main_id)
        if not parent_id:
            raise TransformationError(
                f"Parent product of variation {variation.get('id')} (main variation {main_id}) is not synced"
            )
        return await self.transform_as_child(variation, parent_id, context)

    async def transform(self, variation: Dict[str, Any], context: TransformContext) -> Dict[str, Any]:
        """
        Raises:
            TransformationError: child variation whose parent product is unknown, or
                malformed source data (non-numeric price, weight or id)
        """
        try:
            return await self._transform(variation, context)
        except (KeyError, TypeError, ValueError) as e:
            logger.debug(f"Malformed variation {variation.get('id')}", exc_info=True)
            raise TransformationError(
                f"Malformed data in variation {variation.get('id')}: {type(e).__name__}: {str(e)}"
            ) from e

    async def transform_batch(self, variations: List[Dict[str, Any]],
                              context: TransformContext) -> BatchTransformResult:
        """Transform every variation; a failing one is logged and left out."""
        result = BatchTransformResult()
        for variation in variations:
            try:
                product = await self.transform(variation, context)
            except TransformationError as e:
                logger.warning(f"Failed to transform variation {variation.get('id')}: {str(e)}")
                result.errors.append((variation.get("id"), str(e)))
                continue
            result.products.append((variation, product))
        return result
