import pytest

from catalog_sync.core.exceptions import TransformationError
from catalog_sync.resolvers.dependencies import ResolvedReferences
from catalog_sync.transformers.cache import TenantCache
from catalog_sync.transformers.field_mapping import compile_rules
from catalog_sync.transformers.product_transformer import (
    ProductTransformer,
    TransformConfig,
    TransformContext,
    calculate_stock,
    is_main_variation,
    net_from_gross,
)
from catalog_sync.transformers.references import property_value_hash
from tests.fixtures.catalog_fixtures import child_variation, main_variation

TENANT_ID = "tenant-1"


@pytest.fixture
def transformer():
    """Transformer whose source config is preloaded, so no database is needed"""
    cache = TenantCache(ttl=300)
    cache.put(TENANT_ID, TransformConfig(
        sales_price_types={1: "default", 2: "rrp", 3: "special"},
        properties={
            "7": {"cast": "shortText", "selections": []},
            "8": {"cast": "selection", "selections": [{"id": 80, "names": {"de": "Erle"}}]},
        },
    ))
    return ProductTransformer(db=None, cache=cache)


@pytest.fixture
def context():
    return TransformContext(
        tenant_id=TENANT_ID,
        currency_id="currency-eur",
        tax_id="tax-19",
        tax_rate=19.0,
        references=ResolvedReferences(
            categories={"3": "cat-3"},
            attribute_options={"100": "opt-red", "101": "opt-blue"},
            property_options={"80": "opt-alder", property_value_hash(7, "Mahagoni"): "opt-mahogany"},
            manufacturers={"20": "man-fender"},
            units={"1": "unit-piece"},
        ),
    )


"""
1. Helper Tests
"""

def test_is_main_variation():
    assert is_main_variation({"id": 1, "isMain": True})
    assert not is_main_variation({"id": 2, "isMain": False, "mainVariationId": 1})
    assert is_main_variation({"id": 3, "mainVariationId": None})
    assert is_main_variation({"id": 4, "mainVariationId": 4})
    assert not is_main_variation({"id": 5, "mainVariationId": 4})


def test_stock_is_summed_over_warehouses():
    assert calculate_stock({"stock": [{"netStock": 3}, {"netStock": 2}, {"netStock": None}]}) == 5
    assert calculate_stock({}) == 0


def test_net_from_gross():
    assert net_from_gross(119.0, 19.0) == 100.0


"""
2. Price Tests
"""

def test_price_without_configured_default_uses_default_type(transformer, context):
    variation = {"variationSalesPrices": [{"salesPriceId": 3, "price": 99.0}, {"salesPriceId": 1, "price": 119.0}]}

    price = transformer.transform_prices(variation, transformer.cache.peek(TENANT_ID), context)[0]

    assert price["gross"] == 119.0
    assert price["net"] == 100.0
    assert price["currencyId"] == "currency-eur"


def test_price_falls_back_to_first_entry(transformer, context):
    variation = {"variationSalesPrices": [{"salesPriceId": 3, "price": 50.0}, {"salesPriceId": 4, "price": 60.0}]}

    price = transformer.transform_prices(variation, transformer.cache.peek(TENANT_ID), context)[0]

    assert price["gross"] == 50.0


def test_configured_default_price_wins(transformer, context):
    context.default_sales_price_id = 3
    variation = {"variationSalesPrices": [{"salesPriceId": 1, "price": 119.0}, {"salesPriceId": 3, "price": 89.0}]}

    price = transformer.transform_prices(variation, transformer.cache.peek(TENANT_ID), context)[0]

    assert price["gross"] == 89.0


def test_explicit_net_price_is_kept(transformer, context):
    variation = {"variationSalesPrices": [{"salesPriceId": 1, "price": 119.0, "priceNet": 99.5}]}

    price = transformer.transform_prices(variation, transformer.cache.peek(TENANT_ID), context)[0]

    assert price["net"] == 99.5


def test_rrp_becomes_list_price_only_when_higher(transformer, context):
    config = transformer.cache.peek(TENANT_ID)
    higher = {"variationSalesPrices": [{"salesPriceId": 1, "price": 119.0}, {"salesPriceId": 2, "price": 149.0}]}
    lower = {"variationSalesPrices": [{"salesPriceId": 1, "price": 119.0}, {"salesPriceId": 2, "price": 99.0}]}

    with_list_price = transformer.transform_prices(higher, config, context)[0]
    without = transformer.transform_prices(lower, config, context)[0]

    assert with_list_price["listPrice"]["gross"] == 149.0
    assert with_list_price["listPrice"]["net"] == net_from_gross(149.0, 19.0)
    assert without["listPrice"] is None


def test_missing_prices_give_zero_price(transformer, context):
    price = transformer.transform_prices({"variationSalesPrices": []}, transformer.cache.peek(TENANT_ID), context)

    assert price == [{"currencyId": "currency-eur", "gross": 0, "net": 0, "linked": True, "listPrice": None}]


"""
3. Product Tests
"""

@pytest.mark.asyncio
async def test_main_variation_becomes_parent_product(transformer, context):
    context.media = {"1000": [{"mediaId": "media-1", "position": 0}]}

    product = await transformer.transform(main_variation(), context)

    assert product["productNumber"] == "GTR-1"
    assert product["name"] == "E-Gitarre"
    assert product["description"] == "Eine E-Gitarre"
    assert product["stock"] == 5
    assert product["taxId"] == "tax-19"
    assert product["categories"] == [{"id": "cat-3"}]
    assert product["manufacturerId"] == "man-fender"
    assert product["unitId"] == "unit-piece"
    assert product["ean"] == "4006381333931"
    assert product["weight"] == 3.5
    assert "parentId" not in product
    assert "options" not in product
    assert product["properties"] == [{"id": "opt-red"}, {"id": "opt-alder"}, {"id": "opt-mahogany"}]
    assert set(product["translations"].keys()) == {"de-DE", "en-GB"}
    assert product["media"] == [{"mediaId": "media-1", "position": 0}]


@pytest.mark.asyncio
async def test_child_variation_references_parent(transformer, context):
    context.parent_ids = {"1": "product-parent"}

    product = await transformer.transform(child_variation(), context)

    assert product["parentId"] == "product-parent"
    assert product["options"] == [{"id": "opt-blue"}]
    assert product["properties"] == [{"id": "opt-alder"}, {"id": "opt-mahogany"}]
    assert product["stock"] == 1


@pytest.mark.asyncio
async def test_child_without_synced_parent_fails(transformer, context):
    with pytest.raises(TransformationError):
        await transformer.transform(child_variation(), context)


@pytest.mark.asyncio
async def test_unresolved_references_are_left_out(transformer, context):
    context.references = ResolvedReferences()

    product = await transformer.transform(main_variation(), context)

    assert "categories" not in product
    assert "manufacturerId" not in product
    assert "unitId" not in product
    assert "properties" not in product


@pytest.mark.asyncio
async def test_fallback_number_and_name(transformer, context):
    variation = main_variation(number=None, variationTexts=[], item={"id": 1000})

    product = await transformer.transform(variation, context)

    assert product["productNumber"] == "SRC-1"
    assert product["name"] == "Product 1"


@pytest.mark.asyncio
async def test_tax_mapping_by_vat_id(transformer, context):
    context.tax_mappings = {"1": "tax-7"}

    product = await transformer.transform(main_variation(vatId=1), context)

    assert product["taxId"] == "tax-7"


@pytest.mark.asyncio
async def test_field_rules_run_last(transformer, context):
    context.rules = compile_rules([
        {"sourcePath": "number", "destPath": "name", "position": 1},
        {"sourcePath": "weightG", "destPath": "customFields.weightKg", "transform": "divide", "divisor": 1000},
    ])

    product = await transformer.transform(main_variation(), context)

    assert product["name"] == "GTR-1"
    assert product["customFields"]["weightKg"] == 3.5


@pytest.mark.asyncio
async def test_transform_batch_isolates_failures(transformer, context):
    result = await transformer.transform_batch([main_variation(), child_variation()], context)

    assert [v["id"] for v, _ in result.products] == [1]
    assert result.errors[0][0] == 2


@pytest.mark.asyncio
async def test_malformed_source_data_raises_transformation_error(transformer, context):
    with pytest.raises(TransformationError, match="Malformed data in variation 1"):
        await transformer.transform(main_variation(weightG="3,5 kg"), context)

    with pytest.raises(TransformationError, match="ValueError"):
        await transformer.transform(
            main_variation(variationSalesPrices=[{"salesPriceId": 1, "price": "n/a"}]), context,
        )
