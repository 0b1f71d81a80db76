import pytest

from catalog_sync.core.enums import MappingKind, SyncType
from catalog_sync.processors.stock_processor import StockSyncProcessor, aggregate_stock
from catalog_sync.services.mapping_store import MappingRecord, MappingStore
from catalog_sync.services.sync_state_service import SyncStateService
from tests.fixtures.catalog_fixtures import stock_rows
from tests.mocks.mock_source import make_source


async def map_products(db, tenant_id, *pairs):
    store = MappingStore(db, tenant_id, MappingKind.PRODUCT)
    await store.upsert_batch([
        MappingRecord(variation_id, product_id, extra={"dest_product_number": f"SKU-{variation_id}"})
        for variation_id, product_id in pairs
    ])
    return store


def test_aggregate_stock_sums_warehouses():
    assert aggregate_stock(stock_rows()) == {"1": 7, "2": 0, "99": 12}


def test_aggregate_stock_ignores_rows_without_variation():
    rows = [{"variationId": None, "stockNet": 5}, {"variationId": 3, "netStock": 2.0}, {"variationId": 3}]

    assert aggregate_stock(rows) == {"3": 2}


@pytest.mark.asyncio
async def test_only_mapped_variations_are_updated(db_session, tenant, mock_destination):
    mock_destination.products["product-a"] = {"productNumber": "SKU-1"}
    await map_products(db_session, tenant.id, (1, "product-a"))

    result = await StockSyncProcessor(db_session, tenant.id, make_source(), mock_destination).run()

    assert mock_destination.stock_levels == {"product-a": 7}
    assert result.items_updated == 1
    assert result.details == {"variations": 3, "unmapped": 2}
    assert await SyncStateService(db_session, tenant.id).get_last_successful_sync(SyncType.STOCK)


@pytest.mark.asyncio
async def test_orphaned_mappings_are_skipped(db_session, tenant, mock_destination):
    mock_destination.products["product-a"] = {"productNumber": "SKU-1"}
    mock_destination.products["product-b"] = {"productNumber": "SKU-2"}
    store = await map_products(db_session, tenant.id, (1, "product-a"), (2, "product-b"))
    await store.mark_orphaned([2])

    await StockSyncProcessor(db_session, tenant.id, make_source(), mock_destination).run()

    assert set(mock_destination.stock_levels.keys()) == {"product-a"}


@pytest.mark.asyncio
async def test_rejected_updates_are_counted(db_session, tenant, mock_destination):
    mock_destination.products["product-a"] = {"productNumber": "SKU-1"}
    await map_products(db_session, tenant.id, (1, "product-a"), (2, "product-gone"))

    result = await StockSyncProcessor(db_session, tenant.id, make_source(), mock_destination).run()

    assert result.items_updated == 1
    assert result.items_failed == 1
    assert "SKU-2" in result.errors[0]


@pytest.mark.asyncio
async def test_updates_are_sent_in_batches(db_session, tenant, mock_destination):
    mock_destination.products["product-a"] = {"productNumber": "SKU-1"}
    mock_destination.products["product-b"] = {"productNumber": "SKU-2"}
    await map_products(db_session, tenant.id, (1, "product-a"), (2, "product-b"))

    await StockSyncProcessor(
        db_session, tenant.id, make_source(), mock_destination, options={"batchSize": 1},
    ).run()

    batches = mock_destination.calls_to("batch_update_stock")
    assert [len(b) for b in batches] == [1, 1]
