import pytest

from catalog_sync.integrations.base import StockUpdate
from catalog_sync.integrations.factory import create_destination_client
from catalog_sync.integrations.remote import RemoteDestinationClient
from catalog_sync.integrations.standin import StandInDestinationClient


@pytest.mark.asyncio
async def test_create_and_find_product(standin_destination):
    created = await standin_destination.create_product({
        "productNumber": "GTR-1", "name": "E-Gitarre", "stock": 5, "ean": "4006381333931",
    })

    found = await standin_destination.get_product_by_sku("GTR-1")

    assert created.success
    assert found["id"] == created.id
    assert found["stock"] == 5
    assert found["ean"] == "4006381333931"


@pytest.mark.asyncio
async def test_duplicate_product_number_is_rejected(standin_destination):
    await standin_destination.create_product({"productNumber": "GTR-1"})

    result = await standin_destination.create_product({"productNumber": "GTR-1"})

    assert not result.success
    assert "already exists" in result.error


@pytest.mark.asyncio
async def test_update_merges_payload(standin_destination):
    created = await standin_destination.create_product({"productNumber": "GTR-1", "ean": "1", "weight": 3.5})

    await standin_destination.update_product(created.id, {"ean": "2", "name": "Neu"})

    found = await standin_destination.get_product_by_sku("GTR-1")
    assert found["ean"] == "2"
    assert found["weight"] == 3.5
    assert found["name"] == "Neu"


@pytest.mark.asyncio
async def test_update_by_unknown_sku_fails(standin_destination):
    result = await standin_destination.update_product_by_sku("NOPE", {"name": "x"})

    assert not result.success


@pytest.mark.asyncio
async def test_batch_stock_reports_unknown_products(standin_destination):
    created = await standin_destination.create_product({"productNumber": "GTR-1"})

    results = await standin_destination.batch_update_stock([
        StockUpdate(id=created.id, stock=9),
        StockUpdate(id="missing", stock=1, product_number="GTR-X"),
    ])

    assert [r.success for r in results] == [True, False]
    assert results[1].product_number == "GTR-X"
    assert (await standin_destination.get_product_by_sku("GTR-1"))["stock"] == 9


@pytest.mark.asyncio
async def test_option_needs_group_and_folders_are_reused(standin_destination):
    assert not (await standin_destination.create_property_option({"name": "Rot"})).success

    first = await standin_destination.get_or_create_media_folder("Product Media")
    second = await standin_destination.get_or_create_media_folder("Product Media")

    assert first.id == second.id


@pytest.mark.asyncio
async def test_factory_picks_client(db_session, tenant):
    credentials = {"clientId": "client", "clientSecret": "secret"}

    standin = create_destination_client(db_session, tenant.id, "https://shop.example.com", credentials)
    remote = create_destination_client(db_session, tenant.id, "https://shop.example.com", credentials,
                                       use_standin=False)
    no_credentials = create_destination_client(db_session, tenant.id, "https://shop.example.com", None,
                                               use_standin=False)

    assert isinstance(standin, StandInDestinationClient)
    assert isinstance(remote, RemoteDestinationClient)
    assert remote.client_id == "client"
    assert isinstance(no_credentials, StandInDestinationClient)
