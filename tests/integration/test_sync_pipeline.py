"""
Config, product and stock sync run back to back through the worker, against
the persistence-backed destination. Only the source ERP is mocked.
"""
import pytest
from sqlalchemy import select

from catalog_sync.core.enums import MappingKind, SyncStatus, SyncType
from catalog_sync.models.standin import StandInEntity, StandInProduct
from catalog_sync.models.sync_job import SyncJob
from catalog_sync.services.job_queue import enqueue_job
from catalog_sync.services.mapping_store import MappingStore
from catalog_sync.worker import WorkerPool
from tests.fixtures.catalog_fixtures import child_variation, main_variation
from tests.mocks.mock_source import make_source


@pytest.fixture
def source(mocker):
    source = make_source(variations=[child_variation(), main_variation()])
    mocker.patch("catalog_sync.worker.SourceClient.from_credentials", return_value=source)
    return source


async def run_job(session_factory, tenant_id, sync_type):
    async with session_factory() as session:
        job = await enqueue_job(session, tenant_id=tenant_id, sync_type=sync_type)
        await session.commit()
        job_id = job.id

    pool = WorkerPool(concurrency=1, poll_interval=0, session_factory=session_factory)
    assert await pool.run_once()

    async with session_factory() as session:
        return await session.get(SyncJob, job_id)


async def products_by_number(session_factory, tenant_id):
    async with session_factory() as session:
        result = await session.execute(select(StandInProduct).where(StandInProduct.tenant_id == tenant_id))
        return {p.product_number: p for p in result.scalars().all()}


@pytest.mark.asyncio
async def test_full_pipeline(session_factory, tenant, source):
    config_job = await run_job(session_factory, tenant.id, SyncType.CONFIG)
    assert config_job.status == SyncStatus.COMPLETED.value

    product_job = await run_job(session_factory, tenant.id, SyncType.FULL_PRODUCT)
    assert product_job.status == SyncStatus.COMPLETED.value
    assert product_job.items_created == 2
    assert product_job.items_failed == 0
    # config is fresh, so the product job did not fetch it again
    source.get_all_categories.assert_awaited_once()

    products = await products_by_number(session_factory, tenant.id)
    parent, child = products["GTR-1"], products["GTR-1-BLUE"]
    assert child.parent_id == parent.id
    assert parent.stock == 5
    assert len(parent.payload["media"]) == 2
    assert len(parent.payload["categories"]) == 1

    async with session_factory() as session:
        entities = (await session.execute(
            select(StandInEntity).where(StandInEntity.tenant_id == tenant.id)
        )).scalars().all()
        by_type = {}
        for entity in entities:
            by_type.setdefault(entity.entity_type, []).append(entity)
        assert len(by_type["category"]) == 3
        assert len(by_type["manufacturer"]) == 1
        assert len(by_type["media"]) == 2
        assert {g.name for g in by_type["property_group"]} == {"Farbe", "Material", "Holzart"}

        product_mappings = MappingStore(session, tenant.id, MappingKind.PRODUCT)
        assert await product_mappings.count() == 2

    stock_job = await run_job(session_factory, tenant.id, SyncType.STOCK)
    assert stock_job.status == SyncStatus.COMPLETED.value
    assert stock_job.items_updated == 2

    products = await products_by_number(session_factory, tenant.id)
    assert products["GTR-1"].stock == 7
    assert products["GTR-1-BLUE"].stock == 0


@pytest.mark.asyncio
async def test_second_product_run_reuses_everything(session_factory, tenant, source):
    await run_job(session_factory, tenant.id, SyncType.CONFIG)
    await run_job(session_factory, tenant.id, SyncType.FULL_PRODUCT)

    async with session_factory() as session:
        entity_count = len((await session.execute(select(StandInEntity.id))).scalars().all())

    delta_job = await run_job(session_factory, tenant.id, SyncType.PRODUCT_DELTA)

    assert delta_job.status == SyncStatus.COMPLETED.value
    assert delta_job.items_updated == 2
    assert delta_job.items_created == 0
    source.get_variations_delta.assert_awaited_once()
    async with session_factory() as session:
        assert len((await session.execute(select(StandInEntity.id))).scalars().all()) == entity_count
