# tests/conftest.py
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import catalog_sync.models  # noqa: F401  registers every table on Base.metadata
from catalog_sync.core.config import clear_settings_cache
from catalog_sync.core.enums import SyncType
from catalog_sync.database import Base
from catalog_sync.integrations.standin import StandInDestinationClient
from catalog_sync.services.source_cache import SourceCacheRepository
from catalog_sync.services.sync_state_service import SyncStateService
from tests.fixtures.catalog_fixtures import source_config
from tests.fixtures.tenant_fixtures import make_tenant
from tests.mocks.mock_destination import MockDestination

TEST_ENCRYPTION_KEY = "test-encryption-key"


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Environment every test runs with; settings are re-read per test"""
    monkeypatch.setenv("ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)
    monkeypatch.setenv("USE_STANDIN_DESTINATION", "true")
    monkeypatch.setenv("SOURCE_PAGE_DELAY_MS", "0")
    monkeypatch.setenv("SOURCE_RETRY_DELAY_MS", "0")
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite so separate sessions see each other's commits"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'catalog_sync.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Provide a database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def tenant(db_session):
    """An ACTIVE tenant with encrypted credentials"""
    tenant = make_tenant()
    db_session.add(tenant)
    await db_session.commit()
    return tenant


@pytest.fixture
def mock_destination():
    return MockDestination()


@pytest.fixture
def standin_destination(db_session, tenant):
    return StandInDestinationClient(db_session, tenant.id)


@pytest.fixture
async def cached_config(db_session, tenant):
    """Source cache filled with the sample configuration, marked fresh"""
    repository = SourceCacheRepository(db_session, tenant.id)
    for kind, records in source_config().items():
        await repository.upsert(kind, records)
    await SyncStateService(db_session, tenant.id).mark_success(SyncType.CONFIG)
    return repository
