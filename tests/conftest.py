# tests/conftest.py
import pytest

from catalog_sync import models  # noqa: F401  registers every table on Base.metadata
from catalog_sync.core.config import Settings
from catalog_sync.database import Base, build_engine, build_session_factory
from catalog_sync.services.vendors.registry import VendorHandlerRegistry
from catalog_sync.services.vendors.setup import seed_vendor_definitions

from tests.mocks.mock_vendor import MockVendorHandler, ACME_SPEC, BUDGET_SPEC


@pytest.fixture
def settings(tmp_path):
    """Provide test settings (cheap scrypt cost, small import batches)"""
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'catalog_sync_test.db'}",
        CREDENTIAL_ROOT_SECRET="test-root-secret",
        CREDENTIAL_KDF_SALT="test-salt",
        CREDENTIAL_KDF_N=2 ** 10,
        SYNC_IMPORT_BATCH_SIZE=25,
        SYNC_RETRY_MAX_ATTEMPTS=3,
        SYNC_RETRY_DELAYS="5,10",
        SYNC_STALE_AFTER_HOURS=25,
        SYNC_SCHEDULE_ENABLED=False,
    )


@pytest.fixture(scope="function")
async def test_engine(settings):
    """Create a fresh SQLite database file per test function."""
    engine = build_engine(settings.DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest.fixture
async def db_session(session_factory):
    """Provide a database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def acme_handler():
    return MockVendorHandler(ACME_SPEC)


@pytest.fixture
def budget_handler():
    return MockVendorHandler(BUDGET_SPEC)


@pytest.fixture
def mock_registry(acme_handler, budget_handler):
    """Registry holding the two in-memory test vendors"""
    registry = VendorHandlerRegistry()
    registry.register(acme_handler.slug, acme_handler)
    registry.register(budget_handler.slug, budget_handler)
    return registry


@pytest.fixture
async def seeded_registry(mock_registry, db_session):
    """Test vendors registered and present as VendorDefinition rows"""
    await seed_vendor_definitions(db_session, mock_registry)
    return mock_registry
