# tests/conftest.py
import os

# Must be set before app.database is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENCRYPTION_KEY", "0123456789abcdef" * 4)
os.environ.setdefault("SHOPIFY_STAGING_STORE_DOMAIN", "staging-store.myshopify.com")
os.environ.setdefault("SHOPIFY_STAGING_ACCESS_TOKEN", "shpat_staging")
os.environ.setdefault("SYNC_SCHEDULER_ENABLED", "false")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401
from app.database import Base
from app.services.connections import Connection, ConnectionService
from app.services.gid_translator import GidTranslator
from app.services.resource_mapping import ResourceMappingService
from app.services.sync.base import SyncContext
from tests.fakes import FakeShopifyClient

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture(scope="function")
async def test_engine():
    """Create and configure the test database engine (function-scoped)."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
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
async def connection_row(db_session):
    """An active production connection with an encrypted token"""
    return await ConnectionService(db_session).create_connection(
        shop="staging-store.myshopify.com",
        name="Production",
        store_domain="prod-store.myshopify.com",
        access_token="shpat_production",
    )


@pytest.fixture
def connection(connection_row):
    return Connection.from_model(connection_row)


@pytest.fixture
def mapping_service(db_session):
    return ResourceMappingService(db_session)


@pytest.fixture
def production_client():
    return FakeShopifyClient("prod-store.myshopify.com")


@pytest.fixture
def staging_client():
    return FakeShopifyClient("staging-store.myshopify.com")


@pytest.fixture
def sync_context(connection, production_client, staging_client, mapping_service):
    """SyncContext wired to scripted production/staging clients and the test database"""
    return SyncContext(
        connection=connection,
        production=production_client,
        staging=staging_client,
        mappings=mapping_service,
        translator=GidTranslator(mapping_service),
    )
