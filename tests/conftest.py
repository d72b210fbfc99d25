import itertools
import os
import time

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from tiger_tracker.core import database
# Explicit import to ensure metadata is populated
from tiger_tracker.db.models import Base, Observation
from tiger_tracker.ingestion.catalog import ReferenceCatalog
from tiger_tracker.schemas.catalog import DEFAULT_ASSETS, UserSpec

PRICES = {"BTC": 65000.0, "SOL": 150.25, "ETH": 3200.5}


class StaticQuoteSource:
    """Quote source double: fixed prices, optional latency, call accounting."""

    name = "static"

    def __init__(self, prices=None, delay: float = 0.0, error: Exception | None = None):
        self.prices = dict(PRICES if prices is None else prices)
        self.delay = delay
        self.error = error
        self.calls = 0
        self.active = 0
        self.max_active = 0

    def fetch_quotes(self, symbols):
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return {s: self.prices[s] for s in symbols if s in self.prices}
        finally:
            self.active -= 1


class UnreachableSession:
    """Session double whose queries fail at the socket, like a dropped database connection."""

    def __init__(self, error: OSError | None = None):
        self.error = error or ConnectionRefusedError("connection refused")

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def execute(self, *args, **kwargs):
        raise self.error


# Function-Scoped Engine on a throwaway SQLite file
@pytest.fixture(scope="function")
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tracker.db'}", echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    yield engine
    await engine.dispose()


# SQLite has no identity columns for composite keys; hand out ids like a sequence would
@pytest.fixture(scope="function", autouse=True)
def observation_ids():
    counter = itertools.count(1)

    def assign_id(mapper, connection, target):
        if target.id is None:
            target.id = next(counter)

    event.listen(Observation, "before_insert", assign_id)
    yield
    event.remove(Observation, "before_insert", assign_id)


@pytest.fixture(scope="function", autouse=True)
async def setup_test_db(db_engine):
    # Snapshot global
    original_engine = database.db_manager._engine
    original_maker = database.db_manager._session_maker

    # Patch global
    database.db_manager._engine = db_engine
    database.db_manager._session_maker = async_sessionmaker(
        bind=db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    # Restore global
    database.db_manager._engine = original_engine
    database.db_manager._session_maker = original_maker


@pytest.fixture
def catalog():
    return ReferenceCatalog(DEFAULT_ASSETS, UserSpec(name="tiger"))


@pytest.fixture
async def seeded_catalog(catalog):
    report = await catalog.seed_reference_data()
    assert report.ok
    return catalog


@pytest.fixture
def quote_source():
    return StaticQuoteSource()
