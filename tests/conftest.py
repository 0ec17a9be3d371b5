"""
Shared test fixtures.

Uses a file-backed SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  Every connection opens its transaction with
``BEGIN IMMEDIATE`` so concurrent writers serialise on the database lock,
which is how the conditional UPDATEs behave under PostgreSQL row locks.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from mobility.domain.pricing import PricingEngine
from mobility.domain.spatial import h3_cell
from mobility.infrastructure.database import Base, make_session_factory
from mobility.infrastructure.models import ProviderModel
from mobility.services.directory import ProviderDirectory
from mobility.services.lifecycle import RequestLifecycleController

GST = timezone(timedelta(hours=4))

# 12:00 local (UTC+4) on a Monday -- outside both peak windows
OFF_PEAK = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock that advances ``step`` on every reading."""

    def __init__(self, start: datetime = OFF_PEAK, step: timedelta = timedelta(minutes=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + self.step
        return current


class RecordingPublisher:
    def __init__(self):
        self.events = []

    async def publish(self, event) -> None:
        self.events.append(event)


def make_test_engine(path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}", poolclass=NullPool)

    @event.listens_for(engine.sync_engine, "connect")
    def _autocommit_driver(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables in a fresh database file, yield a session factory."""
    engine = make_test_engine(tmp_path / "mobility.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield make_session_factory(engine)

    await engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def events() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def controller(session_factory, clock, events) -> RequestLifecycleController:
    return RequestLifecycleController(
        session_factory,
        PricingEngine(),
        ProviderDirectory(session_factory),
        clock=clock,
        events=events,
        local_tz=GST,
    )


@pytest.fixture
def add_providers(session_factory):
    """Insert provider rows; ``h3_cell`` is derived from the coordinates."""

    async def _add(*providers: dict) -> None:
        async with session_factory() as session:
            async with session.begin():
                for p in providers:
                    row = {
                        "rating": 5.0,
                        "capacity": 4,
                        "is_available": True,
                        "attributes": {},
                        **p,
                    }
                    if row.get("latitude") is not None and "h3_cell" not in row:
                        row["h3_cell"] = h3_cell(row["latitude"], row["longitude"], 7)
                    session.add(ProviderModel(**row))

    return _add
