"""
Pytest fixtures for test database, services, client and seed data.

Each test gets a fresh database: a throwaway SQLite file by default, or the
PostgreSQL database named by TEST_DATABASE_URL. Tables are created up front
and dropped afterwards for isolation. A frozen clock drives every
date-dependent rule so scenarios can use fixed calendar dates.
"""

import os
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from pet_boarding.api.deps import get_controller
from pet_boarding.core.config import Settings
from pet_boarding.db.base import Base
from pet_boarding.db.session import Database
from pet_boarding.main import app
from pet_boarding.models import Pet, User
from pet_boarding.schemas.order import CreateOrderInput
from pet_boarding.services import Services, build_services

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")

# Scenarios book stays in June 2024; "today" is a month earlier
BOOKING_DAY = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(BOOKING_DAY)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        DEFAULT_MAX_SLOTS=5,
        SCHEDULER_ENABLED=False,
        PENDING_TIMEOUT_MINUTES=60,
        STALE_SWEEP_INTERVAL_SECONDS=0.01,
        START_SWEEP_INTERVAL_SECONDS=0.01,
        COMPLETE_SWEEP_INTERVAL_SECONDS=0.01,
    )


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    """Create tables, yield the connected handle, then drop tables."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'boarding_test.db'}"
    db = Database(url, ready_timeout=5)
    await db.connect(create_tables=True)

    yield db

    async with db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await db.dispose()


@pytest_asyncio.fixture
async def services(database: Database, settings: Settings, clock: FrozenClock) -> AsyncGenerator[Services, None]:
    built = build_services(database, settings, clock=clock)
    yield built
    await built.scheduler.stop()


@pytest.fixture
def controller(services: Services):
    return services.controller


@pytest.fixture
def scheduler(services: Services):
    return services.scheduler


@pytest_asyncio.fixture
async def client(services: Services) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the test services instead of the lifespan-built ones."""
    app.dependency_overrides[get_controller] = lambda: services.controller

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def people(database: Database) -> SimpleNamespace:
    """An owner with a dog and a cat, a host, and an unrelated user."""
    async with database.transaction() as session:
        owner = User(username="alice", email="alice@example.com")
        host = User(username="harbor_host", email="host@example.com")
        stranger = User(username="mallory", email="mallory@example.com")
        session.add_all([owner, host, stranger])
        await session.flush()

        dog = Pet(name="Biscuit", species="dog", owner_id=owner.id)
        cat = Pet(name="Miso", species="cat", owner_id=owner.id)
        rabbit = Pet(name="Clover", species="rabbit", owner_id=stranger.id)
        session.add_all([dog, cat, rabbit])
        await session.flush()

    return SimpleNamespace(owner=owner, host=host, stranger=stranger, dog=dog, cat=cat, rabbit=rabbit)


@pytest.fixture
def make_order(people: SimpleNamespace):
    """Build a CreateOrderInput for the owner's dog unless told otherwise."""

    def _make(start: datetime, end: datetime, pet=None, requester=None, host=None, **extra) -> CreateOrderInput:
        return CreateOrderInput(
            requester_user_id=(requester or people.owner).id,
            pet_id=(pet or people.dog).id,
            host_user_id=(host or people.host).id,
            start_date=start,
            end_date=end,
            **extra,
        )

    return _make


@pytest.fixture
def booked(services: Services):
    """Read booked_slots for each given ISO date."""

    async def _booked(*days: str) -> list[int]:
        async with services.db.transaction() as session:
            rows = await services.ledger.get_many(session, [date.fromisoformat(d) for d in days])
        return [row.booked_slots for row in rows]

    return _booked
