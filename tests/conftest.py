"""Shared pytest fixtures for all test suites."""

import os
import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import date, datetime, timezone
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from backend.app.adapters.pricing import FixturePricingClient
from backend.app.adapters.share_image import NullShareImageClient
from backend.app.db.inmemory import InMemoryReactionStore, InMemoryTripStore
from backend.app.db.models import Base
from backend.app.feed.inmemory import InMemoryChangeFeed
from backend.app.llm.client import DeterministicItineraryClient
from backend.app.models.common import Airport, ItineraryStatus
from backend.app.models.itinerary import Activity, DayPlan, Itinerary
from backend.app.models.trip import Traveler, TravelerCost, Trip
from backend.app.orchestration.generation import ItineraryGenerationService
from backend.app.orchestration.trip_commands import TripCommands
from backend.app.sync.background import drain

ALICE_ID = uuid.UUID("00000000-0000-0000-0000-0000000000a1")
BOB_ID = uuid.UUID("00000000-0000-0000-0000-0000000000b2")
CAROL_ID = uuid.UUID("00000000-0000-0000-0000-0000000000c3")

DEPARTURE = date(2026, 11, 1)
RETURN = date(2026, 11, 2)


def make_roster() -> list[Traveler]:
    return [
        Traveler(
            name="Alice",
            origin=Airport(iata="JFK", city="New York", country="USA"),
            is_organizer=True,
            user_id=ALICE_ID,
        ),
        Traveler(name="Bob", origin=Airport(iata="LAX", city="Los Angeles", country="USA")),
        Traveler(name="Carol", origin=Airport(iata="ORD", city="Chicago", country="USA")),
    ]


def make_itinerary() -> Itinerary:
    """Two days; day 1 holds the 40 and 60 paid activities plus a free one."""
    return Itinerary(
        overview="A weekend in Lisbon",
        highlights=["Tram 28", "Pasteis"],
        days=[
            DayPlan(
                day_number=1,
                date=DEPARTURE,
                theme="Arrival",
                activities=[
                    Activity(time="9:00 AM", title="Food tour", type="restaurant", estimated_cost=40),
                    Activity(time="1:00 PM", title="Museum", type="attraction", estimated_cost=60),
                    Activity(time="5:00 PM", title="River walk", type="free_time"),
                ],
            ),
            DayPlan(
                day_number=2,
                date=RETURN,
                theme="Old town",
                activities=[
                    Activity(time="10:00 AM", title="Castle", type="attraction", estimated_cost=15),
                    Activity(time="2:00 PM", title="Viewpoint", type="attraction", estimated_cost=0),
                ],
            ),
        ],
    )


def make_trip(**overrides: Any) -> Trip:
    """Three travelers, 4500 total, 1500 per person, unclaimed and pending."""
    now = datetime.now(timezone.utc)
    fields: dict[str, Any] = {
        "id": uuid.uuid4(),
        "organizer_name": "Alice",
        "destination_city": "Lisbon",
        "destination_country": "Portugal",
        "destination_iata": "LIS",
        "departure_date": DEPARTURE,
        "return_date": RETURN,
        "travelers": make_roster(),
        "cost_breakdown": [
            TravelerCost(
                traveler_name=name,
                origin=origin,
                destination="LIS",
                flight_cost=1200,
                accommodation_share=300,
                subtotal=1500,
            )
            for name, origin in (("Alice", "JFK"), ("Bob", "LAX"), ("Carol", "ORD"))
        ],
        "trip_total": 4500,
        "total_per_person": 1500,
        "share_code": "ABC234",
        "created_at": now,
        "updated_at": now,
    }
    fields.update(overrides)
    return Trip(**fields)


def make_ready_trip(**overrides: Any) -> Trip:
    """Claimed by Alice, everyone paid, itinerary complete."""
    now = datetime.now(timezone.utc)
    fields: dict[str, Any] = {
        "organizer_id": ALICE_ID,
        "itinerary": make_itinerary(),
        "itinerary_status": ItineraryStatus.complete,
        "paid_travelers": ["Alice", "Bob", "Carol"],
        "link_created_at": now,
        "link_expires_at": now.replace(year=now.year + 1),
    }
    fields.update(overrides)
    return make_trip(**fields)


@pytest.fixture
def alice_id() -> uuid.UUID:
    return ALICE_ID


@pytest.fixture
def bob_id() -> uuid.UUID:
    return BOB_ID


@pytest.fixture
def carol_id() -> uuid.UUID:
    return CAROL_ID


@pytest.fixture
def trip_factory() -> Callable[..., Trip]:
    return make_trip


@pytest.fixture
def ready_trip_factory() -> Callable[..., Trip]:
    return make_ready_trip


@pytest.fixture
def feed() -> InMemoryChangeFeed:
    return InMemoryChangeFeed()


@pytest.fixture
def trip_store(feed: InMemoryChangeFeed) -> InMemoryTripStore:
    return InMemoryTripStore(feed)


@pytest.fixture
def reaction_store(feed: InMemoryChangeFeed) -> InMemoryReactionStore:
    return InMemoryReactionStore(feed)


@pytest.fixture
def pricing() -> FixturePricingClient:
    return FixturePricingClient()


@pytest.fixture
def llm() -> DeterministicItineraryClient:
    return DeterministicItineraryClient()


@pytest.fixture
def generation(
    trip_store: InMemoryTripStore, llm: DeterministicItineraryClient
) -> ItineraryGenerationService:
    return ItineraryGenerationService(trip_store, llm)


@pytest_asyncio.fixture
async def commands(
    trip_store: InMemoryTripStore,
    reaction_store: InMemoryReactionStore,
    pricing: FixturePricingClient,
    llm: DeterministicItineraryClient,
    generation: ItineraryGenerationService,
) -> AsyncGenerator[TripCommands, None]:
    """Trip commands over in-memory stores; detached work is drained on teardown."""
    yield TripCommands(
        trip_store,
        reaction_store,
        pricing,
        llm,
        generation,
        NullShareImageClient(),
    )
    await drain(timeout=5)


@pytest_asyncio.fixture
async def sqlite_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with the schema created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def sqlite_session_factory(sqlite_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(sqlite_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def postgres_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine for PostgreSQL integration tests.

    Requires TEST_POSTGRES_URL to point at a real PostgreSQL database.
    Tests using this fixture should be marked with @pytest.mark.postgres.
    """
    database_url = os.getenv("TEST_POSTGRES_URL")
    if not database_url:
        pytest.skip("TEST_POSTGRES_URL not set - skipping postgres test")

    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine = create_async_engine(database_url, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()
