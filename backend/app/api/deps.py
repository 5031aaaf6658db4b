"""Service wiring for the API process."""

import logging
from dataclasses import dataclass
from datetime import timedelta

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine

from backend.app.adapters.pricing import PricingClient, get_pricing_client
from backend.app.adapters.share_image import ShareImageClient, get_share_image_client
from backend.app.config import Settings
from backend.app.db.engine import create_async_engine_from_settings, create_session_factory
from backend.app.db.inmemory import InMemoryReactionStore, InMemoryTripStore
from backend.app.db.repositories import ReactionStore, TripStore
from backend.app.db.sql_repositories import SqlReactionStore, SqlTripStore
from backend.app.feed.base import ChangeFeed
from backend.app.feed.inmemory import InMemoryChangeFeed
from backend.app.feed.redis_feed import RedisChangeFeed
from backend.app.llm.client import ItineraryLLMClient, get_itinerary_client
from backend.app.orchestration.generation import ItineraryGenerationService
from backend.app.orchestration.trip_commands import TripCommands
from backend.app.sync.reactions import ReactionService
from backend.app.utils.metrics import PrometheusSyncMetrics

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a request handler needs, built once per process."""

    settings: Settings
    feed: ChangeFeed
    trips: TripStore
    reactions: ReactionStore
    commands: TripCommands
    generation: ItineraryGenerationService
    reaction_service: ReactionService
    engine: AsyncEngine | None = None

    async def close(self) -> None:
        """Release the feed and database connections."""
        await self.feed.close()
        if self.engine is not None:
            await self.engine.dispose()


def build_services(
    settings: Settings,
    *,
    feed: ChangeFeed | None = None,
    trips: TripStore | None = None,
    reactions: ReactionStore | None = None,
    pricing: PricingClient | None = None,
    llm: ItineraryLLMClient | None = None,
    share_image: ShareImageClient | None = None,
) -> Services:
    """Build services from settings; explicit arguments override the defaults.

    Without DATABASE_URL the stores are in-memory; without REDIS_URL the
    change feed is in-process.
    """
    metrics = PrometheusSyncMetrics()

    if feed is None:
        if settings.redis_url:
            logger.info("Using Redis change feed")
            feed = RedisChangeFeed.from_url(settings.redis_url)
        else:
            feed = InMemoryChangeFeed(metrics)

    engine: AsyncEngine | None = None
    if trips is None or reactions is None:
        if settings.database_url:
            engine = create_async_engine_from_settings(settings)
            session_factory = create_session_factory(engine)
            trips = trips or SqlTripStore(session_factory, feed)
            reactions = reactions or SqlReactionStore(session_factory, feed)
        else:
            logger.warning("DATABASE_URL not set, using in-memory stores")
            trips = trips or InMemoryTripStore(feed)
            reactions = reactions or InMemoryReactionStore(feed)

    llm = llm or get_itinerary_client(settings)
    generation = ItineraryGenerationService(trips, llm, metrics)
    commands = TripCommands(
        trips,
        reactions,
        pricing or get_pricing_client(settings),
        llm,
        generation,
        share_image or get_share_image_client(settings),
        link_ttl=timedelta(hours=settings.link_ttl_hours),
        share_code_max_attempts=settings.share_code_max_attempts,
    )

    return Services(
        settings=settings,
        feed=feed,
        trips=trips,
        reactions=reactions,
        commands=commands,
        generation=generation,
        reaction_service=ReactionService(reactions, trips),
        engine=engine,
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the process-wide services."""
    services: Services = request.app.state.services
    return services
