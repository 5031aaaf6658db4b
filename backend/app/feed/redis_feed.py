"""Redis pub/sub change feed for multi-process deployments."""

import asyncio
import logging

import redis.asyncio as aioredis
from pydantic import ValidationError
from redis.asyncio.client import PubSub

from backend.app.feed.base import Listener, Subscription
from backend.app.models.events import ChangeEvent
from backend.app.utils.metrics import PrometheusSyncMetrics

logger = logging.getLogger(__name__)


class RedisChangeFeed:
    """Change feed backed by Redis PUBLISH/SUBSCRIBE.

    Each subscription owns a pub/sub connection and a reader task that decodes
    messages into ``ChangeEvent`` and awaits the listener.
    """

    def __init__(
        self,
        redis_client: aioredis.Redis,
        channel_prefix: str = "tripfeed",
        metrics: PrometheusSyncMetrics | None = None,
    ) -> None:
        """Initialize feed.

        Args:
            redis_client: asyncio Redis client
            channel_prefix: Prefix applied to every topic channel
            metrics: Optional metrics sink
        """
        self._redis = redis_client
        self._prefix = channel_prefix
        self._metrics = metrics or PrometheusSyncMetrics()
        self._subscriptions: set[Subscription] = set()

    @classmethod
    def from_url(cls, url: str) -> "RedisChangeFeed":
        return cls(aioredis.from_url(url, decode_responses=True))

    def _channel(self, topic: str) -> str:
        return f"{self._prefix}:{topic}"

    async def publish(self, event: ChangeEvent) -> None:
        """Publish an event to its topic channel."""
        await self._redis.publish(self._channel(event.topic), event.model_dump_json())

    async def subscribe(self, topic: str, listener: Listener) -> Subscription:
        """Subscribe a listener to a topic channel."""
        channel = self._channel(topic)
        pubsub = self._redis.pubsub(ignore_subscribe_messages=True)
        await pubsub.subscribe(channel)
        reader = asyncio.create_task(self._pump(pubsub, listener), name=f"feed:{topic}")

        async def release() -> None:
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
            self._subscriptions.discard(subscription)

        subscription = Subscription(topic, release)
        self._subscriptions.add(subscription)
        return subscription

    async def _pump(self, pubsub: PubSub, listener: Listener) -> None:
        """Read messages until cancelled."""
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue

            try:
                event = ChangeEvent.model_validate_json(message["data"])
            except ValidationError:
                logger.warning("Dropping malformed feed message on %s", message.get("channel"))
                continue

            try:
                await listener(event)
            except Exception:
                self._metrics.inc_listener_error(event.table)
                logger.exception("Feed listener failed on %s %s", event.table, event.event)
            else:
                self._metrics.inc_feed_event(event.table, event.event)

    async def close(self) -> None:
        """Unsubscribe everything and close the client."""
        for subscription in list(self._subscriptions):
            await subscription.unsubscribe()
        await self._redis.aclose()
