"""In-process change feed."""

import itertools
import logging

from backend.app.feed.base import Listener, Subscription
from backend.app.models.events import ChangeEvent
from backend.app.utils.metrics import PrometheusSyncMetrics

logger = logging.getLogger(__name__)


class InMemoryChangeFeed:
    """Fan-out feed for a single process.

    ``publish`` awaits every listener in registration order. A listener that
    raises is logged and counted; other listeners still receive the event.
    """

    def __init__(self, metrics: PrometheusSyncMetrics | None = None) -> None:
        self._listeners: dict[str, dict[int, Listener]] = {}
        self._ids = itertools.count()
        self._metrics = metrics or PrometheusSyncMetrics()

    def listener_count(self, topic: str) -> int:
        """Number of live listeners on a topic."""
        return len(self._listeners.get(topic, {}))

    async def publish(self, event: ChangeEvent) -> None:
        """Deliver an event to current listeners of its topic."""
        listeners = list(self._listeners.get(event.topic, {}).values())

        for listener in listeners:
            try:
                await listener(event)
            except Exception:
                self._metrics.inc_listener_error(event.table)
                logger.exception("Feed listener failed on %s %s", event.table, event.event)
            else:
                self._metrics.inc_feed_event(event.table, event.event)

    async def subscribe(self, topic: str, listener: Listener) -> Subscription:
        """Register a listener for a topic."""
        listener_id = next(self._ids)
        self._listeners.setdefault(topic, {})[listener_id] = listener

        async def release() -> None:
            topic_listeners = self._listeners.get(topic)
            if topic_listeners is None:
                return
            topic_listeners.pop(listener_id, None)
            if not topic_listeners:
                del self._listeners[topic]

        return Subscription(topic, release)

    async def close(self) -> None:
        """Drop all listeners."""
        self._listeners.clear()
