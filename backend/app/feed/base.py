"""Change feed interfaces."""

import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from backend.app.models.events import ChangeEvent

logger = logging.getLogger(__name__)

Listener = Callable[[ChangeEvent], Awaitable[None]]


class Subscription:
    """Handle returned by ``ChangeFeed.subscribe``.

    ``unsubscribe`` is idempotent: the release callback runs at most once, so
    rapid teardown paths may call it freely.
    """

    def __init__(self, topic: str, release: Callable[[], Awaitable[None]]) -> None:
        self.topic = topic
        self._release: Callable[[], Awaitable[None]] | None = release

    @property
    def active(self) -> bool:
        return self._release is not None

    async def unsubscribe(self) -> None:
        """Stop delivery to this subscription's listener."""
        release, self._release = self._release, None
        if release is None:
            return
        await release()
        logger.debug("Unsubscribed from %s", self.topic)


class ChangeFeed(Protocol):
    """Push channel for row-level store changes.

    Delivery is at-least-once per row with no ordering across topics.
    """

    async def publish(self, event: ChangeEvent) -> None:
        """Deliver an event to every listener on ``event.topic``."""
        ...

    async def subscribe(self, topic: str, listener: Listener) -> Subscription:
        """Register a listener for a topic.

        Args:
            topic: Topic name (see ``trip_topic`` / ``reactions_topic``)
            listener: Coroutine invoked with each event

        Returns:
            Subscription handle; callers must unsubscribe on teardown
        """
        ...

    async def close(self) -> None:
        """Release all resources held by the feed."""
        ...
