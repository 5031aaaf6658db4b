"""Detached background tasks (generation, share image)."""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)

# Strong references so the loop does not garbage-collect running tasks
_background_tasks: set[asyncio.Task[Any]] = set()


def _on_done(task: asyncio.Task[Any]) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            "Background task %s failed",
            task.get_name(),
            exc_info=(type(exc), exc, exc.__traceback__),
        )


def spawn_detached(coro: Coroutine[Any, Any, Any], *, name: str) -> None:
    """Run ``coro`` in the background.

    Nothing is returned: the only observable effect of a detached call is a
    later store write arriving over the change feed.
    """
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_on_done)


async def drain(timeout: float | None = None) -> None:
    """Wait for detached tasks to finish (shutdown and tests)."""
    while _background_tasks:
        await asyncio.wait(set(_background_tasks), timeout=timeout)
        if timeout is not None:
            break
