"""
Detached background tasks with their own error boundary.

Background revalidation and metrics writes must never affect the caller
that triggered them. Every task spawned here is wrapped so that failures
are logged and dropped instead of surfacing as "exception was never
retrieved" warnings.
"""

import asyncio
from typing import Any, Coroutine

from loguru import logger

# Strong references so the event loop does not garbage-collect running tasks
_background_tasks: set[asyncio.Task[Any]] = set()


async def _guarded(coro: Coroutine[Any, Any, Any], name: str, level: str) -> None:
    try:
        await coro
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.log(level, f"Background task '{name}' failed: {type(e).__name__}: {e}")


def spawn_background(
    coro: Coroutine[Any, Any, Any],
    *,
    name: str,
    level: str = "WARNING",
) -> asyncio.Task[None]:
    """
    Schedule a coroutine as a detached task.

    Args:
        coro: Coroutine to run
        name: Label used in logs
        level: Log level for failures ("WARNING" for revalidation,
            "DEBUG" for best-effort writes such as metrics)
    """
    task = asyncio.create_task(_guarded(coro, name, level), name=name)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


def pending_background_count() -> int:
    """Number of background tasks still running."""
    return sum(1 for task in _background_tasks if not task.done())


async def drain_background() -> None:
    """Wait for every outstanding background task (shutdown and tests)."""
    while True:
        pending = [task for task in _background_tasks if not task.done()]
        if not pending:
            return
        # Tasks spawned while draining are picked up on the next pass
        await asyncio.gather(*pending, return_exceptions=True)
