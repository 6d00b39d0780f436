"""
RequestDeduplicator - Registry of in-flight fetches, one per cache key.

When multiple callers request the same key simultaneously,
only one actual fetch runs and its result is shared.
"""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


class RequestDeduplicator:
    """
    Tracks at most one in-flight fetch per key.

    Registration is synchronous, so a check with `get()` followed by
    `start()` cannot interleave with another coroutine. The entry is
    removed as soon as the fetch settles, whether it succeeded or failed.

    Usage:
        dedup = RequestDeduplicator()

        task = dedup.get(key) or dedup.start(key, lambda: fetch(key))
        result = await dedup.join(task)
    """

    def __init__(self, debug: bool = False):
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._debug = debug

    def get(self, key: str) -> asyncio.Task[Any] | None:
        """Return the in-flight task for key, if any."""
        return self._in_flight.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._in_flight

    def start(
        self,
        key: str,
        request_fn: Callable[[], Awaitable[T]],
    ) -> asyncio.Task[T]:
        """
        Register and start a fetch for key.

        Raises:
            RuntimeError: If a fetch for key is already in flight
        """
        if key in self._in_flight:
            raise RuntimeError(f"Fetch already in flight for {key!r}")

        self._log(f"NEW: Starting request: {key[:50]}...")
        task = asyncio.create_task(self._execute_and_cleanup(key, request_fn))
        self._in_flight[key] = task
        return task

    async def join(self, task: asyncio.Task[T], *, coalesced: bool = False) -> T:
        """
        Wait for an in-flight task.

        The task is shielded: a caller that goes away does not cancel the
        fetch, whose result is still stored for the next caller.
        """
        if coalesced:
            self._log("DEDUPE: Waiting for in-flight request")
        return await asyncio.shield(task)

    async def _execute_and_cleanup(
        self,
        key: str,
        request_fn: Callable[[], Awaitable[T]],
    ) -> T:
        """Execute request and clean up when done."""
        try:
            return await request_fn()
        finally:
            self._in_flight.pop(key, None)
            self._log(f"DONE: Request completed: {key[:50]}...")

    def get_in_flight_count(self) -> int:
        """Get number of in-flight requests."""
        return len(self._in_flight)

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[Deduplicator] {message}")

