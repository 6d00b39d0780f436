"""
Shared store bootstrap.

The Redis connection is established once at process startup and handed to
the components that need it. The result is explicit: either a connected
client or an `Unavailable` marker with the reason, never a lazily
populated global.
"""

from dataclasses import dataclass

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import RedisError


@dataclass(frozen=True)
class Connected:
    """A reachable shared store."""

    client: redis.Redis


@dataclass(frozen=True)
class Unavailable:
    """No shared store; components fall back to in-process state."""

    reason: str


SharedStore = Connected | Unavailable


async def connect_shared_store(url: str, socket_timeout: float = 2.0) -> SharedStore:
    """
    Connect to Redis and verify it answers PING.

    Args:
        url: Redis URL, e.g. redis://localhost:6379/0. Empty disables Redis.
        socket_timeout: Connect and command timeout in seconds

    Returns:
        Connected(client) on success, Unavailable(reason) otherwise
    """
    if not url:
        logger.info("REDIS_URL not set, Redis disabled, using in-memory fallbacks")
        return Unavailable("REDIS_URL not set")

    client = redis.Redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
        retry_on_timeout=True,
    )
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning(f"Redis unreachable, using in-memory fallbacks: {e}")
        await client.aclose()
        return Unavailable(str(e))

    logger.info("Redis connected")
    return Connected(client)


async def close_shared_store(shared: SharedStore) -> None:
    """Close the Redis client if one was opened."""
    if isinstance(shared, Connected):
        await shared.client.aclose()
        logger.debug("Redis connection closed")
