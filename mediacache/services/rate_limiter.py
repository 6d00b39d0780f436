"""
TokenBucket - Constrains outbound API calls to a provider's rate limit.

Callers `await limiter.acquire()` before each upstream request. If the
bucket is empty the call sleeps until a token is available.

Tokens refill continuously (not in fixed windows), so bursts are allowed
up to `max_tokens` while sustained throughput is capped at
`refill_per_second` requests per second.

Waiters are not queued: several may wake at once and only those that
find a token proceed, the rest sleep again. Wake order is not FIFO.
"""

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from loguru import logger

from mediacache.settings import Settings


@dataclass
class RateLimiterStats:
    """Snapshot of a bucket for the debug overlay."""

    provider: str
    available: int
    waiting: int
    max_tokens: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "provider": self.provider,
            "available": self.available,
            "waiting": self.waiting,
            "max_tokens": self.max_tokens,
        }


class TokenBucket:
    """
    Token-bucket rate limiter for a single provider.

    Usage:
        limiter = TokenBucket(max_tokens=40, refill_per_second=4, provider="tmdb")

        await limiter.acquire()
        response = await client.get(url)
    """

    def __init__(
        self,
        max_tokens: int,
        refill_per_second: float,
        provider: str,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_tokens < 1:
            raise ValueError("max_tokens must be at least 1")
        if refill_per_second <= 0:
            raise ValueError("refill_per_second must be positive")

        self.max_tokens = max_tokens
        self.refill_per_second = refill_per_second
        self.provider = provider

        self._clock = clock
        self._sleep = sleep
        self._tokens = float(max_tokens)
        self._last_refill = clock()
        self._waiting = 0

    def _refill(self) -> None:
        """Add tokens for the time elapsed since the last refill."""
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(
            self.max_tokens, self._tokens + elapsed * self.refill_per_second
        )
        self._last_refill = now

    async def acquire(self) -> None:
        """
        Wait until a token is available, then consume it.

        Returns without suspending when a token is already available.
        """
        while True:
            self._refill()

            if self._tokens >= 1:
                self._tokens -= 1
                return

            deficit = 1 - self._tokens
            wait_ms = math.ceil(deficit / self.refill_per_second * 1000)

            self._waiting += 1
            logger.debug(
                f"Rate limiter '{self.provider}' waiting {wait_ms}ms "
                f"({self._waiting} waiting)"
            )
            try:
                await self._sleep(wait_ms / 1000)
            finally:
                self._waiting -= 1

    @property
    def stats(self) -> RateLimiterStats:
        """Current state for debug/observability."""
        self._refill()
        return RateLimiterStats(
            provider=self.provider,
            available=math.floor(self._tokens),
            waiting=self._waiting,
            max_tokens=self.max_tokens,
        )


class RateLimiterRegistry:
    """
    One TokenBucket per provider, built once per process.

    Usage:
        limiters = RateLimiterRegistry.from_settings(global_settings)
        await limiters.get("tmdb").acquire()
    """

    def __init__(self, limiters: dict[str, TokenBucket] | None = None):
        self._limiters: dict[str, TokenBucket] = dict(limiters or {})

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimiterRegistry":
        """Per-provider limits from configuration."""
        return cls(
            {
                # TMDB: 40 req / 10s = 4 req/s sustained, 40 burst
                "tmdb": TokenBucket(
                    settings.tmdb_rate_burst, settings.tmdb_rate_per_second, "tmdb"
                ),
                # IGDB: Twitch default for client-credentials
                "igdb": TokenBucket(
                    settings.igdb_rate_burst, settings.igdb_rate_per_second, "igdb"
                ),
                # OpenLibrary has no documented limit; stay polite
                "openlibrary": TokenBucket(
                    settings.openlibrary_rate_burst,
                    settings.openlibrary_rate_per_second,
                    "openlibrary",
                ),
                # iTunes Search: roughly 20 calls per minute
                "apple": TokenBucket(
                    settings.apple_rate_burst, settings.apple_rate_per_second, "apple"
                ),
            }
        )

    def register(self, limiter: TokenBucket) -> None:
        """Add or replace the limiter for its provider."""
        self._limiters[limiter.provider] = limiter

    def get(self, provider: str) -> TokenBucket | None:
        """Get the limiter for a provider, if one is configured."""
        return self._limiters.get(provider)

    def all_stats(self) -> list[RateLimiterStats]:
        """Snapshot stats for all providers."""
        return [limiter.stats for limiter in self._limiters.values()]
