"""
CacheService - Coalescing, stale-while-revalidate cache for upstream results.

Features:
- Tiered freshness (search / trending / similar), each with its own
  stale and expiry windows
- Stale entries are served immediately and refreshed in the background
- Concurrent misses for the same key share a single upstream fetch
- Failures are never cached; the next call retries
- Single-value detail cache with a fixed TTL and no SWR window
"""

import time
from datetime import timedelta
from typing import Any, Awaitable, Callable, Mapping, Sequence

from loguru import logger

from mediacache.services.background import spawn_background
from mediacache.services.deduplicator import RequestDeduplicator
from mediacache.services.metrics import MetricsRecorder
from mediacache.services.store import CacheStore, DetailStore
from mediacache.services.types import (
    DEFAULT_TIERS,
    CachedResults,
    CacheDebugInfo,
    CacheEntry,
    CacheSource,
    CacheStats,
    CacheTier,
    Clock,
    DetailEntry,
    SearchResult,
    TierPolicy,
    utc_now,
)
from mediacache.settings import Settings

Fetcher = Callable[[], Awaitable[Sequence[SearchResult]]]
ValueFetcher = Callable[[], Awaitable[Any]]


# Cache key builders


def search_key(media_type: str, query: str) -> str:
    """`search:<media_type>:<query>`, query lowercased and trimmed."""
    return f"search:{media_type}:{query.lower().strip()}"


def discover_key(category: str, media_type: str, item_id: str | None = None) -> str:
    """`discover:<category>:<media_type>` or `discover:<category>:<media_type>:<id>`."""
    if item_id:
        return f"discover:{category}:{media_type}:{item_id}"
    return f"discover:{category}:{media_type}"


def detail_key(kind: str, item_id: str | int) -> str:
    """`detail:<kind>:<id>`, e.g. detail:movie:603."""
    return f"detail:{kind}:{item_id}"


def tiers_from_settings(settings: Settings) -> Mapping[CacheTier, TierPolicy]:
    """Build the tier table once at startup."""
    return {
        CacheTier.SEARCH: TierPolicy(
            timedelta(minutes=settings.search_stale_minutes),
            timedelta(minutes=settings.search_expire_minutes),
        ),
        CacheTier.TRENDING: TierPolicy(
            timedelta(minutes=settings.trending_stale_minutes),
            timedelta(minutes=settings.trending_expire_minutes),
        ),
        CacheTier.SIMILAR: TierPolicy(
            timedelta(minutes=settings.similar_stale_minutes),
            timedelta(minutes=settings.similar_expire_minutes),
        ),
    }


def _elapsed_ms(started: float) -> int:
    return round((time.perf_counter() - started) * 1000)


class CacheService:
    """
    Cache orchestrator, one instance per process.

    Usage:
        cache = CacheService(store, detail_store, metrics)

        result = await cache.get_or_fetch(
            search_key("movie", "alien"),
            CacheTier.SEARCH,
            "tmdb",
            lambda: provider.search("alien"),
        )
        return result.results
    """

    def __init__(
        self,
        store: CacheStore,
        detail_store: DetailStore,
        metrics: MetricsRecorder,
        tiers: Mapping[CacheTier, TierPolicy] = DEFAULT_TIERS,
        *,
        dev_mode: bool = False,
        clock: Clock = utc_now,
        debug: bool = False,
    ):
        self._store = store
        self._detail_store = detail_store
        self._metrics = metrics
        self._tiers = dict(tiers)
        self._dev_mode = dev_mode
        self._clock = clock
        self._debug = debug
        self._in_flight = RequestDeduplicator(debug=debug)
        self._value_in_flight = RequestDeduplicator(debug=debug)
        self._stats = CacheStats()

    @property
    def in_flight(self) -> RequestDeduplicator:
        return self._in_flight

    def policy(self, tier: CacheTier) -> TierPolicy:
        return self._tiers[tier]

    async def get_or_fetch(
        self,
        key: str,
        tier: CacheTier,
        provider: str,
        fetcher: Fetcher,
    ) -> CachedResults:
        """
        Return cached results for key, fetching them if needed.

        Args:
            key: Cache key (see search_key / discover_key)
            tier: Freshness tier
            provider: Provider label for metrics
            fetcher: Zero-argument coroutine function returning results

        Returns:
            CachedResults; `debug` is only set in dev mode

        Raises:
            Whatever the fetcher raises, for every caller waiting on the key
        """
        policy = self._tiers[tier]
        entry = await self._store.get(key)
        now = self._clock()

        if entry is not None and not entry.is_expired(now):
            self._metrics.record_cache_hit(provider)
            if entry.is_fresh(now):
                self._stats.hits += 1
                self._log(f"FRESH: {key[:50]}")
                return self._result(entry.results, "cache-fresh", key, provider, entry.age_ms(now))

            self._stats.stale_hits += 1
            self._log(f"STALE: {key[:50]}")
            if key not in self._in_flight:
                self._revalidate(key, policy, provider, fetcher)
            return self._result(entry.results, "cache-stale", key, provider, entry.age_ms(now))

        task = self._in_flight.get(key)
        if task is not None:
            self._stats.coalesced += 1
            self._metrics.record_cache_hit(provider)
            started = time.perf_counter()
            results = await self._in_flight.join(task, coalesced=True)
            return self._result(
                results, "coalesced", key, provider, fetch_duration_ms=_elapsed_ms(started)
            )

        self._stats.misses += 1
        started = time.perf_counter()
        task = self._in_flight.start(
            key, lambda: self._fetch_and_store(key, policy, provider, fetcher)
        )
        results = await self._in_flight.join(task)
        return self._result(
            results, "fetch", key, provider, fetch_duration_ms=_elapsed_ms(started)
        )

    async def _fetch_and_store(
        self,
        key: str,
        policy: TierPolicy,
        provider: str,
        fetcher: Fetcher,
    ) -> list[SearchResult]:
        started = time.perf_counter()
        try:
            fetched = await fetcher()
        except Exception:
            self._stats.errors += 1
            self._metrics.record_api_error(provider)
            raise
        self._metrics.record_api_call(provider, (time.perf_counter() - started) * 1000)

        created_at = self._clock()
        entry = CacheEntry(
            results=list(fetched),
            created_at=created_at,
            stale_at=created_at + policy.stale_after,
            expires_at=created_at + policy.expire_after,
        )
        await self._store.set(key, entry)
        self._log(f"STORED: {key[:50]} ({len(entry.results)} results)")
        return entry.results

    def _revalidate(
        self,
        key: str,
        policy: TierPolicy,
        provider: str,
        fetcher: Fetcher,
    ) -> None:
        """Refresh a stale key without blocking the caller."""
        self._stats.revalidations += 1
        task = self._in_flight.start(
            key, lambda: self._fetch_and_store(key, policy, provider, fetcher)
        )
        spawn_background(self._in_flight.join(task), name=f"revalidate:{key}")

    async def get_or_fetch_value(
        self,
        key: str,
        provider: str,
        fetcher: ValueFetcher,
    ) -> Any:
        """
        Single-value analogue of get_or_fetch backed by the detail store.

        Entries are either valid or missing; there is no stale window and
        no background refresh. `None` results are returned but not stored.
        """
        entry = await self._detail_store.get(key)
        if entry is not None and not entry.is_expired(self._clock()):
            self._stats.hits += 1
            self._metrics.record_cache_hit(provider)
            self._log(f"DETAIL HIT: {key[:50]}")
            return entry.value

        task = self._value_in_flight.get(key)
        if task is not None:
            self._stats.coalesced += 1
            self._metrics.record_cache_hit(provider)
            return await self._value_in_flight.join(task, coalesced=True)

        self._stats.misses += 1
        task = self._value_in_flight.start(
            key, lambda: self._fetch_and_store_value(key, provider, fetcher)
        )
        return await self._value_in_flight.join(task)

    async def _fetch_and_store_value(
        self,
        key: str,
        provider: str,
        fetcher: ValueFetcher,
    ) -> Any:
        started = time.perf_counter()
        try:
            value = await fetcher()
        except Exception:
            self._stats.errors += 1
            self._metrics.record_api_error(provider)
            raise
        self._metrics.record_api_call(provider, (time.perf_counter() - started) * 1000)

        if value is None:
            return None

        created_at = self._clock()
        await self._detail_store.set(
            key,
            DetailEntry(
                value=value,
                created_at=created_at,
                expires_at=created_at + self._detail_store.ttl,
            ),
        )
        return value

    def get_stats(self) -> CacheStats:
        """Get cache statistics."""
        self._stats.size = self._store.size
        self._stats.in_flight = (
            self._in_flight.get_in_flight_count()
            + self._value_in_flight.get_in_flight_count()
        )
        return self._stats

    def _result(
        self,
        results: list[SearchResult],
        source: CacheSource,
        key: str,
        provider: str,
        age_ms: int | None = None,
        fetch_duration_ms: int | None = None,
    ) -> CachedResults:
        debug = None
        if self._dev_mode:
            debug = CacheDebugInfo(
                source=source,
                key=key,
                age_ms=age_ms,
                fetch_duration_ms=fetch_duration_ms,
                provider=provider,
            )
        return CachedResults(results=results, debug=debug)

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[CacheService] {message}")
