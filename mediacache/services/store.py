"""
Two-tier cache store - shared Redis with an in-process fallback.

Features:
- Redis (when connected) is the source of truth across replicas, with
  per-key expiry derived from the entry's own `expires_at`
- In-process dict fallback, bounded by entry count
- Expired entries pruned when the dict is full, then oldest-by-creation
  eviction
- Redis failures are logged at debug level and never reach callers
"""

from datetime import timedelta
from typing import Generic, TypeVar

from loguru import logger
from pydantic import ValidationError
from redis.exceptions import RedisError

from mediacache.services.errors import CacheError
from mediacache.services.shared_store import Connected, SharedStore, Unavailable
from mediacache.services.types import CacheEntry, Clock, DetailEntry, utc_now

E = TypeVar("E", CacheEntry, DetailEntry)


class _TwoTierStore(Generic[E]):
    """Shared get/set/prune/evict logic for both store variants."""

    entry_type: type[E]

    def __init__(
        self,
        shared: SharedStore | None = None,
        *,
        max_entries: int,
        key_prefix: str,
        clock: Clock = utc_now,
        debug: bool = False,
    ):
        self._shared = shared or Unavailable("not configured")
        self._memory: dict[str, E] = {}
        self._max_entries = max_entries
        self._prefix = key_prefix
        self._clock = clock
        self._debug = debug
        self.evictions = 0

    @property
    def size(self) -> int:
        """Entries held in the in-process fallback."""
        return len(self._memory)

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def shared_available(self) -> bool:
        return isinstance(self._shared, Connected)

    async def get(self, key: str) -> E | None:
        """
        Get a non-expired entry.

        Reads Redis when connected; falls back to the in-process dict when
        Redis is not configured or fails.
        """
        if isinstance(self._shared, Connected):
            try:
                raw = await self._shared.client.get(self._prefix + key)
                if raw is None:
                    self._log(f"MISS (shared): {key[:50]}")
                    return None
                entry = self._decode(raw)
                if entry.is_expired(self._clock()):
                    return None
                self._log(f"HIT (shared): {key[:50]}")
                return entry
            except (RedisError, OSError, CacheError) as e:
                logger.debug(f"Shared cache get failed for {key[:50]}, using memory: {e}")

        entry = self._memory.get(key)
        if entry is None:
            self._log(f"MISS: {key[:50]}")
            return None
        if entry.is_expired(self._clock()):
            del self._memory[key]
            self._log(f"EXPIRED: {key[:50]}")
            return None
        self._log(f"HIT: {key[:50]}")
        return entry

    async def set(self, key: str, entry: E) -> None:
        """
        Store an entry until its `expires_at`.

        Already-expired entries are not stored.
        """
        ttl = entry.expires_at - self._clock()
        if ttl <= timedelta(0):
            return

        if isinstance(self._shared, Connected):
            try:
                await self._shared.client.set(
                    self._prefix + key,
                    entry.model_dump_json(),
                    px=max(1, int(ttl.total_seconds() * 1000)),
                )
                self._log(f"SET (shared): {key[:50]} (TTL: {ttl.total_seconds():.0f}s)")
                return
            except (RedisError, OSError) as e:
                logger.debug(f"Shared cache set failed for {key[:50]}, using memory: {e}")

        if len(self._memory) >= self._max_entries and key not in self._memory:
            self.prune()
            if len(self._memory) >= self._max_entries:
                self._evict_oldest()

        self._memory[key] = entry
        self._log(f"SET: {key[:50]} (TTL: {ttl.total_seconds():.0f}s)")

    def prune(self) -> int:
        """Remove all expired in-process entries. Returns count removed."""
        now = self._clock()
        expired_keys = [k for k, v in self._memory.items() if v.is_expired(now)]
        for key in expired_keys:
            del self._memory[key]

        if expired_keys:
            self._log(f"PRUNE: {len(expired_keys)} expired entries removed")

        return len(expired_keys)

    def clear(self) -> None:
        """Clear the in-process fallback."""
        count = len(self._memory)
        self._memory.clear()
        self._log(f"CLEAR: {count} entries removed")

    def _evict_oldest(self) -> None:
        """Evict the entry created first."""
        if not self._memory:
            return

        oldest_key = min(
            self._memory.keys(),
            key=lambda k: self._memory[k].created_at,
        )
        del self._memory[oldest_key]
        self.evictions += 1
        self._log(f"EVICT: {oldest_key[:50]}")

    def _decode(self, raw: str) -> E:
        try:
            return self.entry_type.model_validate_json(raw)
        except ValidationError as e:
            raise CacheError(f"Undecodable cache entry: {e.error_count()} errors") from e

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[{type(self).__name__}] {message}")


class CacheStore(_TwoTierStore[CacheEntry]):
    """
    Store for result lists with stale/expire timestamps.

    Usage:
        store = CacheStore(shared, max_entries=500)
        entry = await store.get("search:movie:alien")
        await store.set("search:movie:alien", new_entry)
    """

    entry_type = CacheEntry

    def __init__(
        self,
        shared: SharedStore | None = None,
        *,
        max_entries: int = 500,
        key_prefix: str = "cache:",
        clock: Clock = utc_now,
        debug: bool = False,
    ):
        super().__init__(
            shared,
            max_entries=max_entries,
            key_prefix=key_prefix,
            clock=clock,
            debug=debug,
        )


class DetailStore(_TwoTierStore[DetailEntry]):
    """
    Store for single values with one fixed TTL and its own, smaller bound.

    Keys are expected to carry their own namespace (see `detail_key`).
    """

    entry_type = DetailEntry

    def __init__(
        self,
        shared: SharedStore | None = None,
        *,
        ttl: timedelta = timedelta(hours=24),
        max_entries: int = 200,
        key_prefix: str = "",
        clock: Clock = utc_now,
        debug: bool = False,
    ):
        super().__init__(
            shared,
            max_entries=max_entries,
            key_prefix=key_prefix,
            clock=clock,
            debug=debug,
        )
        self.ttl = ttl
