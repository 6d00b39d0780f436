"""Unit tests for the two-tier CacheStore / DetailStore."""

from __future__ import annotations

from datetime import timedelta

import pytest

from mediacache.services.shared_store import Connected, Unavailable
from mediacache.services.store import CacheStore, DetailStore
from mediacache.services.types import CacheEntry, DetailEntry, SearchResult


def _entry(clock, stale_minutes: float = 5, expire_minutes: float = 5) -> CacheEntry:
    now = clock()
    return CacheEntry(
        results=[SearchResult(external_id="1", title="Alien")],
        created_at=now,
        stale_at=now + timedelta(minutes=stale_minutes),
        expires_at=now + timedelta(minutes=expire_minutes),
    )


# ======================================================================
# In-process fallback
# ======================================================================


class TestMemoryFallback:
    @pytest.fixture()
    def store(self, clock) -> CacheStore:
        return CacheStore(Unavailable("test"), max_entries=2, clock=clock)

    @pytest.mark.asyncio
    async def test_get_missing_key_returns_none(self, store: CacheStore) -> None:
        assert await store.get("nope") is None

    @pytest.mark.asyncio
    async def test_set_and_get(self, store: CacheStore, clock) -> None:
        entry = _entry(clock)
        await store.set("a", entry)
        assert await store.get("a") == entry

    @pytest.mark.asyncio
    async def test_expired_entry_is_dropped_on_read(self, store: CacheStore, clock) -> None:
        await store.set("a", _entry(clock))
        clock.advance(minutes=5)
        assert await store.get("a") is None
        assert store.size == 0

    @pytest.mark.asyncio
    async def test_already_expired_entry_is_not_stored(self, store: CacheStore, clock) -> None:
        entry = _entry(clock)
        clock.advance(minutes=6)
        await store.set("a", entry)
        assert store.size == 0

    @pytest.mark.asyncio
    async def test_full_store_evicts_oldest(self, store: CacheStore, clock) -> None:
        await store.set("a", _entry(clock, 30, 120))
        clock.advance(seconds=1)
        await store.set("b", _entry(clock, 30, 120))
        clock.advance(seconds=1)
        await store.set("c", _entry(clock, 30, 120))

        assert await store.get("a") is None
        assert await store.get("b") is not None
        assert await store.get("c") is not None
        assert store.evictions == 1

    @pytest.mark.asyncio
    async def test_full_store_prunes_expired_before_evicting(
        self, store: CacheStore, clock
    ) -> None:
        await store.set("old", _entry(clock, 30, 120))
        clock.advance(seconds=1)
        await store.set("short", _entry(clock, 1, 1))
        clock.advance(minutes=2)
        await store.set("new", _entry(clock, 30, 120))

        assert await store.get("old") is not None
        assert await store.get("new") is not None
        assert store.evictions == 0

    @pytest.mark.asyncio
    async def test_overwrite_at_capacity_does_not_evict(self, store: CacheStore, clock) -> None:
        await store.set("a", _entry(clock, 30, 120))
        await store.set("b", _entry(clock, 30, 120))
        await store.set("b", _entry(clock, 30, 120))
        assert store.size == 2
        assert store.evictions == 0

    @pytest.mark.asyncio
    async def test_prune_returns_removed_count(self, store: CacheStore, clock) -> None:
        await store.set("a", _entry(clock, 1, 1))
        await store.set("b", _entry(clock, 30, 120))
        clock.advance(minutes=2)
        assert store.prune() == 1
        assert store.size == 1


# ======================================================================
# Shared (Redis) tier
# ======================================================================


class TestSharedTier:
    @pytest.mark.asyncio
    async def test_entries_written_with_prefix_and_ttl(self, clock, fake_redis) -> None:
        store = CacheStore(Connected(fake_redis), clock=clock)
        await store.set("search:movie:alien", _entry(clock, 30, 120))

        assert fake_redis.px["cache:search:movie:alien"] == 120 * 60 * 1000
        assert store.size == 0
        assert store.shared_available is True

    @pytest.mark.asyncio
    async def test_round_trip_through_redis(self, clock, fake_redis) -> None:
        store = CacheStore(Connected(fake_redis), clock=clock)
        entry = _entry(clock)
        await store.set("k", entry)

        # A second replica sharing the same Redis sees the entry
        other = CacheStore(Connected(fake_redis), clock=clock)
        assert await other.get("k") == entry

    @pytest.mark.asyncio
    async def test_redis_failure_falls_back_to_memory(self, clock, fake_redis) -> None:
        fake_redis.fail = True
        store = CacheStore(Connected(fake_redis), clock=clock)
        entry = _entry(clock)

        await store.set("k", entry)

        assert store.size == 1
        assert await store.get("k") == entry

    @pytest.mark.asyncio
    async def test_undecodable_entry_is_treated_as_miss(self, clock, fake_redis) -> None:
        fake_redis.data["cache:k"] = "{not json"
        store = CacheStore(Connected(fake_redis), clock=clock)
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_expired_redis_entry_is_a_miss(self, clock, fake_redis) -> None:
        store = CacheStore(Connected(fake_redis), clock=clock)
        await store.set("k", _entry(clock))
        clock.advance(minutes=5)
        assert await store.get("k") is None


class TestDetailStore:
    @pytest.mark.asyncio
    async def test_detail_values_survive_redis(self, clock, fake_redis) -> None:
        store = DetailStore(Connected(fake_redis), clock=clock)
        now = clock()
        await store.set(
            "detail:movie:603",
            DetailEntry(value={"director": "Lana Wachowski"}, created_at=now, expires_at=now + store.ttl),
        )

        assert "detail:movie:603" in fake_redis.data
        found = await store.get("detail:movie:603")
        assert found is not None
        assert found.value == {"director": "Lana Wachowski"}

    def test_defaults(self) -> None:
        store = DetailStore()
        assert store.ttl == timedelta(hours=24)
        assert store.max_entries == 200
        assert store.shared_available is False
