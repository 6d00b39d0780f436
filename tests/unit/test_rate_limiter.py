"""Unit tests for TokenBucket and RateLimiterRegistry."""

from __future__ import annotations

import pytest

from mediacache.services.rate_limiter import RateLimiterRegistry, TokenBucket
from mediacache.settings import Settings


class FakeTime:
    """Monotonic clock plus a sleep that advances it instead of waiting."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []
        self.on_sleep = None

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep()
        self.now += seconds


def _bucket(fake: FakeTime, max_tokens: int = 3, rate: float = 1.0) -> TokenBucket:
    return TokenBucket(max_tokens, rate, "test", clock=fake.clock, sleep=fake.sleep)


class TestTokenBucket:
    @pytest.mark.asyncio
    async def test_burst_up_to_capacity_without_waiting(self) -> None:
        fake = FakeTime()
        bucket = _bucket(fake)

        for _ in range(3):
            await bucket.acquire()

        assert fake.sleeps == []
        assert bucket.stats.available == 0

    @pytest.mark.asyncio
    async def test_empty_bucket_waits_for_refill(self) -> None:
        fake = FakeTime()
        bucket = _bucket(fake, max_tokens=1, rate=4)

        await bucket.acquire()
        await bucket.acquire()

        assert fake.sleeps == [0.25]

    @pytest.mark.asyncio
    async def test_refill_is_capped_at_max_tokens(self) -> None:
        fake = FakeTime()
        bucket = _bucket(fake)

        await bucket.acquire()
        fake.now += 100
        assert bucket.stats.available == 3

    @pytest.mark.asyncio
    async def test_partial_refill(self) -> None:
        fake = FakeTime()
        bucket = _bucket(fake, max_tokens=10, rate=2)

        for _ in range(10):
            await bucket.acquire()
        fake.now += 1.5

        assert bucket.stats.available == 3

    @pytest.mark.asyncio
    async def test_waiting_counter_tracks_sleepers(self) -> None:
        fake = FakeTime()
        bucket = _bucket(fake, max_tokens=1)
        seen: list[int] = []
        fake.on_sleep = lambda: seen.append(bucket.stats.waiting)

        await bucket.acquire()
        await bucket.acquire()

        assert seen == [1]
        assert bucket.stats.waiting == 0

    @pytest.mark.asyncio
    async def test_admissions_never_exceed_capacity_plus_refill(self) -> None:
        fake = FakeTime()
        bucket = _bucket(fake, max_tokens=5, rate=2)

        for _ in range(25):
            await bucket.acquire()

        # 5 from the initial burst, the other 20 at 2 per second
        assert fake.now >= 10
        assert fake.now == pytest.approx(10, abs=0.01)

    def test_stats_report_provider(self) -> None:
        bucket = TokenBucket(40, 4, "tmdb")
        stats = bucket.stats.to_dict()
        assert stats == {"provider": "tmdb", "available": 40, "waiting": 0, "max_tokens": 40}

    def test_invalid_arguments(self) -> None:
        with pytest.raises(ValueError):
            TokenBucket(0, 1, "x")
        with pytest.raises(ValueError):
            TokenBucket(1, 0, "x")


class TestRateLimiterRegistry:
    def test_from_settings_has_every_provider(self) -> None:
        registry = RateLimiterRegistry.from_settings(Settings())
        providers = {s.provider for s in registry.all_stats()}
        assert providers == {"tmdb", "igdb", "openlibrary", "apple"}
        assert registry.get("tmdb").max_tokens == 40
        assert registry.get("apple").refill_per_second == pytest.approx(0.33)

    def test_unknown_provider_has_no_limiter(self) -> None:
        assert RateLimiterRegistry().get("nope") is None

    def test_register_replaces_limiter(self) -> None:
        registry = RateLimiterRegistry.from_settings(Settings())
        registry.register(TokenBucket(1, 1, "tmdb"))
        assert registry.get("tmdb").max_tokens == 1
