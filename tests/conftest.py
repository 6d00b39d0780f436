"""Shared fixtures: a controllable clock and an in-memory async Redis double."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError


class ManualClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 2, 19, 14, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakePipeline:
    def __init__(self, redis: FakeRedis) -> None:
        self._redis = redis
        self._ops: list[tuple[str, tuple[Any, ...]]] = []

    def hincrby(self, key: str, field: str, amount: int) -> FakePipeline:
        self._ops.append(("hincrby", (key, field, amount)))
        return self

    def expire(self, key: str, seconds: int) -> FakePipeline:
        self._ops.append(("expire", (key, seconds)))
        return self

    def hgetall(self, key: str) -> FakePipeline:
        self._ops.append(("hgetall", (key,)))
        return self

    async def execute(self, raise_on_error: bool = True) -> list[Any]:
        if self._redis.fail:
            raise RedisConnectionError("connection refused")
        results = []
        for op, args in self._ops:
            results.append(getattr(self._redis, f"_{op}")(*args))
        self._ops = []
        return results


class FakeRedis:
    """
    Just enough of redis.asyncio.Redis (decode_responses=True) for the
    store and metrics code. Set `fail = True` to make every call raise.
    """

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.px: dict[str, int] = {}
        self.expiry: dict[str, int] = {}
        self.fail = False
        self.closed = False

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("connection refused")

    async def ping(self) -> bool:
        self._check()
        return True

    async def get(self, key: str) -> str | None:
        self._check()
        return self.data.get(key)

    async def set(self, key: str, value: str, px: int | None = None) -> bool:
        self._check()
        self.data[key] = value
        if px is not None:
            self.px[key] = px
        return True

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    async def aclose(self) -> None:
        self.closed = True

    def _hincrby(self, key: str, field: str, amount: int) -> int:
        bucket = self.hashes.setdefault(key, {})
        bucket[field] = str(int(bucket.get(field, "0")) + amount)
        return int(bucket[field])

    def _expire(self, key: str, seconds: int) -> bool:
        self.expiry[key] = seconds
        return True

    def _hgetall(self, key: str) -> dict[str, str]:
        return dict(self.hashes.get(key, {}))


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()
