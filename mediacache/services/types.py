"""
Cache data types using Pydantic models.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, model_validator

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Timezone-aware wall clock used for cache timestamps."""
    return datetime.now(timezone.utc)


class SearchResult(BaseModel):
    """Normalized record returned by every provider."""

    external_id: str
    title: str
    cover_url: str | None = None
    release_year: int | None = None
    # Type-specific metadata, varies by media type
    meta: dict[str, Any] = Field(default_factory=dict)


class CacheEntry(BaseModel):
    """A cached result list with its freshness timestamps."""

    model_config = ConfigDict(frozen=True)

    results: list[SearchResult]
    created_at: datetime
    stale_at: datetime
    expires_at: datetime

    @model_validator(mode="after")
    def _check_order(self) -> "CacheEntry":
        if not (self.created_at <= self.stale_at <= self.expires_at):
            raise ValueError("expected created_at <= stale_at <= expires_at")
        return self

    def is_fresh(self, now: datetime) -> bool:
        return now < self.stale_at

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def age_ms(self, now: datetime) -> int:
        return int((now - self.created_at).total_seconds() * 1000)


class DetailEntry(BaseModel):
    """A cached single value (details, descriptions). TTL only, no SWR."""

    model_config = ConfigDict(frozen=True)

    value: Any
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class CacheTier(str, Enum):
    """Freshness tiers."""

    SEARCH = "search"
    TRENDING = "trending"
    SIMILAR = "similar"


@dataclass(frozen=True)
class TierPolicy:
    """How long a tier's entries stay fresh, and when they must be refetched."""

    stale_after: timedelta
    expire_after: timedelta

    def __post_init__(self) -> None:
        if self.stale_after > self.expire_after:
            raise ValueError("stale_after must not exceed expire_after")


DEFAULT_TIERS: Mapping[CacheTier, TierPolicy] = MappingProxyType(
    {
        # stale == expire: no SWR window for searches
        CacheTier.SEARCH: TierPolicy(timedelta(minutes=5), timedelta(minutes=5)),
        CacheTier.TRENDING: TierPolicy(timedelta(minutes=30), timedelta(hours=2)),
        CacheTier.SIMILAR: TierPolicy(timedelta(minutes=30), timedelta(hours=4)),
    }
)


CacheSource = Literal["cache-fresh", "cache-stale", "coalesced", "fetch"]


class CacheDebugInfo(BaseModel):
    """Cache timing details, attached only in dev mode."""

    source: CacheSource
    key: str
    age_ms: int | None = None
    fetch_duration_ms: int | None = None
    provider: str


class CachedResults(BaseModel):
    """What `get_or_fetch` hands back to callers."""

    results: list[SearchResult]
    debug: CacheDebugInfo | None = None


class CacheStats(BaseModel):
    """In-process cache counters for the debug overlay."""

    size: int = 0
    hits: int = 0
    stale_hits: int = 0
    misses: int = 0
    coalesced: int = 0
    revalidations: int = 0
    errors: int = 0
    in_flight: int = 0

    @property
    def hit_rate(self) -> str:
        served = self.hits + self.stale_hits
        total = served + self.misses
        if total == 0:
            return "0%"
        return f"{round(served / total * 100)}%"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {**self.model_dump(), "hit_rate": self.hit_rate}
