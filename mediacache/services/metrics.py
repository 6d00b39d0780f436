"""
API usage metrics - hourly Redis hash buckets per provider.

Writes are fire-and-forget: each record_* call schedules a detached
pipeline and returns immediately. Without Redis, or when Redis fails,
nothing is recorded and nothing is raised.

Bucket key: metrics:<provider>:<YYYY-MM-DDTHH> (UTC hour)
Fields: cached, uncached, errors, latency_sum, latency_count
"""

from datetime import timedelta

from loguru import logger
from pydantic import BaseModel, Field
from redis.exceptions import RedisError

from mediacache.services.background import spawn_background
from mediacache.services.shared_store import Connected, SharedStore, Unavailable
from mediacache.services.types import Clock, utc_now

PROVIDERS = ("tmdb", "igdb", "openlibrary", "apple")

# Metrics keys auto-expire after 30 days
EXPIRE_SECONDS = 30 * 24 * 60 * 60

BUCKET_FIELDS = ("cached", "uncached", "errors", "latency_sum", "latency_count")


class ProviderMetrics(BaseModel):
    """Aggregated counters for one provider over the query window."""

    cached: int = 0
    uncached: int = 0
    errors: int = 0
    avg_latency_ms: int = 0
    hit_rate: str = "0%"
    calls_per_hour: float = 0
    calls_per_minute: float = 0
    calls_per_second: float = 0


class TotalMetrics(ProviderMetrics):
    total_calls_per_hour: float = 0


class HourlyDataPoint(BaseModel):
    """Per-provider counts for one hour bucket."""

    hour: str
    tmdb: int = 0
    igdb: int = 0
    openlibrary: int = 0
    apple: int = 0


class ApiMetricsSummary(BaseModel):
    providers: dict[str, ProviderMetrics]
    totals: TotalMetrics
    # Chronological, oldest first
    hourly: list[HourlyDataPoint] = Field(default_factory=list)
    hourly_cached: list[HourlyDataPoint] = Field(default_factory=list)
    hourly_errors: list[HourlyDataPoint] = Field(default_factory=list)


def hour_label(moment) -> str:
    """UTC hour label, e.g. 2026-02-19T14."""
    return moment.strftime("%Y-%m-%dT%H")


def _empty_bucket() -> dict[str, int]:
    return {field: 0 for field in BUCKET_FIELDS}


def _to_provider_metrics(bucket: dict[str, int], hours: int) -> dict:
    total = bucket["cached"] + bucket["uncached"]
    total_seconds = hours * 3600
    return {
        "cached": bucket["cached"],
        "uncached": bucket["uncached"],
        "errors": bucket["errors"],
        "avg_latency_ms": (
            round(bucket["latency_sum"] / bucket["latency_count"])
            if bucket["latency_count"] > 0
            else 0
        ),
        "hit_rate": f"{round(bucket['cached'] / total * 100)}%" if total > 0 else "0%",
        "calls_per_hour": round(total / hours, 1) if hours > 0 else 0,
        "calls_per_minute": round(total / (hours * 60), 2) if hours > 0 else 0,
        "calls_per_second": (
            round(total / total_seconds, 3) if total_seconds > 0 else 0
        ),
    }


class MetricsRecorder:
    """
    Records cache hits, upstream calls and errors per provider.

    Usage:
        metrics = MetricsRecorder(shared)
        metrics.record_cache_hit("tmdb")
        metrics.record_api_call("tmdb", latency_ms=183.0)

        summary = await metrics.get_api_metrics(hours=24)
        if summary is None:
            ...  # Redis unavailable
    """

    def __init__(self, shared: SharedStore | None = None, clock: Clock = utc_now):
        self._shared = shared or Unavailable("not configured")
        self._clock = clock

    def bucket_key(self, provider: str) -> str:
        """Current hour bucket key, e.g. metrics:tmdb:2026-02-19T14."""
        return f"metrics:{provider}:{hour_label(self._clock())}"

    # Recording API (fire-and-forget, no await needed)

    def record_cache_hit(self, provider: str) -> None:
        """Record a cache hit (fresh, stale or coalesced) for a provider."""
        self._schedule(provider, {"cached": 1})

    def record_api_call(self, provider: str, latency_ms: float) -> None:
        """Record an upstream call with its latency."""
        self._schedule(
            provider,
            {"uncached": 1, "latency_sum": round(latency_ms), "latency_count": 1},
        )

    def record_api_error(self, provider: str) -> None:
        """Record an upstream failure for a provider."""
        self._schedule(provider, {"errors": 1})

    def _schedule(self, provider: str, increments: dict[str, int]) -> None:
        if not isinstance(self._shared, Connected):
            return
        key = self.bucket_key(provider)
        spawn_background(
            self._incr(self._shared, key, increments),
            name=f"metrics:{key}",
            level="DEBUG",
        )

    async def _incr(
        self, shared: Connected, key: str, increments: dict[str, int]
    ) -> None:
        pipe = shared.client.pipeline(transaction=False)
        for field, amount in increments.items():
            pipe.hincrby(key, field, amount)
        pipe.expire(key, EXPIRE_SECONDS)
        await pipe.execute()

    # Querying API (admin dashboard)

    def hour_labels(self, hours: int) -> list[str]:
        """Hour labels for the last N hours, newest first."""
        now = self._clock()
        return [hour_label(now - timedelta(hours=i)) for i in range(hours)]

    async def get_api_metrics(self, hours: int) -> ApiMetricsSummary | None:
        """
        Aggregate the last N hours of buckets.

        Returns:
            ApiMetricsSummary, or None if Redis is unavailable
        """
        if not isinstance(self._shared, Connected):
            return None

        hour_slots = self.hour_labels(hours)

        try:
            pipe = self._shared.client.pipeline(transaction=False)
            for provider in PROVIDERS:
                for hour in hour_slots:
                    pipe.hgetall(f"metrics:{provider}:{hour}")
            raw_results = await pipe.execute(raise_on_error=False)
        except (RedisError, OSError) as e:
            logger.debug(f"Metrics read failed: {e}")
            return None

        provider_totals = {provider: _empty_bucket() for provider in PROVIDERS}
        hourly_uncached = {hour: {} for hour in hour_slots}
        hourly_cached = {hour: {} for hour in hour_slots}
        hourly_errors = {hour: {} for hour in hour_slots}

        idx = 0
        for provider in PROVIDERS:
            for hour in hour_slots:
                data = raw_results[idx] if idx < len(raw_results) else None
                idx += 1

                if not data or not isinstance(data, dict):
                    continue

                values = {field: int(data.get(field, 0)) for field in BUCKET_FIELDS}
                for field, value in values.items():
                    provider_totals[provider][field] += value

                hourly_uncached[hour][provider] = values["uncached"]
                hourly_cached[hour][provider] = values["cached"]
                hourly_errors[hour][provider] = values["errors"]

        total_bucket = _empty_bucket()
        for bucket in provider_totals.values():
            for field in BUCKET_FIELDS:
                total_bucket[field] += bucket[field]

        total_calls = total_bucket["cached"] + total_bucket["uncached"]
        totals = TotalMetrics(
            **_to_provider_metrics(total_bucket, hours),
            total_calls_per_hour=round(total_calls / hours, 1) if hours > 0 else 0,
        )

        def series(rows: dict[str, dict[str, int]]) -> list[HourlyDataPoint]:
            # hour_slots is newest first
            return [HourlyDataPoint(hour=hour, **rows[hour]) for hour in reversed(hour_slots)]

        return ApiMetricsSummary(
            providers={
                provider: ProviderMetrics(**_to_provider_metrics(bucket, hours))
                for provider, bucket in provider_totals.items()
            },
            totals=totals,
            hourly=series(hourly_uncached),
            hourly_cached=series(hourly_cached),
            hourly_errors=series(hourly_errors),
        )
