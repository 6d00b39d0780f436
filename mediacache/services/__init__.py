"""
Service layer infrastructure - caching and resilience for upstream API calls.

Provides:
- CacheService: Coalescing, stale-while-revalidate cache orchestrator
- CacheStore / DetailStore: Redis with in-process fallback
- RequestDeduplicator: One in-flight fetch per key
- TokenBucket / RateLimiterRegistry: Per-provider admission control
- resilient_fetch / ServiceClient: Retrying HTTP access
- MetricsRecorder: Hourly per-provider usage counters
"""

from mediacache.services.errors import (
    ServiceError,
    CacheError,
    UpstreamStatusError,
    UpstreamUnavailableError,
    RequestTimeoutError,
    ProviderNotConfiguredError,
)
from mediacache.services.types import (
    CacheEntry,
    CacheTier,
    CachedResults,
    CacheDebugInfo,
    CacheStats,
    DetailEntry,
    SearchResult,
    TierPolicy,
)
from mediacache.services.shared_store import (
    Connected,
    Unavailable,
    SharedStore,
    connect_shared_store,
    close_shared_store,
)
from mediacache.services.background import spawn_background, drain_background
from mediacache.services.store import CacheStore, DetailStore
from mediacache.services.deduplicator import RequestDeduplicator
from mediacache.services.metrics import MetricsRecorder, ApiMetricsSummary
from mediacache.services.cache import (
    CacheService,
    search_key,
    discover_key,
    detail_key,
    tiers_from_settings,
)
from mediacache.services.rate_limiter import TokenBucket, RateLimiterRegistry
from mediacache.services.fetch import resilient_fetch
from mediacache.services.client import ServiceClient

__all__ = [
    # Errors
    "ServiceError",
    "CacheError",
    "UpstreamStatusError",
    "UpstreamUnavailableError",
    "RequestTimeoutError",
    "ProviderNotConfiguredError",
    # Types
    "CacheEntry",
    "CacheTier",
    "CachedResults",
    "CacheDebugInfo",
    "CacheStats",
    "DetailEntry",
    "SearchResult",
    "TierPolicy",
    # Shared store
    "Connected",
    "Unavailable",
    "SharedStore",
    "connect_shared_store",
    "close_shared_store",
    # Background tasks
    "spawn_background",
    "drain_background",
    # Cache
    "CacheStore",
    "DetailStore",
    "RequestDeduplicator",
    "CacheService",
    "search_key",
    "discover_key",
    "detail_key",
    "tiers_from_settings",
    # Metrics
    "MetricsRecorder",
    "ApiMetricsSummary",
    # Rate limiting and HTTP
    "TokenBucket",
    "RateLimiterRegistry",
    "resilient_fetch",
    "ServiceClient",
]
