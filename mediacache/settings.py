import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Runtime
    dev_mode: bool = Field(default=False, alias="DEV_MODE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Shared cache (Redis). Empty means in-process caching only.
    redis_url: str = Field(default="", alias="REDIS_URL")
    redis_socket_timeout: float = Field(default=2.0, alias="REDIS_SOCKET_TIMEOUT")

    # Upstream credentials
    tmdb_api_key: str = Field(default="", alias="TMDB_API_KEY")
    twitch_client_id: str = Field(default="", alias="TWITCH_CLIENT_ID")
    twitch_client_secret: str = Field(default="", alias="TWITCH_CLIENT_SECRET")

    # HTTP
    http_timeout: float = Field(default=10.0, alias="HTTP_TIMEOUT")
    fetch_max_retries: int = Field(default=2, alias="FETCH_MAX_RETRIES")
    fetch_base_delay_ms: int = Field(default=500, alias="FETCH_BASE_DELAY_MS")
    fetch_max_delay_ms: int = Field(default=5000, alias="FETCH_MAX_DELAY_MS")

    # In-process fallback capacity
    cache_max_entries: int = Field(default=500, alias="CACHE_MAX_ENTRIES")
    detail_cache_max_entries: int = Field(
        default=200, alias="DETAIL_CACHE_MAX_ENTRIES"
    )
    detail_cache_ttl_hours: float = Field(default=24, alias="DETAIL_CACHE_TTL_HOURS")

    # Freshness tiers (minutes)
    search_stale_minutes: float = Field(default=5, alias="SEARCH_STALE_MINUTES")
    search_expire_minutes: float = Field(default=5, alias="SEARCH_EXPIRE_MINUTES")
    trending_stale_minutes: float = Field(default=30, alias="TRENDING_STALE_MINUTES")
    trending_expire_minutes: float = Field(
        default=120, alias="TRENDING_EXPIRE_MINUTES"
    )
    similar_stale_minutes: float = Field(default=30, alias="SIMILAR_STALE_MINUTES")
    similar_expire_minutes: float = Field(default=240, alias="SIMILAR_EXPIRE_MINUTES")

    # Token buckets: burst capacity / sustained tokens per second
    tmdb_rate_burst: int = Field(default=40, alias="TMDB_RATE_BURST")
    tmdb_rate_per_second: float = Field(default=4, alias="TMDB_RATE_PER_SECOND")
    igdb_rate_burst: int = Field(default=4, alias="IGDB_RATE_BURST")
    igdb_rate_per_second: float = Field(default=4, alias="IGDB_RATE_PER_SECOND")
    openlibrary_rate_burst: int = Field(default=5, alias="OPENLIBRARY_RATE_BURST")
    openlibrary_rate_per_second: float = Field(
        default=5, alias="OPENLIBRARY_RATE_PER_SECOND"
    )
    apple_rate_burst: int = Field(default=20, alias="APPLE_RATE_BURST")
    apple_rate_per_second: float = Field(default=0.33, alias="APPLE_RATE_PER_SECOND")


# Env vars are matched by alias; unrelated variables are ignored.
global_settings = Settings.model_validate(dict(os.environ))
