"""
MediaSearchService - provider lookups routed through the cache.
"""

from typing import Any

from mediacache.datasource import (
    MediaType,
    MovieDetails,
    OpenLibrarySource,
    SimilarSeed,
    TmdbMovieSource,
    TmdbSeriesSource,
    get_search_provider,
)
from mediacache.datasource.base import BaseSearchProvider
from mediacache.services.cache import (
    CacheService,
    detail_key,
    discover_key,
    search_key,
)
from mediacache.services.client import ServiceClient
from mediacache.services.types import CachedResults, CacheTier
from mediacache.settings import Settings, global_settings
from mediacache.utils import normalize_query


class MediaSearchService:
    """
    Search, trending, similar and detail lookups for every media type.

    Usage:
        service = MediaSearchService(cache, client)
        found = await service.search(MediaType.MOVIE, "alien")
    """

    def __init__(
        self,
        cache: CacheService,
        client: ServiceClient,
        settings: Settings = global_settings,
    ):
        self.cache = cache
        self.client = client
        self.settings = settings
        self._providers: dict[MediaType, BaseSearchProvider] = {}

    def provider(self, media_type: MediaType | str) -> BaseSearchProvider:
        media_type = MediaType(media_type)
        if media_type not in self._providers:
            self._providers[media_type] = get_search_provider(
                media_type, self.client, self.settings
            )
        return self._providers[media_type]

    async def search(self, media_type: MediaType | str, query: str) -> CachedResults:
        """Search one provider. Blank queries return nothing and skip the cache."""
        query = normalize_query(query)
        if not query:
            return CachedResults(results=[])

        provider = self.provider(media_type)
        return await self.cache.get_or_fetch(
            search_key(provider.media_type.value, query),
            CacheTier.SEARCH,
            provider.service_id,
            lambda: provider.search(query),
        )

    async def trending(self, media_type: MediaType | str) -> CachedResults:
        provider = self.provider(media_type)
        return await self.cache.get_or_fetch(
            discover_key("trending", provider.media_type.value),
            CacheTier.TRENDING,
            provider.service_id,
            provider.trending,
        )

    async def similar(self, media_type: MediaType | str, seed: SimilarSeed) -> CachedResults:
        provider = self.provider(media_type)
        return await self.cache.get_or_fetch(
            discover_key("similar", provider.media_type.value, seed.external_id),
            CacheTier.SIMILAR,
            provider.service_id,
            lambda: provider.similar(seed),
        )

    async def movie_details(self, tmdb_id: int) -> MovieDetails:
        provider = self.provider(MediaType.MOVIE)
        assert isinstance(provider, TmdbMovieSource)

        async def fetch() -> dict[str, Any]:
            details = await provider.fetch_details(tmdb_id)
            return details.model_dump()

        # Stored as a plain dict so it survives the Redis round trip
        value = await self.cache.get_or_fetch_value(
            detail_key("movie", tmdb_id), provider.service_id, fetch
        )
        return MovieDetails.model_validate(value)

    async def series_seasons(self, tmdb_id: int) -> int | None:
        provider = self.provider(MediaType.SERIES)
        assert isinstance(provider, TmdbSeriesSource)
        return await self.cache.get_or_fetch_value(
            detail_key("series-seasons", tmdb_id),
            provider.service_id,
            lambda: provider.fetch_season_count(tmdb_id),
        )

    async def book_description(self, work_key: str) -> str | None:
        provider = self.provider(MediaType.BOOK)
        assert isinstance(provider, OpenLibrarySource)
        return await self.cache.get_or_fetch_value(
            detail_key("book-description", work_key),
            provider.service_id,
            lambda: provider.fetch_description(work_key),
        )

    def debug_stats(self) -> dict[str, Any] | None:
        """Cache and rate limiter counters, only in dev mode."""
        if not self.settings.dev_mode:
            return None
        return {
            "cache": self.cache.get_stats().to_dict(),
            "rate_limiters": [s.to_dict() for s in self.client.limiters.all_stats()],
        }
