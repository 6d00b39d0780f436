"""
TMDB data source for movies and TV series.

API Documentation: https://developer.themoviedb.org/reference/intro/getting-started
Rate limit: roughly 40 requests per 10 seconds
Get API key at: https://www.themoviedb.org/settings/api
"""

from typing import Any

from loguru import logger
from pydantic import BaseModel

from mediacache.datasource.base import (
    RESULT_LIMIT,
    BaseSearchProvider,
    MediaType,
    SimilarSeed,
)
from mediacache.services.client import ServiceClient
from mediacache.services.errors import ProviderNotConfiguredError
from mediacache.services.types import SearchResult
from mediacache.utils import year_from_date

BASE_URL = "https://api.themoviedb.org/3"
IMAGE_BASE_URL = "https://image.tmdb.org/t/p/w200"

# Combined movie + TV genre ids, static to avoid extra API calls
TMDB_GENRES = {
    28: "Action",
    12: "Adventure",
    16: "Animation",
    35: "Comedy",
    80: "Crime",
    99: "Documentary",
    18: "Drama",
    10751: "Family",
    14: "Fantasy",
    36: "History",
    27: "Horror",
    10402: "Music",
    9648: "Mystery",
    10749: "Romance",
    878: "Sci-Fi",
    10770: "TV Movie",
    53: "Thriller",
    10752: "War",
    37: "Western",
    # TV-specific
    10759: "Action & Adventure",
    10762: "Kids",
    10763: "News",
    10764: "Reality",
    10765: "Sci-Fi & Fantasy",
    10766: "Soap",
    10767: "Talk",
    10768: "War & Politics",
}


class MovieDetails(BaseModel):
    """Extra movie details not included in search results."""

    director: str | None = None
    description: str | None = None
    runtime: int | None = None
    cast: str | None = None


def genre_label(ids: list[int] | None) -> str | None:
    """Names of the first two known genre ids, comma separated."""
    if not ids:
        return None
    names = [TMDB_GENRES[i] for i in ids[:2] if i in TMDB_GENRES]
    return ", ".join(names) if names else None


def poster_url(path: str | None) -> str | None:
    if not path:
        return None
    return f"{IMAGE_BASE_URL}{path}"


class _TmdbSource(BaseSearchProvider):
    """Shared request plumbing for the movie and series providers."""

    SERVICE_ID = "tmdb"
    # "movie" or "tv" in TMDB URLs
    PATH_SEGMENT = ""

    def __init__(self, client: ServiceClient, api_key: str = ""):
        super().__init__(client)
        self.api_key = api_key

    @property
    def service_id(self) -> str:
        return self.SERVICE_ID

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _get(self, path: str, **params: Any) -> dict[str, Any]:
        if not self.api_key:
            raise ProviderNotConfiguredError(self.SERVICE_ID, ["TMDB_API_KEY"])
        return await self.client.request_json(
            self.SERVICE_ID,
            f"{BASE_URL}{path}",
            params={"api_key": self.api_key, **params},
        )

    async def _list(self, path: str, **params: Any) -> list[SearchResult]:
        data = await self._get(path, **params)
        items = data.get("results", [])[:RESULT_LIMIT]
        results = [self._transform(item) for item in items]
        logger.debug(f"TMDB {path}: {len(results)} results")
        return results

    def _transform(self, item: dict[str, Any]) -> SearchResult:
        raise NotImplementedError

    async def search(self, query: str) -> list[SearchResult]:
        return await self._list(
            f"/search/{self.PATH_SEGMENT}", query=query, include_adult="false"
        )

    async def trending(self) -> list[SearchResult]:
        return await self._list(f"/trending/{self.PATH_SEGMENT}/week")

    async def similar(self, seed: SimilarSeed) -> list[SearchResult]:
        if not seed.external_id.isdigit():
            return []
        results = await self._list(
            f"/{self.PATH_SEGMENT}/{seed.external_id}/recommendations"
        )
        return [r for r in results if r.external_id != seed.external_id]


class TmdbMovieSource(_TmdbSource):
    """TMDB movies."""

    PATH_SEGMENT = "movie"

    @property
    def media_type(self) -> MediaType:
        return MediaType.MOVIE

    def _transform(self, item: dict[str, Any]) -> SearchResult:
        return SearchResult(
            external_id=str(item["id"]),
            title=item.get("title") or "",
            cover_url=poster_url(item.get("poster_path")),
            release_year=year_from_date(item.get("release_date")),
            meta={
                "tmdb_id": item["id"],
                # Needs a separate credits call, see fetch_details
                "director": None,
                "genre": genre_label(item.get("genre_ids")),
            },
        )

    async def fetch_details(self, tmdb_id: int) -> MovieDetails:
        """Director, description, runtime and top-billed cast."""
        data = await self._get(f"/movie/{tmdb_id}", append_to_response="credits")
        credits = data.get("credits") or {}

        director = next(
            (c.get("name") for c in credits.get("crew", []) if c.get("job") == "Director"),
            None,
        )
        cast_members = sorted(credits.get("cast", []), key=lambda c: c.get("order", 0))
        cast = ", ".join(c["name"] for c in cast_members[:3] if c.get("name"))

        return MovieDetails(
            director=director,
            description=data.get("overview") or None,
            runtime=data.get("runtime"),
            cast=cast or None,
        )


class TmdbSeriesSource(_TmdbSource):
    """TMDB TV series."""

    PATH_SEGMENT = "tv"

    @property
    def media_type(self) -> MediaType:
        return MediaType.SERIES

    def _transform(self, item: dict[str, Any]) -> SearchResult:
        return SearchResult(
            external_id=str(item["id"]),
            title=item.get("name") or "",
            cover_url=poster_url(item.get("poster_path")),
            release_year=year_from_date(item.get("first_air_date")),
            meta={
                "tmdb_id": item["id"],
                "genre": genre_label(item.get("genre_ids")),
                "total_seasons": None,
                "current_season": None,
            },
        )

    async def fetch_season_count(self, tmdb_id: int) -> int | None:
        """Number of seasons from the TV details endpoint."""
        data = await self._get(f"/tv/{tmdb_id}")
        return data.get("number_of_seasons")
