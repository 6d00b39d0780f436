"""
Apple Podcasts data source (iTunes Search API).

API Documentation: https://performance-partners.apple.com/search-api
No API key required; iTunes allows roughly 20 requests per minute.
"""

from typing import Any

from loguru import logger

from mediacache.datasource.base import RESULT_LIMIT, BaseSearchProvider, MediaType
from mediacache.services.types import SearchResult
from mediacache.utils import year_from_date

SEARCH_URL = "https://itunes.apple.com/search"
TOP_PODCASTS_URL = (
    f"https://rss.applemarketingtools.com/api/v2/us/podcasts/top/{RESULT_LIMIT}/podcasts.json"
)


class ApplePodcastsSource(BaseSearchProvider):
    """Apple Podcasts. There is no similar-podcasts endpoint."""

    SERVICE_ID = "apple"

    @property
    def media_type(self) -> MediaType:
        return MediaType.PODCAST

    @property
    def service_id(self) -> str:
        return self.SERVICE_ID

    def is_configured(self) -> bool:
        return True

    async def search(self, query: str) -> list[SearchResult]:
        data = await self.client.request_json(
            self.SERVICE_ID,
            SEARCH_URL,
            params={
                "term": query,
                "media": "podcast",
                "entity": "podcast",
                "limit": str(RESULT_LIMIT),
            },
        )
        results = [self._transform_search(item) for item in data.get("results", [])]
        logger.debug(f"iTunes search: {len(results)} results")
        return results[:RESULT_LIMIT]

    async def trending(self) -> list[SearchResult]:
        data = await self.client.request_json(self.SERVICE_ID, TOP_PODCASTS_URL)
        items = (data.get("feed") or {}).get("results", [])
        return [self._transform_chart(item) for item in items[:RESULT_LIMIT]]

    def _transform_search(self, item: dict[str, Any]) -> SearchResult:
        return SearchResult(
            external_id=str(item["collectionId"]),
            title=item.get("collectionName") or "",
            cover_url=item.get("artworkUrl600") or item.get("artworkUrl100"),
            release_year=year_from_date(item.get("releaseDate")),
            meta={
                "host": item.get("artistName"),
                "total_episodes": item.get("trackCount"),
                "current_episode": None,
                "apple_podcast_id": item["collectionId"],
            },
        )

    def _transform_chart(self, item: dict[str, Any]) -> SearchResult:
        # Chart entries carry the id as a string and only the small artwork
        return SearchResult(
            external_id=str(item["id"]),
            title=item.get("name") or "",
            cover_url=item.get("artworkUrl100"),
            release_year=year_from_date(item.get("releaseDate")),
            meta={
                "host": item.get("artistName"),
                "total_episodes": None,
                "current_episode": None,
                "apple_podcast_id": item["id"],
            },
        )
