"""
IGDB data source for video games.

API Documentation: https://api-docs.igdb.com/
Auth: Twitch client-credentials OAuth token
Rate limit: 4 requests/second
"""

import time
from typing import Any

from loguru import logger

from mediacache.datasource.base import (
    RESULT_LIMIT,
    BaseSearchProvider,
    MediaType,
    SimilarSeed,
)
from mediacache.services.client import ServiceClient
from mediacache.services.errors import ProviderNotConfiguredError, ServiceError
from mediacache.services.types import SearchResult
from mediacache.utils import year_from_timestamp

GAMES_URL = "https://api.igdb.com/v4/games"
TOKEN_URL = "https://id.twitch.tv/oauth2/token"

GAME_FIELDS = (
    "id, name, cover.image_id, platforms.name, genres.name, first_release_date, "
    "summary, involved_companies.company.name, involved_companies.developer, "
    "involved_companies.publisher, aggregated_rating, rating"
)

# Refresh the token this long before Twitch says it expires
TOKEN_REFRESH_MARGIN_SECONDS = 60

TRENDING_WINDOW_SECONDS = 90 * 24 * 60 * 60

# Shorter display names for verbose IGDB platforms
PLATFORM_NAMES = {"PC (Microsoft Windows)": "PC"}


def cover_url(image_id: str | None) -> str | None:
    if not image_id:
        return None
    return f"https://images.igdb.com/igdb/image/upload/t_cover_big/{image_id}.jpg"


def escape_query(query: str) -> str:
    """Escape backslashes and quotes for an Apicalypse string literal."""
    return query.replace("\\", "\\\\").replace('"', '\\"')


def _joined(names: list[str]) -> str | None:
    return ", ".join(names) if names else None


def transform_game(game: dict[str, Any]) -> SearchResult:
    """Map an IGDB game object to a SearchResult."""
    companies = game.get("involved_companies") or []
    developers = [c["company"]["name"] for c in companies if c.get("developer")]
    publishers = [c["company"]["name"] for c in companies if c.get("publisher")]
    platforms = [
        PLATFORM_NAMES.get(p["name"], p["name"]) for p in game.get("platforms") or []
    ]
    aggregated = game.get("aggregated_rating")
    rating = game.get("rating")

    return SearchResult(
        external_id=str(game["id"]),
        title=game.get("name") or "",
        cover_url=cover_url((game.get("cover") or {}).get("image_id")),
        release_year=year_from_timestamp(game.get("first_release_date")),
        meta={
            "igdb_id": game["id"],
            "platform": _joined(platforms),
            "genre": _joined([g["name"] for g in game.get("genres") or []]),
            "description": game.get("summary"),
            "developer": _joined(developers),
            "publisher": _joined(publishers),
            "critic_score": round(aggregated) if isinstance(aggregated, (int, float)) else None,
            "user_score": round(rating) if isinstance(rating, (int, float)) else None,
        },
    )


class IgdbSource(BaseSearchProvider):
    """
    IGDB games.

    Holds the Twitch access token for the life of the process and
    refreshes it shortly before it expires.
    """

    SERVICE_ID = "igdb"

    def __init__(self, client: ServiceClient, client_id: str = "", client_secret: str = ""):
        super().__init__(client)
        self.client_id = client_id
        self.client_secret = client_secret
        self._token: str | None = None
        self._token_expires_at = 0.0

    @property
    def media_type(self) -> MediaType:
        return MediaType.GAME

    @property
    def service_id(self) -> str:
        return self.SERVICE_ID

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    async def _access_token(self) -> str:
        if not self.is_configured():
            raise ProviderNotConfiguredError(
                self.SERVICE_ID, ["TWITCH_CLIENT_ID", "TWITCH_CLIENT_SECRET"]
            )

        if self._token and time.time() < self._token_expires_at - TOKEN_REFRESH_MARGIN_SECONDS:
            return self._token

        # The OAuth endpoint is not part of the IGDB request budget
        data = await self.client.request_json(
            self.SERVICE_ID,
            TOKEN_URL,
            method="POST",
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "client_credentials",
            },
            rate_limited=False,
        )
        token = data.get("access_token")
        if not token:
            raise ServiceError("Twitch OAuth returned no access token", self.SERVICE_ID)

        self._token = token
        self._token_expires_at = time.time() + float(data.get("expires_in", 0))
        logger.debug("IGDB access token refreshed")
        return token

    async def _query(self, body: str) -> list[dict[str, Any]]:
        token = await self._access_token()
        return await self.client.request_json(
            self.SERVICE_ID,
            GAMES_URL,
            method="POST",
            headers={
                "Client-ID": self.client_id,
                "Authorization": f"Bearer {token}",
                "Content-Type": "text/plain",
                "Accept": "application/json",
            },
            content=body,
        )

    async def search(self, query: str) -> list[SearchResult]:
        body = f'search "{escape_query(query)}"; fields {GAME_FIELDS}; limit {RESULT_LIMIT};'
        return [transform_game(g) for g in await self._query(body)]

    async def trending(self) -> list[SearchResult]:
        """Recent releases (last 90 days) with the most ratings."""
        since = int(time.time()) - TRENDING_WINDOW_SECONDS
        body = (
            f"fields {GAME_FIELDS}; "
            f"where first_release_date > {since} & total_rating_count > 5; "
            f"sort total_rating_count desc; limit {RESULT_LIMIT};"
        )
        return [transform_game(g) for g in await self._query(body)]

    async def similar(self, seed: SimilarSeed) -> list[SearchResult]:
        if not seed.external_id.isdigit():
            return []
        return await self.fetch_similar([int(seed.external_id)])

    async def fetch_similar(self, igdb_ids: list[int]) -> list[SearchResult]:
        """
        Games similar to any of igdb_ids, in one batched call.

        Results are flattened across seeds, de-duplicated, and never
        include the seeds themselves.
        """
        if not igdb_ids:
            return []

        similar_fields = ", ".join(f"similar_games.{f}" for f in GAME_FIELDS.split(", "))
        id_list = ",".join(str(i) for i in igdb_ids)
        body = f"fields {similar_fields}; where id = ({id_list}); limit {len(igdb_ids)};"

        seeds = set(igdb_ids)
        seen: set[int] = set()
        similar: list[SearchResult] = []
        for result in await self._query(body):
            for game in result.get("similar_games") or []:
                if game["id"] in seen or game["id"] in seeds:
                    continue
                seen.add(game["id"])
                similar.append(transform_game(game))

        return similar[:RESULT_LIMIT]
