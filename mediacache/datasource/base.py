"""
Base search provider interface.
"""

from abc import ABC, abstractmethod
from enum import Enum

from pydantic import BaseModel

from mediacache.services.client import ServiceClient
from mediacache.services.types import SearchResult

# Normalized results per upstream call
RESULT_LIMIT = 20


class MediaType(str, Enum):
    """Media types tracked by the application."""

    BOOK = "book"
    MOVIE = "movie"
    SERIES = "series"
    GAME = "game"
    PODCAST = "podcast"


class SimilarSeed(BaseModel):
    """An item the user already tracks, used to find similar ones."""

    external_id: str
    title: str
    genre: str | None = None


class BaseSearchProvider(ABC):
    """
    Abstract base class for all metadata providers.

    All providers should:
    - Use ServiceClient for HTTP requests (rate limiting, retries)
    - Return normalized SearchResult models
    - Let upstream errors propagate; the cache decides what to do with them
    """

    def __init__(self, client: ServiceClient):
        self.client = client

    @property
    @abstractmethod
    def media_type(self) -> MediaType:
        """Media type this provider serves."""
        ...

    @property
    @abstractmethod
    def service_id(self) -> str:
        """Provider label for rate limiting and metrics."""
        ...

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if the provider has the credentials it needs."""
        ...

    @abstractmethod
    async def search(self, query: str) -> list[SearchResult]:
        """Search the upstream catalogue."""
        ...

    @abstractmethod
    async def trending(self) -> list[SearchResult]:
        """Currently popular items."""
        ...

    async def similar(self, seed: SimilarSeed) -> list[SearchResult]:
        """Items similar to seed. Providers without such an API return []."""
        return []
