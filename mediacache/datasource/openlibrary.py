"""
OpenLibrary data source for books.

API Documentation: https://openlibrary.org/developers/api
No API key required; no documented rate limit, so requests are kept polite.
"""

import re
from typing import Any
from urllib.parse import quote

from loguru import logger

from mediacache.datasource.base import (
    RESULT_LIMIT,
    BaseSearchProvider,
    MediaType,
    SimilarSeed,
)
from mediacache.services.types import SearchResult

BASE_URL = "https://openlibrary.org"

SEARCH_FIELDS = (
    "key,title,author_name,first_publish_year,number_of_pages_median,"
    "isbn,cover_i,subject,language,publisher"
)

# Common ISO 639-2/3 language codes
LANGUAGE_NAMES = {
    "eng": "English",
    "spa": "Spanish",
    "fre": "French",
    "ger": "German",
    "ita": "Italian",
    "por": "Portuguese",
    "rus": "Russian",
    "jpn": "Japanese",
    "chi": "Chinese",
    "kor": "Korean",
    "ara": "Arabic",
    "hin": "Hindi",
    "dut": "Dutch",
    "pol": "Polish",
    "swe": "Swedish",
    "nor": "Norwegian",
    "dan": "Danish",
    "fin": "Finnish",
    "tur": "Turkish",
    "gre": "Greek",
    "heb": "Hebrew",
    "tha": "Thai",
    "vie": "Vietnamese",
    "ind": "Indonesian",
    "cat": "Catalan",
    "ces": "Czech",
    "hun": "Hungarian",
    "rom": "Romanian",
    "ukr": "Ukrainian",
}

# Subjects that are lists, awards or library flags rather than genres
NOISY_SUBJECT_RE = re.compile(
    r"^(nyt:|award:|fiction$|accessible book|protected daisy|in library|large type"
    r"|internet archive|overdrive|open library|long now|new york times|lending library)",
    re.IGNORECASE,
)


def language_name(code: str | None) -> str | None:
    if not code:
        return None
    return LANGUAGE_NAMES.get(code, code)


def cover_url(cover_id: int | None, size: str = "L") -> str | None:
    if not cover_id:
        return None
    return f"https://covers.openlibrary.org/b/id/{cover_id}-{size}.jpg"


def extract_genres(subjects: list[str] | None, limit: int = 2) -> str | None:
    """Up to `limit` clean genre labels from OpenLibrary subjects."""
    if not subjects:
        return None
    clean = [
        s for s in subjects if not NOISY_SUBJECT_RE.match(s) and 2 < len(s) < 40
    ][:limit]
    return ", ".join(clean) if clean else None


def _first(values: list[Any] | None) -> Any:
    return values[0] if values else None


def subject_slug(subject: str) -> str:
    """OpenLibrary subject path segment: lowercase, underscores."""
    return quote(subject.strip().lower().replace(" ", "_"))


class OpenLibrarySource(BaseSearchProvider):
    """
    OpenLibrary books.

    Similar items are looked up by the seed's first genre, since
    OpenLibrary has no recommendations endpoint.
    """

    SERVICE_ID = "openlibrary"

    @property
    def media_type(self) -> MediaType:
        return MediaType.BOOK

    @property
    def service_id(self) -> str:
        return self.SERVICE_ID

    def is_configured(self) -> bool:
        """OpenLibrary doesn't require an API key."""
        return True

    async def search(self, query: str) -> list[SearchResult]:
        data = await self.client.request_json(
            self.SERVICE_ID,
            f"{BASE_URL}/search.json",
            params={"q": query, "fields": SEARCH_FIELDS, "limit": str(RESULT_LIMIT)},
        )
        results = [self._transform_doc(doc) for doc in data.get("docs", [])]
        logger.debug(f"OpenLibrary search: {len(results)} results")
        return results

    async def trending(self) -> list[SearchResult]:
        data = await self.client.request_json(
            self.SERVICE_ID,
            f"{BASE_URL}/trending/daily.json",
            params={"limit": str(RESULT_LIMIT)},
        )
        return [self._transform_doc(doc) for doc in data.get("works", [])[:RESULT_LIMIT]]

    async def similar(self, seed: SimilarSeed) -> list[SearchResult]:
        genre = (seed.genre or "").split(",")[0].strip()
        if not genre:
            return []
        return await self.fetch_by_subject(genre)

    async def fetch_by_subject(self, subject: str) -> list[SearchResult]:
        """Works filed under a subject, e.g. "science fiction"."""
        data = await self.client.request_json(
            self.SERVICE_ID,
            f"{BASE_URL}/subjects/{subject_slug(subject)}.json",
            params={"limit": str(RESULT_LIMIT)},
        )
        return [self._transform_work(work) for work in data.get("works", [])]

    async def fetch_description(self, work_key: str) -> str | None:
        """
        Book description from the works endpoint.

        Args:
            work_key: The /works/OL...W key from search results
        """
        data = await self.client.request_json(self.SERVICE_ID, f"{BASE_URL}{work_key}.json")
        description = data.get("description")
        if not description:
            return None
        # Either a plain string or {"type": "/type/text", "value": "..."}
        if isinstance(description, dict):
            return description.get("value")
        return str(description)

    def _transform_doc(self, doc: dict[str, Any]) -> SearchResult:
        """Search and trending documents share one shape."""
        return SearchResult(
            external_id=doc["key"],
            title=doc.get("title") or "",
            cover_url=cover_url(doc.get("cover_i")),
            release_year=doc.get("first_publish_year"),
            meta={
                "author": _first(doc.get("author_name")),
                "genre": extract_genres(doc.get("subject")),
                "page_count": doc.get("number_of_pages_median"),
                "isbn": _first(doc.get("isbn")),
                "language": language_name(_first(doc.get("language"))),
                "publisher": _first(doc.get("publisher")),
            },
        )

    def _transform_work(self, work: dict[str, Any]) -> SearchResult:
        """Subject listings use `authors` and `cover_id` instead."""
        author = _first(work.get("authors"))
        return SearchResult(
            external_id=work["key"],
            title=work.get("title") or "",
            cover_url=cover_url(work.get("cover_id")),
            release_year=work.get("first_publish_year"),
            meta={
                "author": author.get("name") if isinstance(author, dict) else None,
                "genre": extract_genres(work.get("subject")),
                "page_count": None,
                "isbn": None,
                "language": None,
                "publisher": None,
            },
        )
