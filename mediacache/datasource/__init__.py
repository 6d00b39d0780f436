"""
Metadata providers, one per media type.
"""

from mediacache.datasource.apple_podcasts import ApplePodcastsSource
from mediacache.datasource.base import (
    RESULT_LIMIT,
    BaseSearchProvider,
    MediaType,
    SimilarSeed,
)
from mediacache.datasource.igdb import IgdbSource
from mediacache.datasource.openlibrary import OpenLibrarySource
from mediacache.datasource.tmdb import MovieDetails, TmdbMovieSource, TmdbSeriesSource
from mediacache.services.client import ServiceClient
from mediacache.settings import Settings, global_settings


def get_search_provider(
    media_type: MediaType,
    client: ServiceClient,
    settings: Settings = global_settings,
) -> BaseSearchProvider:
    """Provider for a media type. The set of media types is closed."""
    match MediaType(media_type):
        case MediaType.MOVIE:
            return TmdbMovieSource(client, settings.tmdb_api_key)
        case MediaType.SERIES:
            return TmdbSeriesSource(client, settings.tmdb_api_key)
        case MediaType.GAME:
            return IgdbSource(
                client, settings.twitch_client_id, settings.twitch_client_secret
            )
        case MediaType.BOOK:
            return OpenLibrarySource(client)
        case MediaType.PODCAST:
            return ApplePodcastsSource(client)


__all__ = [
    "RESULT_LIMIT",
    "BaseSearchProvider",
    "MediaType",
    "SimilarSeed",
    "MovieDetails",
    "TmdbMovieSource",
    "TmdbSeriesSource",
    "IgdbSource",
    "OpenLibrarySource",
    "ApplePodcastsSource",
    "get_search_provider",
]
