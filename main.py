"""
mediacache entry point.

Usage:
    python main.py movie alien        # search
    python main.py book               # trending
    python main.py game zelda --metrics
"""

import argparse
import asyncio
import sys
from datetime import timedelta

from loguru import logger

from mediacache.datasource import MediaType
from mediacache.search import MediaSearchService
from mediacache.services import (
    CacheService,
    CacheStore,
    DetailStore,
    MetricsRecorder,
    RateLimiterRegistry,
    ServiceClient,
    close_shared_store,
    connect_shared_store,
    drain_background,
    tiers_from_settings,
)
from mediacache.settings import global_settings


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Cached media metadata lookups")
    parser.add_argument("media_type", choices=[t.value for t in MediaType])
    parser.add_argument("query", nargs="*", help="Search terms; omit for trending")
    parser.add_argument(
        "--metrics", action="store_true", help="Print API usage for the last 24 hours"
    )
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> None:
    """Run one lookup and shut down cleanly."""
    args = parse_args(argv)
    settings = global_settings

    logger.remove()
    logger.add(sys.stderr, level=settings.log_level.upper())

    shared = await connect_shared_store(settings.redis_url, settings.redis_socket_timeout)
    metrics = MetricsRecorder(shared)
    cache = CacheService(
        CacheStore(shared, max_entries=settings.cache_max_entries, debug=settings.dev_mode),
        DetailStore(
            shared,
            ttl=timedelta(hours=settings.detail_cache_ttl_hours),
            max_entries=settings.detail_cache_max_entries,
        ),
        metrics,
        tiers_from_settings(settings),
        dev_mode=settings.dev_mode,
        debug=settings.dev_mode,
    )
    client = ServiceClient(
        RateLimiterRegistry.from_settings(settings),
        default_timeout=settings.http_timeout,
        max_retries=settings.fetch_max_retries,
        base_delay_ms=settings.fetch_base_delay_ms,
        max_delay_ms=settings.fetch_max_delay_ms,
    )
    service = MediaSearchService(cache, client, settings)

    try:
        query = " ".join(args.query)
        if query:
            found = await service.search(args.media_type, query)
        else:
            found = await service.trending(args.media_type)

        for result in found.results:
            year = f" ({result.release_year})" if result.release_year else ""
            print(f"{result.external_id}\t{result.title}{year}")

        if found.debug is not None:
            logger.info(f"Cache: {found.debug.source} {found.debug.key}")

        if args.metrics:
            # Let this run's counters land before reading them back
            await drain_background()
            summary = await metrics.get_api_metrics(hours=24)
            if summary is None:
                print("Metrics unavailable (no Redis)")
            else:
                print(summary.model_dump_json(indent=2))

        stats = service.debug_stats()
        if stats is not None:
            logger.debug(f"Stats: {stats}")

    finally:
        await drain_background()
        await client.close()
        await close_shared_store(shared)


if __name__ == "__main__":
    asyncio.run(main())
