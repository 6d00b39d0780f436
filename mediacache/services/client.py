"""
ServiceClient - Shared async HTTP client for upstream metadata providers.

Combines:
- TokenBucket admission per provider (RateLimiterRegistry)
- resilient_fetch for retry, backoff and Retry-After handling
- Mapping of HTTP and transport failures to service errors
"""

from typing import Any

import httpx
from loguru import logger

from mediacache.services.errors import (
    RequestTimeoutError,
    UpstreamStatusError,
    UpstreamUnavailableError,
)
from mediacache.services.fetch import resilient_fetch
from mediacache.services.rate_limiter import RateLimiterRegistry


class ServiceClient:
    """
    HTTP client used by every provider.

    Usage:
        client = ServiceClient(limiters)

        data = await client.request_json(
            "tmdb",
            "https://api.themoviedb.org/3/search/movie",
            params={"api_key": key, "query": "alien"},
        )
    """

    def __init__(
        self,
        limiters: RateLimiterRegistry | None = None,
        default_timeout: float = 10.0,
        max_retries: int = 2,
        base_delay_ms: float = 500,
        max_delay_ms: float = 5000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._limiters = limiters or RateLimiterRegistry()
        self._default_timeout = default_timeout
        self._max_retries = max_retries
        self._base_delay_ms = base_delay_ms
        self._max_delay_ms = max_delay_ms
        self._transport = transport

        # HTTP client (lazy initialization)
        self._http_client: httpx.AsyncClient | None = None

    @property
    def limiters(self) -> RateLimiterRegistry:
        return self._limiters

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._default_timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._http_client

    async def request_json(
        self,
        service_id: str,
        url: str,
        *,
        method: str = "GET",
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        data: dict[str, Any] | None = None,
        content: str | bytes | None = None,
        rate_limited: bool = True,
    ) -> Any:
        """
        Make a rate-limited, retried request and decode the JSON body.

        Args:
            service_id: Provider label (rate limiter and error attribution)
            url: Full URL to request
            method: HTTP method
            params: Query parameters
            headers: Request headers
            data: Form body
            content: Raw body (e.g. IGDB Apicalypse queries)
            rate_limited: Acquire the provider's token first

        Returns:
            Decoded JSON

        Raises:
            UpstreamStatusError: Non-2xx status after retries
            RequestTimeoutError: Last attempt timed out
            UpstreamUnavailableError: Last attempt failed at the transport level
        """
        limiter = self._limiters.get(service_id) if rate_limited else None
        if limiter is not None:
            await limiter.acquire()

        request_kwargs: dict[str, Any] = {"params": params, "headers": headers}
        if data is not None:
            request_kwargs["data"] = data
        if content is not None:
            request_kwargs["content"] = content

        try:
            response = await resilient_fetch(
                url,
                method=method,
                client=self._get_http_client(),
                max_retries=self._max_retries,
                base_delay_ms=self._base_delay_ms,
                max_delay_ms=self._max_delay_ms,
                **request_kwargs,
            )
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(service_id, self._default_timeout) from e
        except httpx.TransportError as e:
            raise UpstreamUnavailableError(str(e), service_id=service_id) from e

        if not response.is_success:
            raise UpstreamStatusError(service_id, response.status_code, response.text)

        return response.json()

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("ServiceClient closed")

    async def __aenter__(self) -> "ServiceClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
