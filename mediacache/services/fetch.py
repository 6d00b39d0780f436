"""
resilient_fetch - httpx request wrapper with retry, exponential backoff
and jitter.

Retries on transport errors and retryable HTTP statuses (429, 500-503).
Honors `Retry-After` on 429 responses. Returns the response of the first
attempt with a non-retryable status, or of the last attempt. Raises only
when the last attempt fails with a transport error.
"""

import asyncio
import random
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable

import httpx
from loguru import logger


def is_retryable(status: int) -> bool:
    """429 (rate limited) and 500-503 (transient server errors)."""
    return status == 429 or 500 <= status <= 503


def parse_retry_after(
    response: httpx.Response, now: datetime | None = None
) -> float | None:
    """
    Parse a `Retry-After` header into milliseconds.

    Supports integer delta-seconds and HTTP-date. Returns None when the header is
    missing, unparseable, or does not point to the future.
    """
    header = response.headers.get("Retry-After")
    if not header:
        return None

    header = header.strip()
    if header.isascii() and header.isdigit():
        seconds = int(header)
        return seconds * 1000 if seconds > 0 else None

    try:
        retry_at = parsedate_to_datetime(header)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)

    delay_ms = (retry_at - (now or datetime.now(timezone.utc))).total_seconds() * 1000
    return delay_ms if delay_ms > 0 else None


def backoff_delay_ms(attempt: int, base_delay_ms: float, max_delay_ms: float) -> float:
    """Capped exponential delay plus up to 50% random jitter."""
    exponential_ms = min(base_delay_ms * 2**attempt, max_delay_ms)
    return exponential_ms + random.uniform(0, exponential_ms * 0.5)


async def resilient_fetch(
    url: str | httpx.URL,
    *,
    method: str = "GET",
    client: httpx.AsyncClient | None = None,
    max_retries: int = 2,
    base_delay_ms: float = 500,
    max_delay_ms: float = 5000,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **request_kwargs: Any,
) -> httpx.Response:
    """
    Send a request, retrying transient failures.

    Args:
        url: Full URL to request
        method: HTTP method
        client: Shared client; a temporary one is used when omitted
        max_retries: Retries after the initial attempt
        base_delay_ms: Base delay, doubled each attempt
        max_delay_ms: Cap on the exponential part of the delay
        sleep: Awaitable sleep taking seconds (injectable for tests)
        **request_kwargs: Passed to `httpx.AsyncClient.request`
            (params, headers, data, content, json, timeout)

    Returns:
        The final httpx.Response, whatever its status

    Raises:
        httpx.TransportError: If the last attempt fails at the transport level
    """
    if client is None:
        async with httpx.AsyncClient() as temp_client:
            return await resilient_fetch(
                url,
                method=method,
                client=temp_client,
                max_retries=max_retries,
                base_delay_ms=base_delay_ms,
                max_delay_ms=max_delay_ms,
                sleep=sleep,
                **request_kwargs,
            )

    for attempt in range(max_retries + 1):
        try:
            response = await client.request(method, url, **request_kwargs)
        except httpx.TransportError as e:
            if attempt == max_retries:
                raise

            delay_ms = round(backoff_delay_ms(attempt, base_delay_ms, max_delay_ms))
            logger.debug(
                f"resilient_fetch network error, retrying: {url} "
                f"({type(e).__name__}: {e}) attempt={attempt} delay={delay_ms}ms"
            )
            await sleep(delay_ms / 1000)
            continue

        if not is_retryable(response.status_code) or attempt == max_retries:
            return response

        retry_after_ms = (
            parse_retry_after(response) if response.status_code == 429 else None
        )
        if retry_after_ms is not None:
            delay_ms = retry_after_ms
        else:
            delay_ms = round(backoff_delay_ms(attempt, base_delay_ms, max_delay_ms))

        logger.debug(
            f"resilient_fetch retrying: {url} status={response.status_code} "
            f"attempt={attempt} delay={delay_ms:.0f}ms"
        )
        # Release the connection before sleeping
        await response.aclose()
        await sleep(delay_ms / 1000)

    # The loop always returns or raises on its last attempt
    raise RuntimeError("resilient_fetch: unreachable")
