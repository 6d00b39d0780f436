"""Unit tests for resilient_fetch and its helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest

from mediacache.services.fetch import (
    backoff_delay_ms,
    is_retryable,
    parse_retry_after,
    resilient_fetch,
)

URL = "https://api.example.test/search"


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _client(responses: list[httpx.Response | Exception]) -> tuple[httpx.AsyncClient, list]:
    """AsyncClient that replays `responses` in order and records requests."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        outcome = responses[len(seen) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), seen


class TestHelpers:
    @pytest.mark.parametrize("status", [429, 500, 501, 502, 503])
    def test_retryable_statuses(self, status: int) -> None:
        assert is_retryable(status) is True

    @pytest.mark.parametrize("status", [200, 400, 401, 404, 504])
    def test_non_retryable_statuses(self, status: int) -> None:
        assert is_retryable(status) is False

    def test_retry_after_seconds(self) -> None:
        response = httpx.Response(429, headers={"Retry-After": "3"})
        assert parse_retry_after(response) == 3000

    def test_retry_after_http_date(self) -> None:
        now = datetime(2026, 2, 19, 14, 0, tzinfo=timezone.utc)
        later = format_datetime(now + timedelta(seconds=10), usegmt=True)
        response = httpx.Response(429, headers={"Retry-After": later})
        assert parse_retry_after(response, now=now) == 10_000

    def test_retry_after_in_the_past_is_ignored(self) -> None:
        now = datetime(2026, 2, 19, 14, 0, tzinfo=timezone.utc)
        earlier = format_datetime(now - timedelta(seconds=10), usegmt=True)
        response = httpx.Response(429, headers={"Retry-After": earlier})
        assert parse_retry_after(response, now=now) is None

    def test_retry_after_garbage_is_ignored(self) -> None:
        response = httpx.Response(429, headers={"Retry-After": "soon"})
        assert parse_retry_after(response) is None

    @pytest.mark.parametrize("value", ["inf", "1e9", "1_000", "2.5", "-3", "0"])
    def test_retry_after_accepts_only_positive_integer_seconds(self, value: str) -> None:
        response = httpx.Response(429, headers={"Retry-After": value})
        assert parse_retry_after(response) is None

    def test_retry_after_tolerates_whitespace(self) -> None:
        response = httpx.Response(429, headers={"Retry-After": " 4 "})
        assert parse_retry_after(response) == 4000

    @pytest.mark.asyncio
    async def test_unbounded_retry_after_falls_back_to_backoff(self) -> None:
        client, seen = _client(
            [httpx.Response(429, headers={"Retry-After": "inf"}), httpx.Response(200)]
        )
        sleep = RecordingSleep()

        response = await resilient_fetch(
            URL, client=client, sleep=sleep, base_delay_ms=100, max_delay_ms=1000
        )

        assert response.status_code == 200
        assert 0.1 <= sleep.calls[0] <= 0.15

    def test_backoff_is_capped_and_jittered(self) -> None:
        for attempt in range(6):
            delay = backoff_delay_ms(attempt, 500, 5000)
            exponential = min(500 * 2**attempt, 5000)
            assert exponential <= delay <= exponential * 1.5


class TestResilientFetch:
    @pytest.mark.asyncio
    async def test_success_needs_one_attempt(self) -> None:
        client, seen = _client([httpx.Response(200, json={"ok": True})])
        sleep = RecordingSleep()

        response = await resilient_fetch(URL, client=client, sleep=sleep)

        assert response.json() == {"ok": True}
        assert len(seen) == 1
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_honors_retry_after_on_429(self) -> None:
        client, seen = _client(
            [
                httpx.Response(429, headers={"Retry-After": "2"}),
                httpx.Response(200, json=[]),
            ]
        )
        sleep = RecordingSleep()

        response = await resilient_fetch(URL, client=client, sleep=sleep)

        assert response.status_code == 200
        assert len(seen) == 2
        assert sleep.calls == [2.0]

    @pytest.mark.asyncio
    async def test_backs_off_on_server_errors(self) -> None:
        client, seen = _client(
            [httpx.Response(503), httpx.Response(502), httpx.Response(200)]
        )
        sleep = RecordingSleep()

        response = await resilient_fetch(
            URL, client=client, sleep=sleep, base_delay_ms=100, max_delay_ms=1000
        )

        assert response.status_code == 200
        assert len(seen) == 3
        assert 0.1 <= sleep.calls[0] <= 0.15
        assert 0.2 <= sleep.calls[1] <= 0.3

    @pytest.mark.asyncio
    async def test_last_retryable_response_is_returned(self) -> None:
        client, seen = _client([httpx.Response(500)] * 3)
        sleep = RecordingSleep()

        response = await resilient_fetch(URL, client=client, sleep=sleep, max_retries=2)

        assert response.status_code == 500
        assert len(seen) == 3
        assert len(sleep.calls) == 2

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self) -> None:
        client, seen = _client([httpx.Response(404)])
        response = await resilient_fetch(URL, client=client, sleep=RecordingSleep())

        assert response.status_code == 404
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_network_error_retried_then_raised(self) -> None:
        client, seen = _client([httpx.ConnectError("refused")] * 3)
        sleep = RecordingSleep()

        with pytest.raises(httpx.ConnectError):
            await resilient_fetch(URL, client=client, sleep=sleep, max_retries=2)

        assert len(seen) == 3
        assert len(sleep.calls) == 2

    @pytest.mark.asyncio
    async def test_network_error_then_success(self) -> None:
        client, seen = _client([httpx.ReadTimeout("slow"), httpx.Response(200)])
        response = await resilient_fetch(URL, client=client, sleep=RecordingSleep())

        assert response.status_code == 200
        assert len(seen) == 2

    @pytest.mark.asyncio
    async def test_request_kwargs_are_forwarded(self) -> None:
        client, seen = _client([httpx.Response(200)])
        await resilient_fetch(
            URL,
            method="POST",
            client=client,
            sleep=RecordingSleep(),
            content="fields name;",
            headers={"Client-ID": "abc"},
        )

        assert seen[0].method == "POST"
        assert seen[0].content == b"fields name;"
        assert seen[0].headers["Client-ID"] == "abc"
