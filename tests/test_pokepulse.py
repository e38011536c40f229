"""
Tests for the shared PokePulse request loop (src/pipeline/pokepulse.py).

Budget accounting per attempt, no retry on non-2xx, bounded retry on
transport errors.
"""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from src.pipeline.catalogue import CatalogueClient
from src.pipeline.market_data import MarketDataClient
from src.pipeline.pokepulse import PokePulseUnavailableError
from src.utils.rate_limit import DailyRateLimiter, QuotaExceededError
from tests.conftest import FakeClock

BASE_URL = "https://pokepulse.test/api"


@pytest.mark.asyncio
async def test_success_spends_one_call(clock: FakeClock) -> None:
    limiter = DailyRateLimiter(daily_limit=10, clock=clock)

    with respx.mock(base_url=BASE_URL) as mock:
        route = mock.post("/cards/search").mock(
            return_value=httpx.Response(200, json={"cards": []})
        )
        async with CatalogueClient(limiter, base_url=BASE_URL, api_key="k") as client:
            payload = await client.search("sv1", "Pikachu")

    assert payload == {"cards": []}
    assert route.call_count == 1
    assert limiter.calls_today == 1


@pytest.mark.asyncio
async def test_request_body_and_key_header(clock: FakeClock) -> None:
    limiter = DailyRateLimiter(daily_limit=10, clock=clock)

    with respx.mock(base_url=BASE_URL) as mock:
        route = mock.post("/cards/search").mock(return_value=httpx.Response(200, json=[]))
        async with CatalogueClient(limiter, base_url=BASE_URL, api_key="secret") as client:
            await client.search("sv1", "Pikachu")

    request = route.calls.last.request
    assert request.headers["X-API-Key"] == "secret"
    assert json.loads(request.content) == {
        "cardName": "Pikachu",
        "excludeGraded": True,
        "limit": 10,
        "setId": "sv1",
    }


@pytest.mark.asyncio
async def test_no_set_id_omits_field(clock: FakeClock) -> None:
    limiter = DailyRateLimiter(daily_limit=10, clock=clock)

    with respx.mock(base_url=BASE_URL) as mock:
        route = mock.post("/cards/search").mock(return_value=httpx.Response(200, json=[]))
        async with CatalogueClient(limiter, base_url=BASE_URL, api_key="k") as client:
            await client.search(None, "Pikachu")

    assert "setId" not in json.loads(route.calls.last.request.content)


@pytest.mark.asyncio
async def test_market_client_uses_lower_case_header(clock: FakeClock) -> None:
    limiter = DailyRateLimiter(daily_limit=10, clock=clock)

    with respx.mock(base_url=BASE_URL) as mock:
        route = mock.post("/market-data/batch").mock(
            return_value=httpx.Response(200, json={"data": {}})
        )
        async with MarketDataClient(limiter, base_url=BASE_URL, api_key="mk") as client:
            await client.fetch_batch(["card:sv1|1|||||"])

    request = route.calls.last.request
    assert request.headers["x-api-key"] == "mk"
    assert json.loads(request.content) == {"productIds": ["card:sv1|1|||||"]}


@pytest.mark.asyncio
async def test_http_error_not_retried(clock: FakeClock) -> None:
    limiter = DailyRateLimiter(daily_limit=10, clock=clock)

    with respx.mock(base_url=BASE_URL) as mock:
        route = mock.post("/cards/search").mock(return_value=httpx.Response(503))
        async with CatalogueClient(
            limiter, base_url=BASE_URL, api_key="k", max_retries=3, base_backoff=0
        ) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.search("sv1", "Pikachu")

    assert route.call_count == 1
    assert limiter.calls_today == 1


@pytest.mark.asyncio
async def test_transport_error_retried_and_each_attempt_counted(clock: FakeClock) -> None:
    limiter = DailyRateLimiter(daily_limit=10, clock=clock)

    with respx.mock(base_url=BASE_URL) as mock:
        route = mock.post("/cards/search").mock(
            side_effect=[
                httpx.ConnectError("boom"),
                httpx.Response(200, json={"cards": []}),
            ]
        )
        async with CatalogueClient(
            limiter, base_url=BASE_URL, api_key="k", max_retries=1, base_backoff=0
        ) as client:
            payload = await client.search("sv1", "Pikachu")

    assert payload == {"cards": []}
    assert route.call_count == 2
    assert limiter.calls_today == 2


@pytest.mark.asyncio
async def test_transport_error_exhausts_retries(clock: FakeClock) -> None:
    limiter = DailyRateLimiter(daily_limit=10, clock=clock)

    with respx.mock(base_url=BASE_URL) as mock:
        mock.post("/cards/search").mock(side_effect=httpx.ConnectTimeout("slow"))
        async with CatalogueClient(
            limiter, base_url=BASE_URL, api_key="k", max_retries=2, base_backoff=0
        ) as client:
            with pytest.raises(PokePulseUnavailableError):
                await client.search("sv1", "Pikachu")

    assert limiter.calls_today == 3


@pytest.mark.asyncio
async def test_quota_checked_before_network(clock: FakeClock) -> None:
    limiter = DailyRateLimiter(daily_limit=0, clock=clock)

    with respx.mock(base_url=BASE_URL, assert_all_called=False) as mock:
        route = mock.post("/cards/search").mock(return_value=httpx.Response(200, json=[]))
        async with CatalogueClient(limiter, base_url=BASE_URL, api_key="k") as client:
            with pytest.raises(QuotaExceededError):
                await client.search("sv1", "Pikachu")

    assert route.call_count == 0
