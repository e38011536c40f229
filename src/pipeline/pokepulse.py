"""
HoloSwap Pricing — PokePulse HTTP Base Client

Shared request loop for the two PokePulse services (catalogue search and
market data). Both are JSON-over-POST with an API key header.

Every attempt, retries included, spends one unit of the shared daily budget
via DailyRateLimiter.acquire() before the request is sent. Non-2xx responses
raise httpx.HTTPStatusError at once; only transport errors are retried.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog

from src.config import settings
from src.utils.rate_limit import DailyRateLimiter

logger = structlog.get_logger(__name__)


class PokePulseUnavailableError(RuntimeError):
    """Transport failures persisted through every retry."""


class PokePulseClient:
    """
    Async POST client bound to one PokePulse base URL.

    Subclasses set `service` (log/budget label) and `api_key_header`.

    Usage:
        async with CatalogueClient(rate_limiter) as client:
            payload = await client.search("sv1", "Pikachu")
    """

    service: str = "pokepulse"
    api_key_header: str = "X-API-Key"

    def __init__(
        self,
        rate_limiter: DailyRateLimiter,
        base_url: str,
        api_key: str,
        timeout: float | None = None,
        max_retries: int | None = None,
        base_backoff: float | None = None,
    ):
        self._rate_limiter = rate_limiter
        self._base_url = base_url
        self._api_key = api_key
        self._timeout = timeout if timeout is not None else settings.PRICING_HTTP_TIMEOUT_SECONDS
        self._max_retries = (
            max_retries if max_retries is not None else settings.PRICING_NETWORK_RETRIES
        )
        self._base_backoff = (
            base_backoff if base_backoff is not None else settings.PRICING_RETRY_BACKOFF_SECONDS
        )
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> PokePulseClient:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers[self.api_key_header] = self._api_key
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=self._timeout,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        """POST JSON, counting each attempt against the daily budget."""
        assert self._client is not None, "Client not initialized. Use 'async with'."

        last_error: Exception | None = None

        for attempt in range(self._max_retries + 1):
            # Raises QuotaExceededError before any network I/O.
            self._rate_limiter.acquire(purpose=self.service)
            try:
                response = await self._client.post(path, json=payload)
                response.raise_for_status()
                return response.json()

            except httpx.HTTPStatusError as e:
                logger.error(
                    f"{self.service}_http_error",
                    status_code=e.response.status_code,
                    attempt=attempt + 1,
                    path=path,
                )
                raise

            except httpx.RequestError as e:
                last_error = e
                logger.warning(
                    f"{self.service}_request_error",
                    error=str(e),
                    attempt=attempt + 1,
                    path=path,
                )
                if attempt < self._max_retries:
                    await asyncio.sleep(self._base_backoff * (2 ** attempt))

        raise PokePulseUnavailableError(
            f"{self.service} request to {path} failed after {self._max_retries + 1} attempts"
        ) from last_error
