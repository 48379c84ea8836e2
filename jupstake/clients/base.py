"""Base HTTP client for the tracker's API layer.

Provides:
- Rate limiting (token bucket)
- Automatic retry with exponential backoff (429, 5xx, timeouts)
- Timeout handling
- Structured error handling

All API clients inherit from this base.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from jupstake.utils.retry import backoff_policy

log = logging.getLogger("jupstake.clients")


@dataclass
class RateLimiter:
    """Simple token-bucket rate limiter."""

    max_per_second: float
    _tokens: float = field(init=False)
    _last_refill: float = field(init=False)

    def __post_init__(self) -> None:
        self._tokens = self.max_per_second
        self._last_refill = time.monotonic()

    def acquire(self) -> float:
        """Acquire a token. Returns wait time in seconds (0 if immediate)."""
        now = time.monotonic()
        elapsed = now - self._last_refill
        self._tokens = min(self.max_per_second, self._tokens + elapsed * self.max_per_second)
        self._last_refill = now

        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return 0.0

        wait = (1.0 - self._tokens) / self.max_per_second
        return wait


class APIError(Exception):
    """Structured API error."""

    def __init__(self, message: str, status_code: int = 0, provider: str = "", retryable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider
        self.retryable = retryable


class BaseClient:
    """Base HTTP client with retry and rate limiting.

    Usage:
        client = BaseClient(
            base_url="https://api.example.com",
            rate_limit=5.0,  # 5 req/sec
            timeout=10.0,
        )
        data = await client.get("/endpoint", params={"q": "test"})
    """

    def __init__(
        self,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        rate_limit: float = 10.0,
        timeout: float = 30.0,
        max_retries: int = 5,
        backoff_base: float = 2.0,
        backoff_max: float = 30.0,
        provider_name: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.provider_name = provider_name
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._rate_limiter = RateLimiter(max_per_second=rate_limit)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers or {},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """GET request with rate limiting and retry."""
        return await self._request("GET", path, params=params, headers=headers)

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Execute request, retrying retryable failures with backoff."""
        policy = backoff_policy(self.max_retries, self.backoff_base, self.backoff_max)
        async for attempt in policy:
            with attempt:
                number = attempt.retry_state.attempt_number
                if number > 1:
                    log.info("Retrying %s %s (attempt %d/%d)", method, path, number, self.max_retries + 1)
                return await self._send(method, path, params=params, json_data=json_data, headers=headers)

    async def _send(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Single attempt: rate limit, send, map failures to APIError."""
        wait = self._rate_limiter.acquire()
        if wait > 0:
            await asyncio.sleep(wait)

        try:
            response = await self._client.request(
                method,
                path,
                params=params,
                json=json_data,
                headers=headers,
            )
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise APIError(
                f"Connection error to {self.provider_name}: {e}",
                provider=self.provider_name,
                retryable=True,
            ) from e

        if response.status_code == 429:
            raise APIError(
                f"Rate limited by {self.provider_name}",
                status_code=429,
                provider=self.provider_name,
                retryable=True,
            )

        if response.status_code >= 500:
            raise APIError(
                f"Server error from {self.provider_name}: {response.status_code}",
                status_code=response.status_code,
                provider=self.provider_name,
                retryable=True,
            )

        if response.status_code >= 400:
            raise APIError(
                f"Client error from {self.provider_name}: {response.status_code} - {response.text[:200]}",
                status_code=response.status_code,
                provider=self.provider_name,
                retryable=False,
            )

        return response.json()
