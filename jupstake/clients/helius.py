"""Helius API client — enhanced transaction history.

Provides the reverse-chronological, cursor-paginated address history the
staking pipeline pages through.
"""

from __future__ import annotations

import os
from typing import Any

import httpx

from jupstake.clients.base import BaseClient


class HeliusClient:
    """Helius Enhanced Transactions API."""

    def __init__(
        self,
        api_key: str | None = None,
        max_retries: int = 5,
        backoff_base: float = 2.0,
        backoff_max: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key or os.environ.get("HELIUS_API_KEY", "")
        self._api = BaseClient(
            base_url="https://api.helius.xyz/v0",
            rate_limit=10.0,
            timeout=30.0,
            max_retries=max_retries,
            backoff_base=backoff_base,
            backoff_max=backoff_max,
            provider_name="helius",
            transport=transport,
        )

    async def __aenter__(self) -> HeliusClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def get_address_transactions(
        self,
        address: str,
        before: str | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """One page of an address's parsed transactions, newest first.

        Pass the last signature of the previous page as `before` to
        continue further back in time.
        """
        params: dict[str, Any] = {
            "api-key": self.api_key,
            "limit": limit,
            "commitment": "finalized",
        }
        if before:
            params["before"] = before
        result = await self._api.get(f"/addresses/{address}/transactions", params=params)
        return result if isinstance(result, list) else []

    async def close(self) -> None:
        await self._api.close()
