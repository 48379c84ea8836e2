"""Per-provider pacing between consecutive calls."""
from __future__ import annotations

import asyncio
import time
from collections import defaultdict


class RateLimiter:
    """Enforces a minimum interval between calls to the same provider.

    Used between transaction pages so a long back-fill stays under the
    upstream rate limit.
    """

    def __init__(self):
        # provider_name -> timestamp of last call
        self._last_call: dict[str, float] = {}
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def wait_if_needed(self, provider: str, min_interval_sec: float) -> float:
        """Sleep until min_interval_sec has passed since the last call.

        Returns the time slept in seconds.
        """
        async with self._locks[provider]:
            now = time.monotonic()
            waited = 0.0
            last = self._last_call.get(provider)
            if last is not None:
                since = now - last
                if since < min_interval_sec:
                    waited = min_interval_sec - since
                    await asyncio.sleep(waited)
                    now = time.monotonic()
            self._last_call[provider] = now
            return waited

    def reset(self, provider: str | None = None) -> None:
        if provider is None:
            self._last_call.clear()
        else:
            self._last_call.pop(provider, None)


# Global rate limiter instance
_rate_limiter = RateLimiter()


def get_rate_limiter() -> RateLimiter:
    """Get the global rate limiter instance."""
    return _rate_limiter
