"""Retry and backoff policy for external API calls."""
from __future__ import annotations

from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)


def _is_retryable(exc: BaseException) -> bool:
    return bool(getattr(exc, "retryable", False))


def backoff_policy(
    max_retries: int = 5,
    backoff_base: float = 2.0,
    backoff_max: float = 30.0,
) -> AsyncRetrying:
    """Exponential backoff for retryable errors.

    - max_retries retries after the first attempt
    - waits backoff_base, 2x, 4x ... capped at backoff_max
    - only errors flagged retryable (429, 5xx, timeouts) are retried;
      the final error is re-raised unchanged
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=backoff_base, min=backoff_base, max=backoff_max),
        retry=retry_if_exception(_is_retryable),
        reraise=True,
    )
