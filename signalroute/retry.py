"""Retry with exponential backoff for outbound HTTP calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_HTTP_CODES = {429, 500, 502, 503, 504}
RETRYABLE_EXCEPTIONS = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.RemoteProtocolError,
    ConnectionError,
    TimeoutError,
)
# anthropic SDK errors, matched by name so callers without the SDK still work
RETRYABLE_SDK_ERRORS = {
    "RateLimitError", "OverloadedError",
    "InternalServerError", "APIConnectionError",
}


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    return min(base_delay * (2**attempt), max_delay)


def retry_delay(
    exc: BaseException, attempt: int, base_delay: float, max_delay: float,
) -> float | None:
    """Seconds to wait before retrying after ``exc``, or None if it is not transient."""
    if isinstance(exc, RETRYABLE_EXCEPTIONS):
        return backoff_delay(attempt, base_delay, max_delay)
    if isinstance(exc, httpx.HTTPStatusError):
        if exc.response.status_code not in RETRYABLE_HTTP_CODES:
            return None
        retry_after = exc.response.headers.get("retry-after")
        if retry_after:
            try:
                return min(float(retry_after), max_delay)
            except ValueError:
                pass
        return backoff_delay(attempt, base_delay, max_delay)
    if type(exc).__name__ in RETRYABLE_SDK_ERRORS:
        return backoff_delay(attempt, base_delay, max_delay)
    return None


async def retry_async(
    fn: Callable[..., Awaitable[T]],
    *args,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    on_retry: Callable[[int, BaseException], None] | None = None,
    **kwargs,
) -> T:
    """Await ``fn(*args, **kwargs)``, retrying transient failures.

    Transient means httpx timeout/connection errors, HTTP 429 and 5xx
    (honouring ``Retry-After``), and anthropic rate limit / overload errors.
    Anything else is raised immediately. ``on_retry`` is called with the
    attempt number and the exception before each wait.
    """
    attempt = 0
    while True:
        try:
            return await fn(*args, **kwargs)
        except Exception as exc:
            delay = retry_delay(exc, attempt, base_delay, max_delay)
            if delay is None or attempt >= max_retries:
                raise
            attempt += 1
            logger.warning(
                "Retry %d/%d after %s: %s (waiting %.1fs)",
                attempt, max_retries, type(exc).__name__, exc, delay,
            )
            if on_retry is not None:
                on_retry(attempt, exc)
            await asyncio.sleep(delay)
