"""Bounded retry with a fixed delay for external calls."""

from __future__ import annotations

import asyncio
import json
from typing import Awaitable, Callable, TypeVar

import httpx
import structlog

from pmtracker.errors import DataSourceError

log = structlog.get_logger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (httpx.HTTPError, json.JSONDecodeError)


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    label: str,
    *,
    max_retries: int = 3,
    delay_sec: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await fn() up to max_retries times, sleeping delay_sec between attempts.
    Raises DataSourceError when every attempt failed."""
    attempts = max(1, max_retries)
    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except RETRYABLE_ERRORS as e:
            last_error = e
            log.warning("call_attempt_failed", call=label, attempt=attempt, error=str(e))
            if attempt < attempts:
                await sleep(delay_sec)
    log.error("call_failed", call=label, attempts=attempts)
    raise DataSourceError(f"{label} failed after {attempts} attempts") from last_error
