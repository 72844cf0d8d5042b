"""HTTP helpers shared by attachment fetches and search providers."""

from __future__ import annotations

import asyncio
import email.utils
import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

DEFAULT_RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})
HTTP_TOO_MANY_REQUESTS = 429
_JITTER_RANDOM = secrets.SystemRandom()


def parse_retry_after(value: str) -> float | None:
    """Parse a ``Retry-After`` header as seconds from now.

    Accepts both delta-seconds and HTTP-date forms; returns ``None`` when the
    header is empty or unparseable.
    """
    stripped = value.strip()
    if not stripped:
        return None

    try:
        seconds = float(stripped)
    except ValueError:
        seconds = None
    if seconds is not None:
        return seconds if seconds >= 0 else None

    try:
        parsed = email.utils.parsedate_to_datetime(stripped)
    except (TypeError, ValueError, OSError):
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return max((parsed - datetime.now(UTC)).total_seconds(), 0.0)


@dataclass(frozen=True, slots=True)
class RetryOptions:
    """Configuration for HTTP retry behavior."""

    retries: int = 2
    base_delay: float = 0.5
    max_backoff_seconds: float = 8.0
    retryable_statuses: frozenset[int] = DEFAULT_RETRYABLE_STATUSES


def backoff_delay(
    attempt: int,
    options: RetryOptions,
    response: httpx.Response | None = None,
) -> float:
    """Return the delay before retry ``attempt`` (zero-based)."""
    if response is not None and response.status_code == HTTP_TOO_MANY_REQUESTS:
        header = response.headers.get("retry-after")
        if header is not None:
            retry_after = parse_retry_after(header)
            if retry_after is not None:
                return min(retry_after, options.max_backoff_seconds)

    base = options.base_delay * (2**attempt)
    return min(options.max_backoff_seconds, base + _JITTER_RANDOM.random() * base)


async def request_with_retries(
    request_factory: Callable[[], Awaitable[httpx.Response]],
    *,
    options: RetryOptions | None = None,
    log_context: str = "",
) -> httpx.Response:
    """Run a request with bounded retries for transient failures.

    Only transport errors and the statuses in ``retryable_statuses`` are
    retried; any other response is returned to the caller as-is.
    """
    retry_options = options or RetryOptions()
    context_suffix = f" for {log_context}" if log_context else ""

    for attempt in range(retry_options.retries + 1):
        try:
            response = await request_factory()
        except httpx.RequestError as exc:
            if attempt >= retry_options.retries:
                raise
            logger.warning(
                "Transient HTTP error%s, retrying (%s/%s): %s",
                context_suffix,
                attempt + 1,
                retry_options.retries,
                exc,
            )
            await asyncio.sleep(backoff_delay(attempt, retry_options))
            continue

        if (
            response.status_code in retry_options.retryable_statuses
            and attempt < retry_options.retries
        ):
            logger.warning(
                "Transient HTTP %s%s, retrying (%s/%s)",
                response.status_code,
                context_suffix,
                attempt + 1,
                retry_options.retries,
            )
            await response.aclose()
            await asyncio.sleep(backoff_delay(attempt, retry_options, response))
            continue

        return response

    msg = "request_with_retries exhausted without a response"
    raise RuntimeError(msg)
