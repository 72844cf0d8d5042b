"""Bing Web Search provider."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import httpx

from chatcortex.core.config import SEARCH_TIMEOUT_SECONDS
from chatcortex.core.exceptions import SearchProviderError
from chatcortex.core.models import SearchResult
from chatcortex.services.http import RetryOptions, request_with_retries
from chatcortex.services.search.config import BING_SEARCH_URL, MAX_ERROR_CHARS
from chatcortex.services.search.utils import short_source_title

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

PROVIDER_NAME = "bing"
SEARCH_RETRY_OPTIONS = RetryOptions(retries=1)


def parse_bing_results(payload: Mapping[str, object]) -> list[SearchResult]:
    """Map ``webPages.value[]`` entries to search results."""
    web_pages = payload.get("webPages")
    items = web_pages.get("value") if isinstance(web_pages, dict) else None
    if not isinstance(items, list):
        return []

    results: list[SearchResult] = []
    for item in items:
        if not isinstance(item, dict) or not item.get("url"):
            continue
        title = str(item.get("name") or "")
        url = str(item["url"])
        results.append(
            SearchResult(
                title=title,
                snippet=str(item.get("snippet") or ""),
                url=url,
                source_title=short_source_title(title, url) if title else None,
            ),
        )
    return results


class BingSearchProvider:
    """Query the Bing v7 Web Search API."""

    name = PROVIDER_NAME

    def __init__(
        self,
        api_key: str,
        *,
        client: httpx.AsyncClient,
        endpoint: str = BING_SEARCH_URL,
        timeout: float = SEARCH_TIMEOUT_SECONDS,
    ) -> None:
        """Bind the provider to its key and the shared HTTP client."""
        self.api_key = api_key
        self.client = client
        self.endpoint = endpoint
        self.timeout = timeout

    async def search(self, query: str, count: int) -> list[SearchResult]:
        """Return up to ``count`` results for ``query``.

        Raises:
            SearchProviderError: On timeout, transport failure or non-2xx.

        """
        try:
            async with asyncio.timeout(self.timeout):
                response = await request_with_retries(
                    lambda: self.client.get(
                        self.endpoint,
                        params={"q": query, "count": count},
                        headers={"Ocp-Apim-Subscription-Key": self.api_key},
                        timeout=self.timeout,
                    ),
                    options=SEARCH_RETRY_OPTIONS,
                    log_context="bing search",
                )
        except (TimeoutError, httpx.TimeoutException) as exc:
            msg = f"timed out after {self.timeout}s"
            raise SearchProviderError(PROVIDER_NAME, msg) from exc
        except httpx.RequestError as exc:
            raise SearchProviderError(PROVIDER_NAME, str(exc) or type(exc).__name__) from exc

        if not response.is_success:
            raise SearchProviderError(
                PROVIDER_NAME,
                response.text[:MAX_ERROR_CHARS] or response.reason_phrase,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            msg = "response was not valid JSON"
            raise SearchProviderError(PROVIDER_NAME, msg) from exc

        results = parse_bing_results(payload if isinstance(payload, dict) else {})
        logger.info("Bing returned %d results for %r", len(results), query)
        return results[:count]
