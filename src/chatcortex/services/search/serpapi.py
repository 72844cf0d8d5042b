"""SerpAPI (Google results) search provider."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote_plus

import httpx

from chatcortex.core.config import SEARCH_TIMEOUT_SECONDS
from chatcortex.core.exceptions import SearchProviderError
from chatcortex.core.models import SearchResult
from chatcortex.services.http import RetryOptions, request_with_retries
from chatcortex.services.search.config import (
    MAX_ERROR_CHARS,
    SERPAPI_NUM_RESULTS,
    SERPAPI_SEARCH_URL,
)
from chatcortex.services.search.utils import (
    clean_url,
    short_source_title,
    source_title_from_url,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

PROVIDER_NAME = "serpapi"
SEARCH_RETRY_OPTIONS = RetryOptions(retries=1)
PRICE_QUERY_TERMS = ("bitcoin", "btc", "crypto", "ethereum", "eth price")
_KNOWLEDGE_GRAPH_SKIP_KEYS = {"title", "name", "type", "source", "stick"}


def _google_search_url(query: str) -> str:
    return f"https://www.google.com/search?q={quote_plus(query)}"


def _is_price_query(query: str) -> bool:
    lowered = query.lower()
    return any(term in lowered for term in PRICE_QUERY_TERMS)


def _source_url(candidate: object, query: str) -> str:
    if isinstance(candidate, dict):
        candidate = candidate.get("link")
    if isinstance(candidate, str) and candidate:
        return clean_url(candidate)
    return _google_search_url(query)


def _price_result(data: Mapping[str, Any], query: str) -> SearchResult | None:
    """Prefer a direct price answer for crypto price questions."""
    knowledge_graph = data.get("knowledge_graph")
    if isinstance(knowledge_graph, dict):
        price = knowledge_graph.get("price") or knowledge_graph.get("value")
        if price:
            url = _source_url(knowledge_graph.get("source"), query)
            name = knowledge_graph.get("title") or knowledge_graph.get("name") or "Bitcoin"
            description = knowledge_graph.get("description") or ""
            return SearchResult(
                title=f"{name} Price",
                snippet=f"Current price: {price}. {description}".strip(),
                url=url,
                source_title=source_title_from_url(url, "Price Data"),
            )

    answer_box = data.get("answer_box")
    if isinstance(answer_box, dict):
        price = answer_box.get("answer") or answer_box.get("result")
        if price:
            url = _source_url(answer_box.get("link"), query)
            return SearchResult(
                title=f"{answer_box.get('title') or 'Bitcoin'} Price",
                snippet=f"Current price: {price}",
                url=url,
                source_title=source_title_from_url(url, "Price Data"),
            )
    return None


def _organic_results(items: list[Any]) -> list[SearchResult]:
    results: list[SearchResult] = []
    for item in items:
        if not isinstance(item, dict) or not item.get("link"):
            continue
        url = clean_url(str(item["link"]))
        title = str(item.get("title") or "")
        results.append(
            SearchResult(
                title=title,
                snippet=str(item.get("snippet") or ""),
                url=url,
                source_title=short_source_title(title, url) if title else None,
            ),
        )
    return results


def _knowledge_graph_result(knowledge_graph: Mapping[str, Any], query: str) -> SearchResult:
    url = _source_url(knowledge_graph.get("source") or knowledge_graph.get("website"), query)
    title = knowledge_graph.get("title") or knowledge_graph.get("name") or "Knowledge Graph"
    snippet = knowledge_graph.get("description") or knowledge_graph.get("snippet")
    if not snippet:
        snippet = ". ".join(
            f"{key}: {value}"
            for key, value in knowledge_graph.items()
            if key not in _KNOWLEDGE_GRAPH_SKIP_KEYS and isinstance(value, str | int | float)
        )
    return SearchResult(
        title=str(title),
        snippet=str(snippet),
        url=url,
        source_title=short_source_title(str(title), url),
    )


def _answer_box_result(answer_box: Mapping[str, Any], query: str) -> SearchResult:
    url = _source_url(answer_box.get("link"), query)
    title = str(answer_box.get("title") or "Answer Box")
    snippet = (
        answer_box.get("answer")
        or answer_box.get("snippet")
        or answer_box.get("result")
        or "Information found but no detailed snippet available."
    )
    return SearchResult(
        title=title,
        snippet=str(snippet),
        url=url,
        source_title=short_source_title(title, url),
    )


def _top_story_results(stories: list[Any]) -> list[SearchResult]:
    results: list[SearchResult] = []
    for story in stories:
        if not isinstance(story, dict) or not story.get("link"):
            continue
        url = clean_url(str(story["link"]))
        title = str(story.get("title") or "News Story")
        source = story.get("source")
        if not isinstance(source, str) or not source:
            source = short_source_title(title, url)
        results.append(
            SearchResult(
                title=title,
                snippet=str(story.get("snippet") or story.get("date") or title),
                url=url,
                source_title=source,
            ),
        )
    return results


def parse_serpapi_results(data: Mapping[str, Any], query: str) -> list[SearchResult]:
    """Map a SerpAPI Google response to search results.

    Organic results win; otherwise the knowledge graph, then the answer box,
    then top stories. Price questions short-circuit to a single price answer
    when one is present.
    """
    if _is_price_query(query) and (price := _price_result(data, query)):
        return [price]

    organic = data.get("organic_results")
    if isinstance(organic, list) and organic:
        return _organic_results(organic)

    knowledge_graph = data.get("knowledge_graph")
    if isinstance(knowledge_graph, dict) and knowledge_graph:
        return [_knowledge_graph_result(knowledge_graph, query)]

    answer_box = data.get("answer_box")
    if isinstance(answer_box, dict) and answer_box:
        return [_answer_box_result(answer_box, query)]

    stories = data.get("top_stories")
    if isinstance(stories, list):
        return _top_story_results(stories)
    return []


class SerpApiSearchProvider:
    """Query Google through SerpAPI."""

    name = PROVIDER_NAME

    def __init__(
        self,
        api_key: str,
        *,
        client: httpx.AsyncClient,
        endpoint: str = SERPAPI_SEARCH_URL,
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
        params = {
            "engine": "google",
            "q": query,
            "api_key": self.api_key,
            "num": max(count, SERPAPI_NUM_RESULTS),
        }
        try:
            async with asyncio.timeout(self.timeout):
                response = await request_with_retries(
                    lambda: self.client.get(
                        self.endpoint,
                        params=params,
                        timeout=self.timeout,
                    ),
                    options=SEARCH_RETRY_OPTIONS,
                    log_context="serpapi search",
                )
        except (TimeoutError, httpx.TimeoutException) as exc:
            msg = f"timed out after {self.timeout}s"
            raise SearchProviderError(PROVIDER_NAME, msg) from exc
        except httpx.RequestError as exc:
            # The request URL carries the API key, so only the type is reported
            raise SearchProviderError(PROVIDER_NAME, type(exc).__name__) from exc

        if not response.is_success:
            raise SearchProviderError(
                PROVIDER_NAME,
                response.text[:MAX_ERROR_CHARS] or response.reason_phrase,
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            msg = "response was not valid JSON"
            raise SearchProviderError(PROVIDER_NAME, msg) from exc
        if not isinstance(data, dict):
            msg = "response was not a JSON object"
            raise SearchProviderError(PROVIDER_NAME, msg)
        if data.get("error"):
            raise SearchProviderError(PROVIDER_NAME, str(data["error"])[:MAX_ERROR_CHARS])

        results = parse_serpapi_results(data, query)
        logger.info("SerpAPI returned %d results for %r", len(results), query)
        return results[:count]
