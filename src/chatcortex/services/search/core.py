"""Core search service orchestration."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

from chatcortex.core.config import (
    DEEP_SEARCH_MAX_QUERIES,
    DEEP_SEARCH_MAX_RESULTS,
    SEARCH_MAX_RESULTS,
    SEARCH_TIMEOUT_SECONDS,
    coerce_positive_number,
    get_section,
    normalize_api_key,
)
from chatcortex.core.exceptions import SearchProviderError, SearchRefinementError
from chatcortex.services.search.bing import BingSearchProvider
from chatcortex.services.search.location import (
    LocationResolver,
    is_location_sensitive,
    localize_query,
)
from chatcortex.services.search.serpapi import SerpApiSearchProvider
from chatcortex.services.search.utils import clean_url, normalize_query

if TYPE_CHECKING:
    from collections.abc import Mapping

    import httpx

    from chatcortex.core.models import Message, SearchResult
    from chatcortex.services.search.cache import TTLCache
    from chatcortex.services.search.refine import QueryRefiner

logger = logging.getLogger(__name__)


class SearchState(StrEnum):
    """Lifecycle of one augmentation lookup."""

    MISS = "miss"
    REFINING = "refining"
    SEARCHING = "searching"
    CACHED = "cached"


class SearchProvider(Protocol):
    """A web search backend returning provider-independent results."""

    name: str

    async def search(self, query: str, count: int) -> list[SearchResult]: ...


@dataclass(frozen=True, slots=True)
class WebSearchOptions:
    """Result bounds for web search augmentation."""

    max_results: int = SEARCH_MAX_RESULTS
    deep_max_queries: int = DEEP_SEARCH_MAX_QUERIES
    deep_max_results: int = DEEP_SEARCH_MAX_RESULTS


def merge_results(
    result_sets: Sequence[Sequence[SearchResult]],
    *,
    limit: int,
) -> list[SearchResult]:
    """Concatenate result sets in order, dropping repeated URLs."""
    seen: set[str] = set()
    merged: list[SearchResult] = []
    for results in result_sets:
        for result in results:
            key = clean_url(result.url).rstrip("/").lower()
            if key in seen:
                continue
            seen.add(key)
            merged.append(result)
            if len(merged) >= limit:
                return merged
    return merged


class WebSearchAugmenter:
    """Refine, search and cache web results for chat augmentation.

    The search and deep-search paths use separate caches; either may be
    ``None``, in which case that path runs uncached.
    """

    def __init__(
        self,
        provider: SearchProvider,
        *,
        refiner: QueryRefiner | None = None,
        search_cache: TTLCache[str, tuple[SearchResult, ...]] | None = None,
        deep_cache: TTLCache[str, tuple[SearchResult, ...]] | None = None,
        location_resolver: LocationResolver | None = None,
        options: WebSearchOptions | None = None,
    ) -> None:
        """Wire the provider, refiner and caches together."""
        self.provider = provider
        self.refiner = refiner
        self.search_cache = search_cache
        self.deep_cache = deep_cache
        self.location_resolver = location_resolver
        self.options = options or WebSearchOptions()

    async def _localize(self, query: str, client_ip: str | None) -> str:
        if self.location_resolver is None or not is_location_sensitive(query):
            return query
        location = await self.location_resolver.lookup(client_ip)
        return localize_query(query, location)

    def _log_state(self, state: SearchState, key: str) -> None:
        logger.debug("Web search %s | key=%r", state, key)

    async def search(
        self,
        query: str,
        messages: Sequence[Message] = (),
        *,
        client_ip: str | None = None,
    ) -> list[SearchResult]:
        """Return results for ``query``, hitting the network only on a miss.

        Raises:
            SearchProviderError: If the backend fails on a cache miss.

        """
        if not query.strip():
            return []

        effective = await self._localize(query, client_ip)
        key = normalize_query(effective)
        if self.search_cache is not None:
            cached = self.search_cache.get(key)
            if cached is not None:
                self._log_state(SearchState.CACHED, key)
                logger.info("Search cache hit for %r (%d results)", key, len(cached))
                return list(cached)

        self._log_state(SearchState.MISS, key)
        logger.info("Search cache miss for %r", key)

        self._log_state(SearchState.REFINING, key)
        refined = effective
        if self.refiner is not None:
            refined = await self.refiner.refine_or_fallback(effective, messages)

        self._log_state(SearchState.SEARCHING, key)
        results = await self.provider.search(refined, self.options.max_results)

        if self.search_cache is not None:
            self.search_cache.set(key, tuple(results))
        self._log_state(SearchState.CACHED, key)
        return results

    async def _deep_queries(self, query: str, messages: Sequence[Message]) -> list[str]:
        if self.refiner is None:
            return [query]
        try:
            return await self.refiner.refine_many(
                query,
                messages,
                max_queries=self.options.deep_max_queries,
            )
        except SearchRefinementError as exc:
            logger.warning("Deep search using raw query %r: %s", query, exc)
            return [query]

    async def deep_search(
        self,
        query: str,
        messages: Sequence[Message] = (),
        *,
        client_ip: str | None = None,
    ) -> list[SearchResult]:
        """Search several refined queries concurrently and merge the results.

        Individual query failures are logged; the call only fails when every
        query fails.
        """
        if not query.strip():
            return []

        effective = await self._localize(query, client_ip)
        key = normalize_query(effective)
        if self.deep_cache is not None:
            cached = self.deep_cache.get(key)
            if cached is not None:
                logger.info("Deep search cache hit for %r", key)
                return list(cached)

        queries = await self._deep_queries(effective, messages)
        outcomes = await asyncio.gather(
            *(self.provider.search(q, self.options.max_results) for q in queries),
            return_exceptions=True,
        )

        result_sets: list[list[SearchResult]] = []
        errors: list[SearchProviderError] = []
        for sub_query, outcome in zip(queries, outcomes, strict=True):
            if isinstance(outcome, SearchProviderError):
                logger.warning("Deep search query %r failed: %s", sub_query, outcome)
                errors.append(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                result_sets.append(outcome)

        if not result_sets and errors:
            raise errors[0]

        merged = merge_results(result_sets, limit=self.options.deep_max_results)
        logger.info(
            "Deep search for %r: %d queries, %d merged results",
            key,
            len(queries),
            len(merged),
        )
        if self.deep_cache is not None:
            self.deep_cache.set(key, tuple(merged))
        return merged


def build_search_provider(
    config: Mapping[str, Any],
    *,
    client: httpx.AsyncClient,
) -> SearchProvider | None:
    """Build the configured search backend, or ``None`` when it has no key."""
    search_config = get_section(config, "search")
    name = str(search_config.get("provider") or "serpapi").lower()
    timeout = coerce_positive_number(
        search_config.get("timeout_seconds"),
        SEARCH_TIMEOUT_SECONDS,
    )
    api_key = normalize_api_key(get_section(config, "providers", name).get("api_key"))
    if not api_key:
        logger.warning("Web search disabled: no API key for provider '%s'", name)
        return None

    if name == "bing":
        return BingSearchProvider(api_key, client=client, timeout=timeout)
    if name == "serpapi":
        return SerpApiSearchProvider(api_key, client=client, timeout=timeout)

    logger.warning("Web search disabled: unknown provider '%s'", name)
    return None
