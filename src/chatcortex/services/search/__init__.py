"""Search service module."""

from chatcortex.services.search.bing import BingSearchProvider
from chatcortex.services.search.cache import CacheEntry, TTLCache, build_cache
from chatcortex.services.search.core import (
    SearchProvider,
    SearchState,
    WebSearchAugmenter,
    WebSearchOptions,
    build_search_provider,
    merge_results,
)
from chatcortex.services.search.location import (
    Location,
    LocationResolver,
    localize_query,
)
from chatcortex.services.search.refine import QueryRefiner
from chatcortex.services.search.serpapi import SerpApiSearchProvider

__all__ = [
    "BingSearchProvider",
    "CacheEntry",
    "Location",
    "LocationResolver",
    "QueryRefiner",
    "SearchProvider",
    "SearchState",
    "SerpApiSearchProvider",
    "TTLCache",
    "WebSearchAugmenter",
    "WebSearchOptions",
    "build_cache",
    "build_search_provider",
    "localize_query",
    "merge_results",
]
