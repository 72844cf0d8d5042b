"""Application wiring: build every service from configuration."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Mapping
from typing import Any

import httpx
from aiohttp import web

from chatcortex.core.config import (
    DEEP_SEARCH_CACHE_DEFAULTS,
    DEEP_SEARCH_MAX_QUERIES,
    DEEP_SEARCH_MAX_RESULTS,
    LOCATION_CACHE_DEFAULTS,
    PROVIDER_TIMEOUT_SECONDS,
    REFINER_MODEL,
    SEARCH_CACHE_DEFAULTS,
    SEARCH_MAX_RESULTS,
    TITLE_MODEL,
    HttpxClientOptions,
    coerce_positive_number,
    get_or_create_httpx_client,
    get_section,
    normalize_api_key,
)
from chatcortex.logic.dispatch import ChatDispatcher
from chatcortex.logic.registry import build_default_registry
from chatcortex.logic.titles import TitleGenerator
from chatcortex.server import create_app
from chatcortex.services.search import (
    LocationResolver,
    QueryRefiner,
    TTLCache,
    WebSearchAugmenter,
    WebSearchOptions,
    build_cache,
    build_search_provider,
)
from chatcortex.services.search.refine import provider_from_model
from chatcortex.services.store import InMemoryChatStore

logger = logging.getLogger(__name__)

HTTPX_CLIENT_KEY = web.AppKey("httpx_client", httpx.AsyncClient)


def configure_logging(config: Mapping[str, Any]) -> None:
    """Set up root logging from the ``log_level`` config key."""
    level_name = str(config.get("log_level") or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s: %(message)s",
    )


def _cache_from_config[V](
    config: Mapping[str, Any],
    name: str,
    defaults: tuple[int, int],
) -> TTLCache[str, V] | None:
    cache_config = get_section(config, "search", "cache", name)
    return build_cache(
        name,
        cache_config.get("max_entries", defaults[0]),
        cache_config.get("ttl_seconds", defaults[1]),
    )


def _auxiliary_key(config: Mapping[str, Any], model: str) -> str | None:
    provider = provider_from_model(model)
    return normalize_api_key(get_section(config, "providers", provider).get("api_key"))


def build_augmenter(
    config: Mapping[str, Any],
    *,
    client: httpx.AsyncClient,
) -> WebSearchAugmenter | None:
    """Build web search augmentation, or ``None`` when no backend is configured."""
    provider = build_search_provider(config, client=client)
    if provider is None:
        return None

    search_config = get_section(config, "search")
    refiner_model = str(config.get("refiner_model") or REFINER_MODEL)
    location_resolver = None
    if search_config.get("localize", True):
        location_resolver = LocationResolver(
            client=client,
            cache=_cache_from_config(config, "location", LOCATION_CACHE_DEFAULTS),
        )

    return WebSearchAugmenter(
        provider,
        refiner=QueryRefiner(
            model=refiner_model,
            api_key=_auxiliary_key(config, refiner_model),
        ),
        search_cache=_cache_from_config(config, "search", SEARCH_CACHE_DEFAULTS),
        deep_cache=_cache_from_config(config, "deep", DEEP_SEARCH_CACHE_DEFAULTS),
        location_resolver=location_resolver,
        options=WebSearchOptions(
            max_results=int(
                coerce_positive_number(search_config.get("max_results"), SEARCH_MAX_RESULTS),
            ),
            deep_max_queries=int(
                coerce_positive_number(
                    search_config.get("deep_max_queries"),
                    DEEP_SEARCH_MAX_QUERIES,
                ),
            ),
            deep_max_results=int(
                coerce_positive_number(
                    search_config.get("deep_max_results"),
                    DEEP_SEARCH_MAX_RESULTS,
                ),
            ),
        ),
    )


def build_dispatcher(
    config: Mapping[str, Any],
    *,
    client: httpx.AsyncClient,
) -> ChatDispatcher:
    """Assemble the dispatcher and its collaborators."""
    title_model = str(config.get("title_model") or TITLE_MODEL)
    return ChatDispatcher(
        build_default_registry(config, client=client),
        InMemoryChatStore(),
        augmenter=build_augmenter(config, client=client),
        title_generator=TitleGenerator(
            model=title_model,
            api_key=_auxiliary_key(config, title_model),
        ),
        provider_timeout=coerce_positive_number(
            config.get("provider_timeout_seconds"),
            PROVIDER_TIMEOUT_SECONDS,
        ),
    )


async def _close_client(app: web.Application) -> None:
    with contextlib.suppress(httpx.HTTPError, RuntimeError):
        await app[HTTPX_CLIENT_KEY].aclose()


def build_application(config: Mapping[str, Any]) -> web.Application:
    """Build the aiohttp application and its shared HTTP client."""
    client_holder: list[httpx.AsyncClient | None] = []
    client = get_or_create_httpx_client(
        client_holder,
        options=HttpxClientOptions(
            timeout=coerce_positive_number(
                config.get("provider_timeout_seconds"),
                PROVIDER_TIMEOUT_SECONDS,
            ),
        ),
    )
    app = create_app(
        build_dispatcher(config, client=client),
        plans=dict(get_section(config, "plans")),
    )
    app[HTTPX_CLIENT_KEY] = client
    app.on_cleanup.append(_close_client)
    return app
