"""Configuration loading and constants for chatcortex.

This package exposes the split configuration modules as a single interface.
"""

from chatcortex.core.config.constants import (
    ANTHROPIC_API_VERSION,
    ANTHROPIC_BASE_URL,
    ANTHROPIC_DEFAULT_MODEL,
    DEEP_SEARCH_CACHE_DEFAULTS,
    DEEP_SEARCH_MAX_QUERIES,
    DEEP_SEARCH_MAX_RESULTS,
    DEFAULT_CHAT_TITLE,
    DEFAULT_MAX_TOKENS,
    GEMINI_BASE_URL,
    GEMINI_DEFAULT_MODEL,
    GEMINI_PRO_MODEL,
    LOCATION_CACHE_DEFAULTS,
    OPENAI_DEFAULT_MODEL,
    PROVIDER_TIMEOUT_SECONDS,
    REFINER_MODEL,
    SEARCH_CACHE_DEFAULTS,
    SEARCH_MAX_RESULTS,
    SEARCH_TIMEOUT_SECONDS,
    TITLE_MODEL,
)
from chatcortex.core.config.http import (
    DEFAULT_USER_AGENT,
    HttpxClientOptions,
    get_or_create_httpx_client,
)
from chatcortex.core.config.manager import (
    CONFIG_CACHE_TTL,
    ConfigFileEmptyError,
    ConfigFileNotFoundError,
    clear_config_cache,
    get_config,
    get_section,
)
from chatcortex.core.config.utils import (
    coerce_positive_number,
    is_gemini_model,
    normalize_api_key,
)

__all__ = [
    "ANTHROPIC_API_VERSION",
    "ANTHROPIC_BASE_URL",
    "ANTHROPIC_DEFAULT_MODEL",
    "CONFIG_CACHE_TTL",
    "DEEP_SEARCH_CACHE_DEFAULTS",
    "DEEP_SEARCH_MAX_QUERIES",
    "DEEP_SEARCH_MAX_RESULTS",
    "DEFAULT_CHAT_TITLE",
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_USER_AGENT",
    "GEMINI_BASE_URL",
    "GEMINI_DEFAULT_MODEL",
    "GEMINI_PRO_MODEL",
    "LOCATION_CACHE_DEFAULTS",
    "OPENAI_DEFAULT_MODEL",
    "PROVIDER_TIMEOUT_SECONDS",
    "REFINER_MODEL",
    "SEARCH_CACHE_DEFAULTS",
    "SEARCH_MAX_RESULTS",
    "SEARCH_TIMEOUT_SECONDS",
    "TITLE_MODEL",
    "ConfigFileEmptyError",
    "ConfigFileNotFoundError",
    "HttpxClientOptions",
    "clear_config_cache",
    "coerce_positive_number",
    "get_config",
    "get_or_create_httpx_client",
    "get_section",
    "is_gemini_model",
    "normalize_api_key",
]
