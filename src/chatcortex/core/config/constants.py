"""Constant definitions for chatcortex."""

# Provider endpoints
OPENAI_DEFAULT_MODEL = "gpt-4o-mini"
ANTHROPIC_BASE_URL = "https://api.anthropic.com"
ANTHROPIC_API_VERSION = "2023-06-01"
ANTHROPIC_DEFAULT_MODEL = "claude-3-5-sonnet-20241022"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com"
GEMINI_DEFAULT_MODEL = "gemini-2.0-flash-001"
GEMINI_PRO_MODEL = "gemini-2.5-pro"

# Token budgets and timeouts
DEFAULT_MAX_TOKENS = 1000
PROVIDER_TIMEOUT_SECONDS = 60
SEARCH_TIMEOUT_SECONDS = 5

# Auxiliary LLM calls (query refinement, chat titles)
REFINER_MODEL = "gemini/gemini-2.0-flash-lite-001"
TITLE_MODEL = "gemini/gemini-2.0-flash-lite-001"
DEFAULT_CHAT_TITLE = "New Chat"

# Web search result bounds
SEARCH_MAX_RESULTS = 4
DEEP_SEARCH_MAX_QUERIES = 3
DEEP_SEARCH_MAX_RESULTS = 6

# Cache sizing: (max_entries, ttl_seconds)
SEARCH_CACHE_DEFAULTS = (256, 10 * 60)
DEEP_SEARCH_CACHE_DEFAULTS = (64, 30 * 60)
LOCATION_CACHE_DEFAULTS = (1024, 60 * 60)
