"""Configuration constants for the search service."""

BING_SEARCH_URL = "https://api.bing.microsoft.com/v7.0/search"
SERPAPI_SEARCH_URL = "https://serpapi.com/search"
SERPAPI_NUM_RESULTS = 9
IP_GEOLOCATION_URL = "https://ipapi.co/{ip}/json/"

MAX_ERROR_CHARS = 300
MAX_SOURCE_TITLE_CHARS = 40
REFINER_HISTORY_TURNS = 5

TRACKING_PARAM_PREFIXES = ("utm_", "_ga")
TRACKING_PARAMS = frozenset(
    {
        "ref",
        "sa",
        "ved",
        "usg",
        "ei",
        "bih",
        "biw",
        "source_id",
        "fbclid",
        "gclid",
        "yclid",
        "msclkid",
    },
)

# Queries whose answer depends on where the user is
LOCATION_SENSITIVE_TERMS = (
    "near me",
    "nearby",
    "weather",
    "forecast",
    "local",
    "restaurants",
    "open now",
    "traffic",
)

SEARCH_QUERY_REFINER_PROMPT = """\
You are an expert search query optimizer. Your task is to create the MOST \
NEUTRAL and EFFECTIVE search query for finding CURRENT and ACCURATE \
information based on the conversation.

Guidelines:
1. DO NOT ASSUME ANY SPECIFIC ANSWERS in your query
2. Avoid mentioning specific people unless they are explicitly part of the question
3. Focus on the core information need, not previous answers
4. For questions about current officeholders, leaders, or statistics, create a neutral query
5. Use quotes only for exact phrases that must appear together
6. Remove filler words and focus on key terms
7. If the latest message is a follow-up, consider both it AND the previous message

Examples:
- "who is the president of usa" -> "current president united states"
- "are you sure?" (after asking about the president) -> "current president united states"
- "what is the capital of france" -> "capital france"

Conversation Context:
{chat_context}

Original Query: "{query}"

Optimized Search Query (ONLY return the query itself, no explanation):"""

DEEP_SEARCH_REFINER_PROMPT = """\
You are an expert research assistant. Break the user's question into at most \
{max_queries} distinct, neutral web search queries that together cover the \
information needed to answer it. Put the single most important query first.

Conversation Context:
{chat_context}

Original Query: "{query}"

Return ONLY the queries, one per line, with no numbering or explanation:"""
