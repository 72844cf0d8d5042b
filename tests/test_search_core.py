from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest
from _fakes import FakeClock, FakeLiteLLMError, FakeSearchProvider, completion_response, user

from chatcortex.core.exceptions import SearchProviderError
from chatcortex.core.models import SearchResult
from chatcortex.services.search import (
    BingSearchProvider,
    LocationResolver,
    QueryRefiner,
    SerpApiSearchProvider,
    TTLCache,
    WebSearchAugmenter,
    WebSearchOptions,
    build_search_provider,
    merge_results,
)
from chatcortex.services.search import refine as refine_mod

ClientFactory = Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]
TTL = 600

SERPAPI_PRICE_PAYLOAD = {
    "knowledge_graph": {
        "title": "Bitcoin",
        "price": "70,123.45 USD",
        "description": "Cryptocurrency",
        "source": {"link": "https://www.coindesk.com/price/bitcoin?utm_source=serp"},
    },
    "organic_results": [{"title": "ignored", "link": "https://x.test"}],
}


def _result(url: str, title: str = "T") -> SearchResult:
    return SearchResult(title=title, snippet="s", url=url)


def _refiner_failing(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _fail(**_kwargs: object) -> object:
        msg = "refiner unavailable"
        raise FakeLiteLLMError(msg)

    monkeypatch.setattr(refine_mod, "LITELLM_EXCEPTIONS", (FakeLiteLLMError,))
    monkeypatch.setattr("chatcortex.services.search.refine.litellm.acompletion", _fail)


@pytest.mark.asyncio
async def test_same_query_twice_within_ttl_hits_the_network_once(
    mock_client_factory: ClientFactory,
) -> None:
    requests: list[httpx.Request] = []

    def _serpapi(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=SERPAPI_PRICE_PAYLOAD)

    provider = SerpApiSearchProvider("serp-key", client=mock_client_factory(_serpapi))
    augmenter = WebSearchAugmenter(
        provider,
        search_cache=TTLCache(16, TTL),
    )

    first = await augmenter.search("bitcoin price")
    second = await augmenter.search("  Bitcoin   PRICE ")

    assert len(requests) == 1
    assert requests[0].url.params["q"] == "bitcoin price"
    assert requests[0].url.params["api_key"] == "serp-key"
    assert first == second
    assert first[0].title == "Bitcoin Price"
    assert first[0].snippet == "Current price: 70,123.45 USD. Cryptocurrency"
    assert first[0].url == "https://www.coindesk.com/price/bitcoin"
    assert first[0].source_title == "Coindesk"


@pytest.mark.asyncio
async def test_expired_entry_is_fetched_again() -> None:
    clock = FakeClock()
    provider = FakeSearchProvider(results=[_result("https://a.test")])
    augmenter = WebSearchAugmenter(provider, search_cache=TTLCache(16, TTL, clock=clock))

    await augmenter.search("news")
    clock.advance(TTL - 1)
    await augmenter.search("news")
    clock.advance(1)
    await augmenter.search("news")

    assert provider.queries == ["news", "news"]


@pytest.mark.asyncio
async def test_refinement_failure_falls_back_to_raw_query(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _refiner_failing(monkeypatch)
    provider = FakeSearchProvider(results=[_result("https://a.test")])
    augmenter = WebSearchAugmenter(provider, refiner=QueryRefiner(api_key="k"))

    results = await augmenter.search("who won yesterday", [user("football")])

    assert provider.queries == ["who won yesterday"]
    assert len(results) == 1


@pytest.mark.asyncio
async def test_refined_query_is_searched_and_raw_query_is_cached(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    prompts: list[str] = []

    async def _refine(**kwargs: object) -> object:
        messages = kwargs["messages"]
        assert isinstance(messages, list)
        prompts.append(messages[0]["content"])
        return completion_response('"current president united states"\nextra line')

    monkeypatch.setattr("chatcortex.services.search.refine.litellm.acompletion", _refine)
    provider = FakeSearchProvider(results=[_result("https://a.test")])
    cache: TTLCache[str, tuple[SearchResult, ...]] = TTLCache(16, TTL)
    augmenter = WebSearchAugmenter(provider, refiner=QueryRefiner(), search_cache=cache)

    await augmenter.search("are you sure?", [user("who is the president of usa")])

    assert provider.queries == ["current president united states"]
    assert "user: who is the president of usa" in prompts[0]
    assert "are you sure?" in cache


@pytest.mark.asyncio
async def test_provider_failure_propagates_and_is_not_cached() -> None:
    provider = FakeSearchProvider(error=SearchProviderError("fake", "down", status_code=503))
    cache: TTLCache[str, tuple[SearchResult, ...]] = TTLCache(16, TTL)
    augmenter = WebSearchAugmenter(provider, search_cache=cache)

    with pytest.raises(SearchProviderError, match="HTTP 503"):
        await augmenter.search("news")
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_deep_search_merges_refined_queries_without_duplicate_urls(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def _refine(**_kwargs: object) -> object:
        return completion_response("1. solar panel cost\n2. solar panel cost\n- solar incentives")

    monkeypatch.setattr("chatcortex.services.search.refine.litellm.acompletion", _refine)

    class _PerQueryProvider(FakeSearchProvider):
        async def search(self, query: str, count: int) -> list[SearchResult]:
            self.queries.append(query)
            if query == "solar incentives":
                return [_result("https://shared.test/?utm_source=x"), _result("https://c.test")]
            return [_result("https://a.test"), _result("https://shared.test/")]

    provider = _PerQueryProvider()
    deep_cache: TTLCache[str, tuple[SearchResult, ...]] = TTLCache(4, TTL)
    augmenter = WebSearchAugmenter(
        provider,
        refiner=QueryRefiner(),
        deep_cache=deep_cache,
        options=WebSearchOptions(deep_max_queries=3, deep_max_results=6),
    )

    merged = await augmenter.deep_search("how much are solar panels")
    again = await augmenter.deep_search("how much are solar panels")

    assert sorted(provider.queries) == ["solar incentives", "solar panel cost"]
    assert [r.url for r in merged] == ["https://a.test", "https://shared.test/", "https://c.test"]
    assert again == merged


@pytest.mark.asyncio
async def test_deep_search_fails_only_when_every_query_fails() -> None:
    provider = FakeSearchProvider(error=SearchProviderError("fake", "down"))
    augmenter = WebSearchAugmenter(provider)

    with pytest.raises(SearchProviderError):
        await augmenter.deep_search("anything")


def test_merge_results_respects_limit() -> None:
    merged = merge_results(
        [[_result("https://a.test"), _result("https://b.test")], [_result("https://c.test")]],
        limit=2,
    )
    assert [r.url for r in merged] == ["https://a.test", "https://b.test"]


@pytest.mark.asyncio
async def test_bing_provider_sends_key_header_and_parses_web_pages(
    mock_client_factory: ClientFactory,
) -> None:
    requests: list[httpx.Request] = []

    def _bing(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "webPages": {
                    "value": [
                        {"name": "Python", "url": "https://python.org", "snippet": "Lang"},
                        {"name": "no url"},
                        {
                            "name": "An exceedingly long page title that goes on and on",
                            "url": "https://docs.python-guide.org/intro",
                            "snippet": "Guide",
                        },
                    ],
                },
            },
        )

    provider = BingSearchProvider("bing-key", client=mock_client_factory(_bing))
    results = await provider.search("python", 4)

    assert requests[0].headers["Ocp-Apim-Subscription-Key"] == "bing-key"
    assert requests[0].url.params["count"] == "4"
    assert [r.url for r in results] == ["https://python.org", "https://docs.python-guide.org/intro"]
    assert results[0].source_title == "Python"
    assert results[1].source_title == "Docs"


@pytest.mark.asyncio
async def test_search_provider_error_status_is_raised(
    mock_client_factory: ClientFactory,
) -> None:
    def _forbidden(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, text="bad key")

    provider = BingSearchProvider("bing-key", client=mock_client_factory(_forbidden))

    with pytest.raises(SearchProviderError) as excinfo:
        await provider.search("python", 4)
    assert excinfo.value.status_code == 403


@pytest.mark.asyncio
async def test_serpapi_falls_back_from_organic_to_answer_box(
    mock_client_factory: ClientFactory,
) -> None:
    def _serpapi(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"answer_box": {"title": "Capital", "answer": "Paris"}},
        )

    provider = SerpApiSearchProvider("k", client=mock_client_factory(_serpapi))
    results = await provider.search("capital of france", 4)

    assert len(results) == 1
    assert results[0].snippet == "Paris"
    assert results[0].url == "https://www.google.com/search?q=capital+of+france"


@pytest.mark.asyncio
async def test_location_sensitive_query_gets_city_appended(
    mock_client_factory: ClientFactory,
) -> None:
    lookups: list[str] = []

    def _geo(request: httpx.Request) -> httpx.Response:
        lookups.append(request.url.path)
        return httpx.Response(200, json={"city": "Lisbon", "region": "Lisbon", "country_name": "Portugal"})

    resolver = LocationResolver(
        client=mock_client_factory(_geo),
        cache=TTLCache(8, TTL),
    )
    provider = FakeSearchProvider(results=[_result("https://w.test")])
    augmenter = WebSearchAugmenter(provider, location_resolver=resolver)

    await augmenter.search("weather today", client_ip="8.8.8.8")
    await augmenter.search("weather tomorrow", client_ip="8.8.8.8")
    await augmenter.search("capital of france", client_ip="8.8.8.8")
    await augmenter.search("weather today", client_ip="192.168.1.4")

    assert provider.queries == [
        "weather today Lisbon",
        "weather tomorrow Lisbon",
        "capital of france",
        "weather today",
    ]
    assert lookups == ["/8.8.8.8/json/"]


@pytest.mark.asyncio
async def test_build_search_provider_needs_a_key(httpx_client: httpx.AsyncClient) -> None:
    assert build_search_provider({}, client=httpx_client) is None

    bing = build_search_provider(
        {"search": {"provider": "Bing"}, "providers": {"bing": {"api_key": "k"}}},
        client=httpx_client,
    )
    assert isinstance(bing, BingSearchProvider)

    unknown = build_search_provider(
        {"search": {"provider": "altavista"}, "providers": {"altavista": {"api_key": "k"}}},
        client=httpx_client,
    )
    assert unknown is None
