from __future__ import annotations

import asyncio
from datetime import datetime

import pytest
from _fakes import FakeHandler, FakeSearchProvider, FakeTitleGenerator

from chatcortex.core.config import DEFAULT_CHAT_TITLE
from chatcortex.core.exceptions import (
    ChatDispatchError,
    ImageFetchError,
    ProviderError,
    SearchProviderError,
    UnsupportedModelError,
)
from chatcortex.core.models import FileAttachment, ImageContent, SearchResult, TextContent
from chatcortex.logic.dispatch import (
    Capabilities,
    ChatDispatcher,
    SendMessageRequest,
    error_message,
    time_and_date_context,
)
from chatcortex.logic.prompts import CORTEX_PREAMBLE, DEFAULT_CUSTOM_INSTRUCTIONS, build_system_prompt
from chatcortex.logic.registry import AIModelConfig, ModelRegistry
from chatcortex.services.search import WebSearchAugmenter
from chatcortex.services.store import InMemoryChatStore


def _registry(**handlers: FakeHandler) -> ModelRegistry:
    return ModelRegistry(
        AIModelConfig(
            id=model_id,
            name=model_id.upper(),
            description="",
            accepts_files=True,
            handler=handler,
            system_prompt=build_system_prompt,
            accepts_custom_instructions=model_id != "locked",
        )
        for model_id, handler in handlers.items()
    )


def _request(content: str = "hello", **overrides: object) -> SendMessageRequest:
    fields: dict[str, object] = {
        "content": content,
        "session_id": None,
        "user_id": "u1",
        "model": "gpt-4o-mini",
    }
    fields.update(overrides)
    return SendMessageRequest(**fields)  # type: ignore[arg-type]


@pytest.fixture
def store() -> InMemoryChatStore:
    return InMemoryChatStore()


@pytest.mark.asyncio
async def test_first_message_creates_session_and_returns_text_reply(
    store: InMemoryChatStore,
    fixed_now: datetime,
) -> None:
    handler = FakeHandler(reply="Hi! How can I help?")
    titles = FakeTitleGenerator(title="Greetings")
    dispatcher = ChatDispatcher(
        _registry(**{"gpt-4o-mini": handler}),
        store,
        title_generator=titles,
        clock=lambda: fixed_now,
    )

    result = await dispatcher.send_message(_request())

    assert result.session_id in store.sessions
    first = result.message.content[0]
    assert isinstance(first, TextContent)
    assert first.text
    assert result.message.role == "assistant"
    assert result.title_updated is True
    assert result.title == "Greetings"
    assert store.sessions[result.session_id].title == "Greetings"

    chat = await store.get_latest_chat(result.session_id)
    assert chat is not None
    assert [m.role for m in chat.messages] == ["user", "assistant"]
    assert not any(m.pending for m in chat.messages)

    call = handler.calls[0]
    assert [m.role for m in call.messages] == ["user"]
    assert call.system_prompt == f"{CORTEX_PREAMBLE}\n\n{DEFAULT_CUSTOM_INSTRUCTIONS}"
    assert call.context[-1] == time_and_date_context(fixed_now)
    assert call.context[-1] == {
        "TimeAndDate": {"date": "3/19/2026", "time": "3:04:05 PM", "year": 2026},
    }


@pytest.mark.asyncio
async def test_follow_up_keeps_the_chat_model_and_skips_title(
    store: InMemoryChatStore,
) -> None:
    original = FakeHandler(reply="from original")
    other = FakeHandler(reply="from other")
    titles = FakeTitleGenerator()
    dispatcher = ChatDispatcher(
        _registry(**{"gpt-4o-mini": original, "gemini": other}),
        store,
        title_generator=titles,
    )

    first = await dispatcher.send_message(_request())
    second = await dispatcher.send_message(
        _request("and then?", session_id=first.session_id, model="gemini"),
    )

    assert second.message.text == "from original"
    assert other.calls == []
    assert [m.role for m in original.calls[1].messages] == ["user", "assistant", "user"]
    assert second.title_updated is False
    assert titles.calls == 1

    chat = await store.get_latest_chat(first.session_id)
    assert chat is not None
    assert len(chat.messages) == 4


@pytest.mark.asyncio
async def test_concurrent_messages_in_one_session_keep_every_turn(
    store: InMemoryChatStore,
) -> None:
    handler = FakeHandler(delay=0.05)
    dispatcher = ChatDispatcher(_registry(**{"gpt-4o-mini": handler}), store)
    first = await dispatcher.send_message(_request("one"))

    await asyncio.gather(
        dispatcher.send_message(_request("two", session_id=first.session_id)),
        dispatcher.send_message(_request("three", session_id=first.session_id)),
    )

    chat = await store.get_latest_chat(first.session_id)
    assert chat is not None
    assert [m.text for m in chat.messages if m.role == "user"] == ["one", "two", "three"]
    assert [m.role for m in chat.messages] == ["user", "assistant"] * 3
    assert [len(call.messages) for call in handler.calls] == [1, 3, 5]
    assert dispatcher._session_locks == {}


@pytest.mark.asyncio
async def test_unknown_model_raises_unsupported_model_error(store: InMemoryChatStore) -> None:
    dispatcher = ChatDispatcher(_registry(**{"gpt-4o-mini": FakeHandler()}), store)

    with pytest.raises(UnsupportedModelError, match="Unsupported model: nope"):
        await dispatcher.send_message(_request(model="nope"))

    assert store.chats == {}
    assert store.sessions == {}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        ProviderError("anthropic", "overloaded", status_code=529),
        ImageFetchError("https://x.test/a.png", "HTTP 404"),
    ],
)
async def test_vendor_failure_becomes_one_dispatch_error(
    store: InMemoryChatStore,
    error: Exception,
) -> None:
    dispatcher = ChatDispatcher(
        _registry(**{"gpt-4o-mini": FakeHandler(error=error)}),
        store,
    )

    with pytest.raises(ChatDispatchError) as excinfo:
        await dispatcher.send_message(_request())

    assert excinfo.value.model_id == "gpt-4o-mini"
    assert excinfo.value.user_message.startswith(
        "Failed to generate a response with GPT-4O-MINI: ",
    )
    assert str(error) in excinfo.value.user_message
    rendered = error_message(excinfo.value)
    assert rendered.role == "system"
    assert rendered.text == excinfo.value.user_message
    assert store.chats == {}


@pytest.mark.asyncio
async def test_slow_vendor_times_out(store: InMemoryChatStore) -> None:
    dispatcher = ChatDispatcher(
        _registry(**{"gpt-4o-mini": FakeHandler(delay=1.0)}),
        store,
        provider_timeout=0.01,
    )

    with pytest.raises(ChatDispatchError, match="did not respond within 0.01 seconds"):
        await dispatcher.send_message(_request())


@pytest.mark.asyncio
async def test_web_search_results_are_added_to_context(store: InMemoryChatStore) -> None:
    handler = FakeHandler()
    provider = FakeSearchProvider(
        results=[SearchResult(title="BTC", snippet="70k", url="https://p.test", source_title="P")],
    )
    dispatcher = ChatDispatcher(
        _registry(**{"gpt-4o-mini": handler}),
        store,
        augmenter=WebSearchAugmenter(provider),
    )

    await dispatcher.send_message(
        _request(
            "bitcoin price",
            context_items=[{"title": "Notes", "content": "user likes charts"}],
            capabilities=Capabilities(web_search=True),
        ),
    )

    context = handler.calls[0].context
    assert provider.queries == ["bitcoin price"]
    assert context[0] == {"title": "Notes", "content": "user likes charts"}
    assert context[1] == {
        "type": "web_search_result",
        "title": "BTC",
        "snippet": "70k",
        "url": "https://p.test",
        "sourceTitle": "P",
    }
    assert "TimeAndDate" in context[2]


@pytest.mark.asyncio
async def test_search_failure_does_not_block_the_reply(
    store: InMemoryChatStore,
    caplog: pytest.LogCaptureFixture,
) -> None:
    handler = FakeHandler(reply="answer without search")
    provider = FakeSearchProvider(error=SearchProviderError("fake", "down"))
    dispatcher = ChatDispatcher(
        _registry(**{"gpt-4o-mini": handler}),
        store,
        augmenter=WebSearchAugmenter(provider),
    )

    result = await dispatcher.send_message(
        _request("news today", capabilities=Capabilities(web_search=True)),
    )

    assert result.message.text == "answer without search"
    assert len(handler.calls[0].context) == 1
    assert "Web search failed" in caplog.text


@pytest.mark.asyncio
async def test_search_is_skipped_without_the_capability(store: InMemoryChatStore) -> None:
    provider = FakeSearchProvider()
    dispatcher = ChatDispatcher(
        _registry(**{"gpt-4o-mini": FakeHandler()}),
        store,
        augmenter=WebSearchAugmenter(provider),
    )

    await dispatcher.send_message(_request("news today"))

    assert provider.queries == []


@pytest.mark.asyncio
async def test_custom_instructions_apply_only_to_models_that_accept_them(
    store: InMemoryChatStore,
) -> None:
    open_handler = FakeHandler()
    locked_handler = FakeHandler()
    dispatcher = ChatDispatcher(
        _registry(**{"gpt-4o-mini": open_handler, "locked": locked_handler}),
        store,
    )
    capabilities = Capabilities(custom_instructions="Reply in French.")

    await dispatcher.send_message(_request(capabilities=capabilities))
    await dispatcher.send_message(_request(model="locked", capabilities=capabilities))

    assert open_handler.calls[0].system_prompt.endswith("\n\nReply in French.")
    assert locked_handler.calls[0].system_prompt.endswith(DEFAULT_CUSTOM_INSTRUCTIONS)


@pytest.mark.asyncio
async def test_attachments_are_part_of_the_user_turn(store: InMemoryChatStore) -> None:
    handler = FakeHandler()
    dispatcher = ChatDispatcher(_registry(**{"gpt-4o-mini": handler}), store)
    image = FileAttachment(
        id="i1",
        name="cat.png",
        url="https://x.test/cat.png",
        mime_type="image/png",
        is_image=True,
    )

    await dispatcher.send_message(_request("what is this?", file_attachments=[image]))

    user_turn = handler.calls[0].messages[-1]
    assert user_turn.content == [
        TextContent(text="what is this?"),
        ImageContent(url="https://x.test/cat.png"),
    ]
    assert user_turn.files == [image]


@pytest.mark.asyncio
async def test_missing_title_generator_uses_default_title(store: InMemoryChatStore) -> None:
    dispatcher = ChatDispatcher(_registry(**{"gpt-4o-mini": FakeHandler()}), store)

    result = await dispatcher.send_message(_request())

    assert result.title == DEFAULT_CHAT_TITLE


def test_request_from_dict_validates_fields() -> None:
    request = SendMessageRequest.from_dict(
        {
            "content": "hi",
            "userId": "u1",
            "model": "gemini",
            "sessionId": "",
            "fileAttachments": [{"name": "a.txt", "url": "https://x.test/a.txt", "mime_type": "text/plain"}],
            "capabilities": {"webSearch": True, "customInstructions": "Be terse."},
        },
        client_ip="8.8.8.8",
    )

    assert request.session_id is None
    assert request.file_attachments[0].name == "a.txt"
    assert request.capabilities == Capabilities(web_search=True, custom_instructions="Be terse.")
    assert request.client_ip == "8.8.8.8"

    with pytest.raises(ValueError, match="userId"):
        SendMessageRequest.from_dict({"content": "hi", "model": "gemini"})
    with pytest.raises(ValueError, match="attachment"):
        SendMessageRequest.from_dict(
            {"content": "hi", "userId": "u", "model": "m", "fileAttachments": [{"name": "x"}]},
        )
