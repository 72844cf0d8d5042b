from __future__ import annotations

import pytest
from _fakes import FakeLiteLLMError, assistant, completion_response, user

from chatcortex.core.config import DEFAULT_CHAT_TITLE
from chatcortex.logic import titles as titles_mod
from chatcortex.logic.titles import MAX_TITLE_CHARS, TitleGenerator

EXCHANGE = [user("how do I bake bread?"), assistant("Mix flour, water, yeast and salt.")]


@pytest.mark.asyncio
async def test_title_is_first_line_without_quotes_or_markdown(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    captured: dict[str, object] = {}

    async def _fake_acompletion(**kwargs: object) -> object:
        captured.update(kwargs)
        return completion_response('## "Baking Bread Basics"\nA chat about bread')

    monkeypatch.setattr("chatcortex.logic.titles.litellm.acompletion", _fake_acompletion)

    title = await TitleGenerator(api_key="g-key").generate(EXCHANGE)

    assert title == "Baking Bread Basics"
    assert captured["model"] == "gemini/gemini-2.0-flash-lite-001"
    assert captured["api_key"] == "g-key"
    messages = captured["messages"]
    assert isinstance(messages, list)
    assert "user: how do I bake bread?" in messages[0]["content"]


@pytest.mark.asyncio
async def test_long_titles_are_truncated(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _fake_acompletion(**_kwargs: object) -> object:
        return completion_response("t" * 200)

    monkeypatch.setattr("chatcortex.logic.titles.litellm.acompletion", _fake_acompletion)

    title = await TitleGenerator().generate(EXCHANGE)

    assert len(title) == MAX_TITLE_CHARS


@pytest.mark.asyncio
@pytest.mark.parametrize("outcome", ["error", "empty"])
async def test_failures_fall_back_to_default_title(
    monkeypatch: pytest.MonkeyPatch,
    outcome: str,
) -> None:
    async def _fake_acompletion(**_kwargs: object) -> object:
        if outcome == "error":
            msg = "quota exceeded"
            raise FakeLiteLLMError(msg)
        return completion_response("  ")

    monkeypatch.setattr(titles_mod, "LITELLM_EXCEPTIONS", (FakeLiteLLMError,))
    monkeypatch.setattr("chatcortex.logic.titles.litellm.acompletion", _fake_acompletion)

    assert await TitleGenerator().generate(EXCHANGE) == DEFAULT_CHAT_TITLE


@pytest.mark.asyncio
async def test_empty_thread_gets_default_title() -> None:
    assert await TitleGenerator().generate([]) == DEFAULT_CHAT_TITLE
