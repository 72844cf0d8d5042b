from __future__ import annotations

from chatcortex.core.models import SearchResult
from chatcortex.services.llm.core import (
    CONTEXT_HEADER,
    SEARCH_RESULTS_INSTRUCTION,
    build_litellm_model_name,
    prepare_litellm_kwargs,
    render_context_sections,
    resolve_message_id,
    system_text_with_context,
)
from chatcortex.services.llm.types import LiteLLMOptions

TIME = {"TimeAndDate": {"date": "3/19/2026", "time": "3:04:05 PM", "year": 2026}}


def test_sections_are_ordered_time_search_then_other() -> None:
    context = [
        {"title": "Profile", "content": "likes tea"},
        SearchResult(title="Tea", snippet="Hot drink", url="https://t.test", source_title="T").to_context_item(),
        TIME,
        "plain note",
    ]

    sections = render_context_sections(context)

    assert sections[0] == (
        "### Current Time and Date ###\n"
        "Current Date: 3/19/2026\n"
        "Current Time: 3:04:05 PM\n"
        "Current Year: 2026"
    )
    assert sections[1] == (
        "### Search Results ###\n\n"
        '[1] "Tea"\nHot drink\nSource: T (https://t.test)\n\n'
        f"{SEARCH_RESULTS_INSTRUCTION}"
    )
    assert sections[2] == f"{CONTEXT_HEADER}\n\n[Profile]\nlikes tea\n\nplain note"


def test_empty_context_leaves_system_prompt_alone() -> None:
    assert render_context_sections(None) == []
    assert system_text_with_context("Be brief.", []) == "Be brief."
    assert system_text_with_context("", [TIME]).startswith("### Current Time and Date ###")


def test_litellm_model_names_and_kwargs() -> None:
    assert build_litellm_model_name("gemini", "gemini-2.0-flash") == "gemini/gemini-2.0-flash"
    assert build_litellm_model_name("openai", "gpt-4o-mini") == "gpt-4o-mini"
    assert build_litellm_model_name("openai", "openrouter/free") == "openrouter/free"

    kwargs = prepare_litellm_kwargs(
        "gemini",
        "gemini-2.0-flash",
        [],
        None,
        options=LiteLLMOptions(base_url="https://ignored.test", temperature=0.2),
    )
    assert kwargs == {"model": "gemini/gemini-2.0-flash", "messages": [], "temperature": 0.2}


def test_resolve_message_id_keeps_only_anthropic_ids() -> None:
    assert resolve_message_id("msg_01XyZ") == "msg_01XyZ"
    assert resolve_message_id("msg_bad-id") != "msg_bad-id"
    assert resolve_message_id(None)


def test_non_mapping_context_items_render_as_json() -> None:
    sections = render_context_sections(["ok", 42, ["a", "b"], None, {"score": 3}])

    assert sections == [
        f'{CONTEXT_HEADER}\n\nok\n\n42\n\n["a", "b"]\n\nnull\n\n{{"score": 3}}',
    ]
    assert system_text_with_context("Be brief.", [7]).endswith("\n\n7")
