from __future__ import annotations

import httpx
import pytest
from _fakes import FakeHandler

from chatcortex.core.exceptions import DuplicateModelError
from chatcortex.logic.permissions import allowed_model_ids, available_models, is_model_allowed
from chatcortex.logic.prompts import (
    CORTEX_PREAMBLE,
    DEFAULT_CUSTOM_INSTRUCTIONS,
    PromptContext,
    build_system_prompt,
)
from chatcortex.logic.registry import AIModelConfig, ModelRegistry, build_default_registry
from chatcortex.services.llm import (
    AnthropicHandler,
    GeminiHandler,
    ModelHandler,
    OpenAIHandler,
)

BUILT_IN_IDS = ["gemini-flash", "gemini", "gpt-4o-mini", "claude-sonnet-3.5"]


def _config(model_id: str, **overrides: object) -> AIModelConfig:
    fields: dict[str, object] = {
        "id": model_id,
        "name": model_id.title(),
        "description": "test model",
        "accepts_files": False,
        "handler": FakeHandler(),
        "system_prompt": build_system_prompt,
    }
    fields.update(overrides)
    return AIModelConfig(**fields)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_every_built_in_id_resolves_to_a_model_handler(
    httpx_client: httpx.AsyncClient,
) -> None:
    registry = build_default_registry({}, client=httpx_client)

    assert [config.id for config in registry.list()] == BUILT_IN_IDS
    for model_id in BUILT_IN_IDS:
        config = registry.resolve(model_id)
        assert config is not None
        assert isinstance(config.handler, ModelHandler)
        assert registry.get_handler(model_id) is config.handler

    assert registry.resolve("unknown") is None
    assert registry.get_handler("unknown") is None


@pytest.mark.asyncio
async def test_built_in_handlers_follow_provider_and_config(
    httpx_client: httpx.AsyncClient,
) -> None:
    config = {
        "providers": {"anthropic": {"api_key": [" ", "sk-ant"]}},
        "models": {"gpt-4o-mini": {"model": "gpt-4o-mini-2024-07-18", "max_tokens": 256}},
    }
    registry = build_default_registry(config, client=httpx_client)

    assert isinstance(registry.get_handler("gemini-flash"), GeminiHandler)
    openai = registry.get_handler("gpt-4o-mini")
    assert isinstance(openai, OpenAIHandler)
    assert openai.settings.model == "gpt-4o-mini-2024-07-18"
    assert openai.settings.max_tokens == 256
    anthropic = registry.get_handler("claude-sonnet-3.5")
    assert isinstance(anthropic, AnthropicHandler)
    assert anthropic.settings.api_key == "sk-ant"


def test_duplicate_ids_are_rejected() -> None:
    with pytest.raises(DuplicateModelError, match="gpt-4o-mini"):
        ModelRegistry([_config("gpt-4o-mini"), _config("gpt-4o-mini")])


def test_system_prompt_uses_custom_instructions_when_given() -> None:
    registry = ModelRegistry([_config("m", accepts_custom_instructions=True)])

    default = registry.get_system_prompt(PromptContext(selected_chat_model="m"))
    custom = registry.get_system_prompt(
        PromptContext(selected_chat_model="m", custom_instructions="Answer like a pirate."),
    )

    assert default == f"{CORTEX_PREAMBLE}\n\n{DEFAULT_CUSTOM_INSTRUCTIONS}"
    assert custom == f"{CORTEX_PREAMBLE}\n\nAnswer like a pirate."
    assert registry.get_system_prompt(PromptContext(selected_chat_model="nope")) == ""


def test_capability_lookups() -> None:
    registry = ModelRegistry(
        [_config("files", accepts_files=True), _config("plain")],
    )

    assert "files" in registry
    assert len(registry) == 2
    assert registry.accepts_files("files") is True
    assert registry.accepts_files("plain") is False
    assert registry.accepts_files("missing") is False
    assert registry.accepts_custom_instructions("plain") is False


def test_to_dict_hides_the_handler() -> None:
    data = _config("m", accepts_files=True).to_dict()
    assert data == {
        "id": "m",
        "name": "M",
        "description": "test model",
        "acceptsFiles": True,
        "acceptsCustomInstructions": False,
    }


PLANS = {
    "free": {"models": ["a"]},
    "pro": {"models": "*"},
    "broken": {"models": 3},
}


def test_plans_filter_model_list_in_registry_order() -> None:
    registry = ModelRegistry([_config("b"), _config("a")])

    assert [c.id for c in available_models(registry, "free", PLANS)] == ["a"]
    assert [c.id for c in available_models(registry, "pro", PLANS)] == ["b", "a"]
    assert [c.id for c in available_models(registry, "free", {})] == ["b", "a"]


def test_unknown_plan_falls_back_to_default_plan() -> None:
    assert allowed_model_ids("enterprise", PLANS) == {"a"}
    assert allowed_model_ids("broken", PLANS) == set()
    assert is_model_allowed("a", None, PLANS) is True
    assert is_model_allowed("b", "free", PLANS) is False
    assert is_model_allowed("b", "pro", PLANS) is True
