"""Model registry: maps model ids to adapters, capabilities and prompts."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from chatcortex.core.config import (
    ANTHROPIC_DEFAULT_MODEL,
    DEFAULT_MAX_TOKENS,
    GEMINI_DEFAULT_MODEL,
    GEMINI_PRO_MODEL,
    OPENAI_DEFAULT_MODEL,
    PROVIDER_TIMEOUT_SECONDS,
    coerce_positive_number,
    get_section,
    normalize_api_key,
)
from chatcortex.core.exceptions import DuplicateModelError
from chatcortex.logic.prompts import PromptContext, build_system_prompt
from chatcortex.services.llm import (
    AnthropicHandler,
    GeminiHandler,
    ModelHandler,
    OpenAIHandler,
    ProviderSettings,
)

if TYPE_CHECKING:
    import httpx

logger = logging.getLogger(__name__)

SystemPromptFactory = Callable[[PromptContext], str]


@dataclass(frozen=True, slots=True)
class AIModelConfig:
    """One selectable chat model."""

    id: str
    name: str
    description: str
    accepts_files: bool
    handler: ModelHandler
    system_prompt: SystemPromptFactory
    accepts_custom_instructions: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Public, handler-free view used by the model list endpoint."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "acceptsFiles": self.accepts_files,
            "acceptsCustomInstructions": self.accepts_custom_instructions,
        }


class ModelRegistry:
    """Immutable id-to-config table built once at startup."""

    def __init__(self, configs: Iterable[AIModelConfig]) -> None:
        """Index ``configs`` by id.

        Raises:
            DuplicateModelError: If two entries share an id.

        """
        self._configs: dict[str, AIModelConfig] = {}
        for config in configs:
            if config.id in self._configs:
                raise DuplicateModelError(config.id)
            self._configs[config.id] = config

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._configs

    def __len__(self) -> int:
        return len(self._configs)

    def resolve(self, model_id: str) -> AIModelConfig | None:
        return self._configs.get(model_id)

    def list(self) -> list[AIModelConfig]:
        return list(self._configs.values())

    def get_handler(self, model_id: str) -> ModelHandler | None:
        config = self._configs.get(model_id)
        return config.handler if config else None

    def get_system_prompt(self, ctx: PromptContext) -> str:
        """Build the system prompt for ``ctx.selected_chat_model``.

        Unknown models get an empty prompt rather than an error.
        """
        config = self._configs.get(ctx.selected_chat_model)
        if config is None:
            return ""
        return config.system_prompt(ctx)

    def accepts_files(self, model_id: str) -> bool:
        config = self._configs.get(model_id)
        return bool(config and config.accepts_files)

    def accepts_custom_instructions(self, model_id: str) -> bool:
        config = self._configs.get(model_id)
        return bool(config and config.accepts_custom_instructions)


def _provider_settings(
    config: Mapping[str, Any],
    *,
    provider: str,
    model_id: str,
    default_model: str,
) -> ProviderSettings:
    provider_config = get_section(config, "providers", provider)
    model_config = get_section(config, "models", model_id)
    return ProviderSettings(
        model=str(model_config.get("model") or default_model),
        api_key=normalize_api_key(provider_config.get("api_key")),
        base_url=provider_config.get("base_url") or None,
        max_tokens=int(
            coerce_positive_number(model_config.get("max_tokens"), DEFAULT_MAX_TOKENS),
        ),
        timeout=coerce_positive_number(
            config.get("provider_timeout_seconds"),
            PROVIDER_TIMEOUT_SECONDS,
        ),
    )


def build_default_registry(
    config: Mapping[str, Any],
    *,
    client: httpx.AsyncClient,
) -> ModelRegistry:
    """Build the built-in model table from configuration.

    Model version strings, API keys and base URLs come from ``config``;
    anything missing falls back to the built-in defaults.
    """

    def settings(provider: str, model_id: str, default_model: str) -> ProviderSettings:
        return _provider_settings(
            config,
            provider=provider,
            model_id=model_id,
            default_model=default_model,
        )

    registry = ModelRegistry(
        [
            AIModelConfig(
                id="gemini-flash",
                name="Gemini 2.0 Flash",
                description="Built for large workloads, with an emphasis on speed and volume.",
                accepts_files=True,
                handler=GeminiHandler(
                    settings("gemini", "gemini-flash", GEMINI_DEFAULT_MODEL),
                    client=client,
                ),
                system_prompt=build_system_prompt,
                accepts_custom_instructions=True,
            ),
            AIModelConfig(
                id="gemini",
                name="Gemini 2.5 Pro",
                description="Excellent for complex tasks over large amounts of data.",
                accepts_files=True,
                handler=GeminiHandler(
                    settings("gemini", "gemini", GEMINI_PRO_MODEL),
                    client=client,
                ),
                system_prompt=build_system_prompt,
                accepts_custom_instructions=True,
            ),
            AIModelConfig(
                id="gpt-4o-mini",
                name="GPT-4o mini",
                description="Great for everyday tasks.",
                accepts_files=True,
                handler=OpenAIHandler(
                    settings("openai", "gpt-4o-mini", OPENAI_DEFAULT_MODEL),
                    client=client,
                ),
                system_prompt=build_system_prompt,
                accepts_custom_instructions=True,
            ),
            AIModelConfig(
                id="claude-sonnet-3.5",
                name="Claude 3.5 Sonnet",
                description="Specialized for hard tasks such as programming and math.",
                accepts_files=True,
                handler=AnthropicHandler(
                    settings("anthropic", "claude-sonnet-3.5", ANTHROPIC_DEFAULT_MODEL),
                    client=client,
                ),
                system_prompt=build_system_prompt,
                accepts_custom_instructions=True,
            ),
        ],
    )
    logger.info("Model registry ready with %d models", len(registry))
    return registry
