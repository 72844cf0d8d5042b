"""LLM service entrypoints and exports."""

from chatcortex.services.llm.core import (
    build_assistant_message,
    build_litellm_model_name,
    prepare_litellm_kwargs,
    render_context_sections,
    resolve_message_id,
)
from chatcortex.services.llm.providers.anthropic import AnthropicHandler
from chatcortex.services.llm.providers.gemini import GeminiHandler
from chatcortex.services.llm.providers.openai import OpenAIHandler
from chatcortex.services.llm.types import (
    ContextItem,
    LiteLLMOptions,
    ModelHandler,
    ProviderSettings,
)

__all__ = [
    "AnthropicHandler",
    "ContextItem",
    "GeminiHandler",
    "LiteLLMOptions",
    "ModelHandler",
    "OpenAIHandler",
    "ProviderSettings",
    "build_assistant_message",
    "build_litellm_model_name",
    "prepare_litellm_kwargs",
    "render_context_sections",
    "resolve_message_id",
]
