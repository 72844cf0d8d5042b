from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from chatcortex.core.config import DEFAULT_MAX_TOKENS, PROVIDER_TIMEOUT_SECONDS

if TYPE_CHECKING:
    from chatcortex.core.models import FileAttachment, Message

# Any JSON value a client sends; mappings and strings get dedicated rendering
ContextItem = Mapping[str, Any] | str | int | float | bool | list[Any] | None


@dataclass(slots=True)
class LiteLLMOptions:
    """Optional configuration for building LiteLLM kwargs."""

    base_url: str | None = None
    extra_headers: dict | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    timeout: float | None = None


@dataclass(frozen=True, slots=True)
class ProviderSettings:
    """Connection and request settings for one vendor model."""

    model: str
    api_key: str | None = None
    base_url: str | None = None
    max_tokens: int = DEFAULT_MAX_TOKENS
    timeout: float = PROVIDER_TIMEOUT_SECONDS


@runtime_checkable
class ModelHandler(Protocol):
    """Uniform generation contract implemented by every provider adapter."""

    provider_name: str

    async def generate(
        self,
        messages: Sequence[Message],
        system_prompt: str,
        context: Sequence[ContextItem] | None = None,
        files: Sequence[FileAttachment] | None = None,
    ) -> Message:
        """Produce one assistant message for the conversation."""
        ...
