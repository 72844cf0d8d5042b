"""OpenAI-compatible chat completions adapter (via LiteLLM)."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import litellm

from chatcortex.core.exceptions import ProviderError, UnexpectedResponseFormatError
from chatcortex.core.models import ProviderKind
from chatcortex.logic.content import (
    attachments_to_content,
    render_history_text,
    to_provider_format,
)
from chatcortex.services.llm.core import (
    LITELLM_EXCEPTIONS,
    build_assistant_message,
    get_exception_status_code,
    last_user_index,
    prepare_litellm_kwargs,
    render_context_sections,
)
from chatcortex.services.llm.types import LiteLLMOptions

if TYPE_CHECKING:
    from collections.abc import Sequence

    import httpx

    from chatcortex.core.models import FileAttachment, Message
    from chatcortex.services.llm.types import ContextItem, ProviderSettings

logger = logging.getLogger(__name__)

PROVIDER_NAME = "openai"


def extract_openai_text(response: Any) -> str:  # noqa: ANN401
    """Extract assistant text from a chat completions response.

    String content is used as-is; block arrays keep their text blocks in
    order, joined with a single space.
    """
    try:
        content = response.choices[0].message.content
    except (AttributeError, IndexError, KeyError, TypeError) as exc:
        raise UnexpectedResponseFormatError(PROVIDER_NAME, "missing choices") from exc

    if isinstance(content, str) and content:
        return content
    if isinstance(content, list):
        texts = [
            block["text"]
            for block in content
            if isinstance(block, dict)
            and block.get("type") == "text"
            and isinstance(block.get("text"), str)
        ]
        if texts:
            return " ".join(texts)
    raise UnexpectedResponseFormatError(PROVIDER_NAME)


class OpenAIHandler:
    """Generate replies through an OpenAI-compatible chat completions API."""

    provider_name = PROVIDER_NAME

    def __init__(self, settings: ProviderSettings, *, client: httpx.AsyncClient) -> None:
        """Bind the handler to its model settings and shared HTTP client."""
        self.settings = settings
        self.client = client

    async def build_messages(
        self,
        messages: Sequence[Message],
        system_prompt: str,
        context: Sequence[ContextItem] | None = None,
        files: Sequence[FileAttachment] | None = None,
    ) -> list[dict[str, Any]]:
        """Build the OpenAI ``messages`` array for one request."""
        payload: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]

        latest_user = last_user_index(messages)
        for index, message in enumerate(messages):
            if index == latest_user:
                content = [*message.content, *attachments_to_content(files or ())]
                blocks = await to_provider_format(
                    content,
                    ProviderKind.OPENAI,
                    client=self.client,
                )
                payload.append({"role": "user", "content": blocks})
            else:
                payload.append(
                    {"role": message.role, "content": render_history_text(message)},
                )

        payload.extend(
            {"role": "system", "content": section}
            for section in render_context_sections(context)
        )
        return payload

    async def generate(
        self,
        messages: Sequence[Message],
        system_prompt: str,
        context: Sequence[ContextItem] | None = None,
        files: Sequence[FileAttachment] | None = None,
    ) -> Message:
        """Run one chat completion and return the cleaned assistant message."""
        payload = await self.build_messages(messages, system_prompt, context, files)
        kwargs = prepare_litellm_kwargs(
            provider=PROVIDER_NAME,
            model=self.settings.model,
            messages=payload,
            api_key=self.settings.api_key,
            options=LiteLLMOptions(
                base_url=self.settings.base_url,
                max_tokens=self.settings.max_tokens,
                timeout=self.settings.timeout,
            ),
        )

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "OpenAI request | model=%s messages=%d",
                kwargs["model"],
                len(payload),
            )
            logger.debug("Messages:\n%s", json.dumps(payload, indent=2)[:4000])

        try:
            response = await litellm.acompletion(**kwargs)
        except LITELLM_EXCEPTIONS as exc:
            raise ProviderError(
                PROVIDER_NAME,
                str(exc) or type(exc).__name__,
                status_code=get_exception_status_code(exc),
            ) from exc

        return build_assistant_message(extract_openai_text(response))
