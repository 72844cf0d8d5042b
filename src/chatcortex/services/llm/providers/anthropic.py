"""Anthropic Messages API adapter."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from chatcortex.core.config import ANTHROPIC_API_VERSION, ANTHROPIC_BASE_URL
from chatcortex.core.exceptions import ProviderError, UnexpectedResponseFormatError
from chatcortex.core.models import ProviderKind
from chatcortex.logic.content import (
    attachments_to_content,
    render_history_text,
    to_provider_format,
)
from chatcortex.services.llm.core import (
    build_assistant_message,
    describe_error_response,
    last_user_index,
    system_text_with_context,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from chatcortex.core.models import FileAttachment, Message
    from chatcortex.services.llm.types import ContextItem, ProviderSettings

logger = logging.getLogger(__name__)

PROVIDER_NAME = "anthropic"


def extract_anthropic_text(payload: object) -> str:
    """Join the text blocks of a Messages API response with newlines."""
    if not isinstance(payload, dict):
        raise UnexpectedResponseFormatError(PROVIDER_NAME, "body is not an object")

    content = payload.get("content")
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
            return "\n".join(texts)
    raise UnexpectedResponseFormatError(PROVIDER_NAME)


class AnthropicHandler:
    """Generate replies with Claude models over the Messages API."""

    provider_name = PROVIDER_NAME

    def __init__(self, settings: ProviderSettings, *, client: httpx.AsyncClient) -> None:
        """Bind the handler to its model settings and shared HTTP client."""
        self.settings = settings
        self.client = client

    @property
    def endpoint(self) -> str:
        base_url = (self.settings.base_url or ANTHROPIC_BASE_URL).rstrip("/")
        return f"{base_url}/v1/messages"

    def headers(self) -> dict[str, str]:
        headers = {
            "anthropic-version": ANTHROPIC_API_VERSION,
            "content-type": "application/json",
        }
        if self.settings.api_key:
            headers["x-api-key"] = self.settings.api_key
        return headers

    async def build_payload(
        self,
        messages: Sequence[Message],
        system_prompt: str,
        context: Sequence[ContextItem] | None = None,
        files: Sequence[FileAttachment] | None = None,
    ) -> dict[str, Any]:
        """Build the request body; context is folded into ``system``."""
        turns: list[dict[str, Any]] = []
        latest_user = last_user_index(messages)
        for index, message in enumerate(messages):
            # The Messages API only knows user and assistant turns
            if message.role == "system":
                continue
            if index == latest_user:
                content = [*message.content, *attachments_to_content(files or ())]
                blocks = await to_provider_format(
                    content,
                    ProviderKind.ANTHROPIC,
                    client=self.client,
                )
                turns.append({"role": "user", "content": blocks})
                continue
            text = render_history_text(message)
            if text:
                turns.append({"role": message.role, "content": text})

        return {
            "model": self.settings.model,
            "max_tokens": self.settings.max_tokens,
            "system": system_text_with_context(system_prompt, context),
            "messages": turns,
        }

    async def generate(
        self,
        messages: Sequence[Message],
        system_prompt: str,
        context: Sequence[ContextItem] | None = None,
        files: Sequence[FileAttachment] | None = None,
    ) -> Message:
        """Call the Messages API once and return the cleaned reply."""
        payload = await self.build_payload(messages, system_prompt, context, files)
        logger.debug(
            "Anthropic request | model=%s turns=%d",
            payload["model"],
            len(payload["messages"]),
        )

        try:
            response = await self.client.post(
                self.endpoint,
                json=payload,
                headers=self.headers(),
                timeout=self.settings.timeout,
            )
        except httpx.TimeoutException as exc:
            msg = f"timed out after {self.settings.timeout}s"
            raise ProviderError(PROVIDER_NAME, msg) from exc
        except httpx.RequestError as exc:
            raise ProviderError(PROVIDER_NAME, str(exc) or type(exc).__name__) from exc

        if not response.is_success:
            raise ProviderError(
                PROVIDER_NAME,
                describe_error_response(response),
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise UnexpectedResponseFormatError(PROVIDER_NAME, "invalid JSON") from exc

        return build_assistant_message(
            extract_anthropic_text(body),
            vendor_id=body.get("id"),
        )
