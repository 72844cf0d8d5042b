"""Google Generative Language (Gemini) adapter."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from chatcortex.core.config import GEMINI_BASE_URL, is_gemini_model
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

PROVIDER_NAME = "google"

DEFAULT_SAFETY_SETTINGS = [
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_ONLY_HIGH"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_ONLY_HIGH"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_ONLY_HIGH"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_ONLY_HIGH"},
]


def extract_gemini_text(payload: object) -> str:
    """Concatenate the text parts of the first candidate.

    Parts are fragments of one text, so they are joined without a separator.
    Thought parts are skipped.
    """
    if not isinstance(payload, dict):
        raise UnexpectedResponseFormatError(PROVIDER_NAME, "body is not an object")

    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        feedback = payload.get("promptFeedback")
        detail = None
        if isinstance(feedback, dict) and feedback.get("blockReason"):
            detail = f"blocked: {feedback['blockReason']}"
        raise UnexpectedResponseFormatError(PROVIDER_NAME, detail)

    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if isinstance(parts, list):
        texts = [
            part["text"]
            for part in parts
            if isinstance(part, dict)
            and isinstance(part.get("text"), str)
            and not part.get("thought")
        ]
        if texts:
            return "".join(texts)
    raise UnexpectedResponseFormatError(PROVIDER_NAME)


class GeminiHandler:
    """Generate replies through the ``generateContent`` endpoint."""

    provider_name = PROVIDER_NAME

    def __init__(self, settings: ProviderSettings, *, client: httpx.AsyncClient) -> None:
        """Bind the handler to its model settings and shared HTTP client."""
        self.settings = settings
        self.client = client

    @property
    def endpoint(self) -> str:
        base_url = (self.settings.base_url or GEMINI_BASE_URL).rstrip("/")
        return f"{base_url}/v1beta/models/{self.settings.model}:generateContent"

    async def build_payload(
        self,
        messages: Sequence[Message],
        system_prompt: str,
        context: Sequence[ContextItem] | None = None,
        files: Sequence[FileAttachment] | None = None,
    ) -> dict[str, Any]:
        """Build the request body.

        Gemini models get the system text as ``system_instruction``; other
        models on this endpoint (Gemma) lack it, so the text is sent as a
        leading user turn instead.
        """
        contents: list[dict[str, Any]] = []
        latest_user = last_user_index(messages)
        for index, message in enumerate(messages):
            if message.role == "system":
                continue
            role = "model" if message.role == "assistant" else "user"
            if index == latest_user:
                content = [*message.content, *attachments_to_content(files or ())]
                parts = await to_provider_format(
                    content,
                    ProviderKind.GOOGLE,
                    client=self.client,
                )
                contents.append({"role": role, "parts": parts})
                continue
            text = render_history_text(message)
            if text:
                contents.append({"role": role, "parts": [{"text": text}]})

        system_text = system_text_with_context(system_prompt, context)
        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {"maxOutputTokens": self.settings.max_tokens},
            "safetySettings": DEFAULT_SAFETY_SETTINGS,
        }
        if is_gemini_model(self.settings.model):
            payload["system_instruction"] = {"parts": [{"text": system_text}]}
        elif system_text:
            contents.insert(0, {"role": "user", "parts": [{"text": system_text}]})
        return payload

    async def generate(
        self,
        messages: Sequence[Message],
        system_prompt: str,
        context: Sequence[ContextItem] | None = None,
        files: Sequence[FileAttachment] | None = None,
    ) -> Message:
        """Call ``generateContent`` once and return the cleaned reply."""
        payload = await self.build_payload(messages, system_prompt, context, files)
        logger.debug(
            "Gemini request | model=%s contents=%d",
            self.settings.model,
            len(payload["contents"]),
        )

        headers = {"content-type": "application/json"}
        if self.settings.api_key:
            headers["x-goog-api-key"] = self.settings.api_key

        try:
            response = await self.client.post(
                self.endpoint,
                json=payload,
                headers=headers,
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

        return build_assistant_message(extract_gemini_text(body))
