"""Core LLM service operations shared by the provider adapters."""

from __future__ import annotations

import json
import re
import uuid
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

import httpx
import litellm

from chatcortex.core.models import Message, TextContent, now_ms
from chatcortex.logic.postprocess import clean
from chatcortex.services.llm.types import LiteLLMOptions

if TYPE_CHECKING:
    from chatcortex.services.llm.types import ContextItem

ANTHROPIC_MESSAGE_ID_RE = re.compile(r"^msg_[A-Za-z0-9]+$")
SEARCH_RESULTS_INSTRUCTION = (
    "Please use the above search results to help answer the user's question. "
    "Do not use numbered citations in your response. Instead, add sources in a "
    "separate 'Sources' section at the end using this format: "
    "'Sources: [SourceTitle](URL)' with each source on its own line."
)
CONTEXT_HEADER = "### Additional Context ###"


def _collect_litellm_exceptions() -> tuple[type[Exception], ...]:
    return tuple(
        dict.fromkeys(
            exception_type
            for exception_type in vars(litellm.exceptions).values()
            if isinstance(exception_type, type)
            and issubclass(exception_type, Exception)
        ),
    )


LITELLM_EXCEPTIONS = _collect_litellm_exceptions()


def get_exception_status_code(error: BaseException) -> int | None:
    """Return the HTTP status carried by a vendor SDK exception, if any."""
    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        return status_code

    response = getattr(error, "response", None)
    if response is not None:
        resp_code = getattr(response, "status_code", None)
        if isinstance(resp_code, int):
            return resp_code
    return None


def build_litellm_model_name(provider: str, model: str) -> str:
    """Build the LiteLLM model name with proper provider prefix.

    Args:
        provider: Provider name (e.g., "gemini", "openai")
        model: Model name

    Returns:
        LiteLLM-compatible model string (e.g., "gemini/gemini-2.0-flash-001")

    """
    if "/" in model:
        return model
    if provider in {"gemini", "anthropic"}:
        return f"{provider}/{model}"
    # OpenAI-compatible providers use the bare model name plus base_url
    return model


def prepare_litellm_kwargs(
    provider: str,
    model: str,
    messages: list,
    api_key: str | None,
    *,
    options: LiteLLMOptions | None = None,
) -> dict[str, Any]:
    """Prepare kwargs for LiteLLM acompletion() with provider configuration.

    Used by the OpenAI-compatible adapter as well as the auxiliary query
    refinement and chat title calls.

    Args:
        provider: Provider name (e.g., "gemini", "openai")
        model: Model name
        messages: List of message dicts in OpenAI format
        api_key: API key to use; ``None`` lets LiteLLM read its env vars
        options: Optional configuration bundle for provider-specific settings

    Returns:
        Dict of kwargs ready to pass to litellm.acompletion()

    """
    options = options or LiteLLMOptions()

    kwargs: dict[str, Any] = {
        "model": build_litellm_model_name(provider, model),
        "messages": messages,
    }
    if api_key:
        kwargs["api_key"] = api_key

    if options.temperature is not None:
        kwargs["temperature"] = options.temperature
    if options.max_tokens is not None:
        kwargs["max_tokens"] = options.max_tokens
    if options.timeout is not None:
        kwargs["timeout"] = options.timeout

    # base_url only applies to OpenAI-compatible providers
    if options.base_url and provider not in {"gemini", "anthropic"}:
        kwargs["base_url"] = options.base_url

    if options.extra_headers:
        kwargs["extra_headers"] = dict(options.extra_headers)

    return kwargs


def resolve_message_id(vendor_id: object) -> str:
    """Reuse a well-formed Anthropic message id, else mint a uuid4."""
    if isinstance(vendor_id, str) and ANTHROPIC_MESSAGE_ID_RE.match(vendor_id):
        return vendor_id
    return str(uuid.uuid4())


def build_assistant_message(raw_text: str, *, vendor_id: object = None) -> Message:
    """Clean vendor text and wrap it in a canonical assistant message."""
    return Message(
        id=resolve_message_id(vendor_id),
        role="assistant",
        content=[TextContent(text=clean(raw_text))],
        created_at=now_ms(),
    )


def last_user_index(messages: Sequence[Message]) -> int | None:
    """Return the index of the most recent user turn."""
    for index in range(len(messages) - 1, -1, -1):
        if messages[index].role == "user":
            return index
    return None


def render_time_and_date(values: Mapping[str, Any]) -> str:
    """Render a ``{"TimeAndDate": {...}}`` payload as a prompt block."""
    return (
        "### Current Time and Date ###\n"
        f"Current Date: {values.get('date', '')}\n"
        f"Current Time: {values.get('time', '')}\n"
        f"Current Year: {values.get('year', '')}"
    )


def render_search_results(results: Sequence[Mapping[str, Any]]) -> str:
    """Render ``web_search_result`` items as a numbered block."""
    lines = ["### Search Results ###", ""]
    for index, result in enumerate(results, start=1):
        title = result.get("title") or "Search Result"
        snippet = result.get("snippet") or "No description available"
        url = result.get("url") or "No source URL"
        source_title = result.get("sourceTitle") or title
        lines.append(f'[{index}] "{title}"\n{snippet}\nSource: {source_title} ({url})\n')
    lines.append(SEARCH_RESULTS_INSTRUCTION)
    return "\n".join(lines)


def render_context_item(item: ContextItem) -> str:
    """Render a generic context item as ``[title]\\ncontent`` or JSON."""
    if isinstance(item, str):
        return item
    if not isinstance(item, Mapping):
        return json.dumps(item, ensure_ascii=False, default=str)
    title = item.get("title")
    content = item.get("content")
    if title and isinstance(content, str):
        return f"[{title}]\n{content}"
    if isinstance(content, str):
        return content
    return json.dumps(dict(item), ensure_ascii=False, default=str)


def render_context_sections(context: Sequence[ContextItem] | None) -> list[str]:
    """Group context items into prompt sections.

    Returns the time-and-date block, then the search results block, then any
    other items under a shared header. Empty groups are omitted.
    """
    if not context:
        return []

    time_and_date: Mapping[str, Any] | None = None
    search_results: list[Mapping[str, Any]] = []
    others: list[str] = []
    for item in context:
        if isinstance(item, Mapping) and isinstance(item.get("TimeAndDate"), Mapping):
            time_and_date = item["TimeAndDate"]
        elif isinstance(item, Mapping) and item.get("type") == "web_search_result":
            search_results.append(item)
        else:
            others.append(render_context_item(item))

    sections: list[str] = []
    if time_and_date is not None:
        sections.append(render_time_and_date(time_and_date))
    if search_results:
        sections.append(render_search_results(search_results))
    if others:
        sections.append("\n\n".join([CONTEXT_HEADER, *others]))
    return sections


def system_text_with_context(
    system_prompt: str,
    context: Sequence[ContextItem] | None,
) -> str:
    """Append rendered context sections to the system prompt."""
    return "\n\n".join(
        part for part in [system_prompt, *render_context_sections(context)] if part
    )


def describe_error_response(response: httpx.Response) -> str:
    """Pull a short message out of a vendor error body."""
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, Mapping):
        error = payload.get("error")
        if isinstance(error, Mapping) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if payload.get("message"):
            return str(payload["message"])

    text = " ".join(response.text.split())
    return text[:200] or response.reason_phrase or "empty response"
