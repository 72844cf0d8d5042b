"""LLM-backed search query refinement."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import TYPE_CHECKING, Any

import litellm

from chatcortex.core.config import (
    DEEP_SEARCH_MAX_QUERIES,
    REFINER_MODEL,
    SEARCH_TIMEOUT_SECONDS,
)
from chatcortex.core.exceptions import SearchRefinementError
from chatcortex.services.llm import LiteLLMOptions, prepare_litellm_kwargs
from chatcortex.services.llm.core import LITELLM_EXCEPTIONS
from chatcortex.services.search.config import (
    DEEP_SEARCH_REFINER_PROMPT,
    REFINER_HISTORY_TURNS,
    SEARCH_QUERY_REFINER_PROMPT,
)
from chatcortex.services.search.utils import render_chat_context

if TYPE_CHECKING:
    from collections.abc import Sequence

    from chatcortex.core.models import Message

logger = logging.getLogger(__name__)

_QUOTE_CHARS = "\"'`"
_LIST_MARKER_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+")


def provider_from_model(model: str) -> str:
    """Return the LiteLLM provider prefix of ``model`` (``openai`` if none)."""
    provider, sep, _ = model.partition("/")
    return provider if sep else "openai"


def _clean_query_line(line: str) -> str:
    line = _LIST_MARKER_RE.sub("", line.strip())
    return line.strip(_QUOTE_CHARS).strip()


class QueryRefiner:
    """Rewrite a conversational question into a neutral web search query."""

    def __init__(
        self,
        *,
        model: str = REFINER_MODEL,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = SEARCH_TIMEOUT_SECONDS,
        history_turns: int = REFINER_HISTORY_TURNS,
    ) -> None:
        """Configure the refinement model and its time budget."""
        self.model = model
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.history_turns = history_turns

    async def _complete(self, prompt: str, *, temperature: float) -> str:
        kwargs = prepare_litellm_kwargs(
            provider=provider_from_model(self.model),
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            api_key=self.api_key,
            options=LiteLLMOptions(
                base_url=self.base_url,
                temperature=temperature,
                timeout=self.timeout,
            ),
        )
        try:
            async with asyncio.timeout(self.timeout):
                response: Any = await litellm.acompletion(**kwargs)
        except TimeoutError as exc:
            msg = f"Query refinement timed out after {self.timeout}s"
            raise SearchRefinementError(msg) from exc
        except LITELLM_EXCEPTIONS as exc:
            msg = f"Query refinement failed: {exc}"
            raise SearchRefinementError(msg) from exc

        try:
            text = response.choices[0].message.content
        except (AttributeError, IndexError, KeyError, TypeError) as exc:
            msg = "Query refinement returned an unexpected payload"
            raise SearchRefinementError(msg) from exc
        if not isinstance(text, str) or not text.strip():
            msg = "Query refinement returned no text"
            raise SearchRefinementError(msg)
        return text

    async def refine(self, query: str, messages: Sequence[Message] = ()) -> str:
        """Return one refined search query.

        Raises:
            SearchRefinementError: If the model call fails, times out or
                returns nothing usable.

        """
        prompt = SEARCH_QUERY_REFINER_PROMPT.format(
            chat_context=render_chat_context(messages, limit=self.history_turns),
            query=query,
        )
        text = await self._complete(prompt, temperature=0.7)
        refined = _clean_query_line(text.strip().splitlines()[0])
        if not refined:
            msg = "Query refinement returned an empty query"
            raise SearchRefinementError(msg)
        logger.debug("Refined search query %r -> %r", query, refined)
        return refined

    async def refine_many(
        self,
        query: str,
        messages: Sequence[Message] = (),
        *,
        max_queries: int = DEEP_SEARCH_MAX_QUERIES,
    ) -> list[str]:
        """Return up to ``max_queries`` distinct queries, most important first."""
        prompt = DEEP_SEARCH_REFINER_PROMPT.format(
            chat_context=render_chat_context(messages, limit=self.history_turns),
            query=query,
            max_queries=max_queries,
        )
        text = await self._complete(prompt, temperature=0.5)
        queries = list(
            dict.fromkeys(
                cleaned
                for line in text.splitlines()
                if (cleaned := _clean_query_line(line))
            ),
        )
        if not queries:
            msg = "Query refinement returned no queries"
            raise SearchRefinementError(msg)
        return queries[:max_queries]

    async def refine_or_fallback(self, query: str, messages: Sequence[Message] = ()) -> str:
        """Refine ``query``, falling back to the raw query on any failure."""
        if not query.strip():
            return query
        try:
            return await self.refine(query, messages)
        except SearchRefinementError as exc:
            logger.warning("Using raw search query %r: %s", query, exc)
            return query
