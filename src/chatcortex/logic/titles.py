"""Chat title generation."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import litellm

from chatcortex.core.config import DEFAULT_CHAT_TITLE, TITLE_MODEL
from chatcortex.services.llm import LiteLLMOptions, prepare_litellm_kwargs
from chatcortex.services.llm.core import LITELLM_EXCEPTIONS
from chatcortex.services.search.refine import provider_from_model
from chatcortex.services.search.utils import render_chat_context

if TYPE_CHECKING:
    from collections.abc import Sequence

    from chatcortex.core.models import Message

logger = logging.getLogger(__name__)

TITLE_TIMEOUT_SECONDS = 10
TITLE_HISTORY_TURNS = 3
MAX_TITLE_CHARS = 80

TITLE_PROMPT = """\
You are an AI assistant that creates concise and obvious titles for chat sessions.
Based on the following conversation history, generate a short and relevant title:
---
{chat_context}
---
Title:"""


class TitleGenerator:
    """Name a chat from its opening exchange."""

    def __init__(
        self,
        *,
        model: str = TITLE_MODEL,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = TITLE_TIMEOUT_SECONDS,
    ) -> None:
        """Configure the title model."""
        self.model = model
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout

    async def generate(self, messages: Sequence[Message]) -> str:
        """Return a short title, or the default title on any failure."""
        if not messages:
            return DEFAULT_CHAT_TITLE

        prompt = TITLE_PROMPT.format(
            chat_context=render_chat_context(messages, limit=TITLE_HISTORY_TURNS),
        )
        kwargs = prepare_litellm_kwargs(
            provider=provider_from_model(self.model),
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            api_key=self.api_key,
            options=LiteLLMOptions(
                base_url=self.base_url,
                temperature=0.5,
                timeout=self.timeout,
            ),
        )
        try:
            async with asyncio.timeout(self.timeout):
                response: Any = await litellm.acompletion(**kwargs)
            text = response.choices[0].message.content
        except (TimeoutError, AttributeError, IndexError, *LITELLM_EXCEPTIONS) as exc:
            logger.warning("Title generation failed, using default: %s", exc)
            return DEFAULT_CHAT_TITLE

        if not isinstance(text, str) or not text.strip():
            return DEFAULT_CHAT_TITLE
        title = text.strip().splitlines()[0].strip("\"'*# \t")
        if not title:
            return DEFAULT_CHAT_TITLE
        return title[:MAX_TITLE_CHARS]
