"""Single entry point that turns a user message into an assistant reply."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from chatcortex.core.config import DEFAULT_CHAT_TITLE, PROVIDER_TIMEOUT_SECONDS
from chatcortex.core.error_handling import log_exception, summarize_error
from chatcortex.core.exceptions import (
    ChatDispatchError,
    ImageFetchError,
    ProviderError,
    SearchProviderError,
    SearchRefinementError,
    UnsupportedModelError,
)
from chatcortex.core.models import FileAttachment, Message
from chatcortex.logic.messages import (
    append_pending,
    build_user_message,
    committed_history,
    error_message,
    finalize_pending,
)
from chatcortex.logic.postprocess import format_date, format_time
from chatcortex.logic.prompts import PromptContext
from chatcortex.services.store import ChatRecord

if TYPE_CHECKING:
    from chatcortex.core.models import SearchResult
    from chatcortex.logic.registry import AIModelConfig, ModelRegistry
    from chatcortex.logic.titles import TitleGenerator
    from chatcortex.services.llm import ContextItem
    from chatcortex.services.search import WebSearchAugmenter
    from chatcortex.services.store import ChatStore

logger = logging.getLogger(__name__)

__all__ = [
    "Capabilities",
    "ChatDispatcher",
    "SendMessageRequest",
    "SendMessageResult",
    "error_message",
    "time_and_date_context",
]


@dataclass(frozen=True, slots=True)
class Capabilities:
    """Per-request feature switches chosen by the user."""

    web_search: bool = False
    deep_search: bool = False
    custom_instructions: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> Capabilities:
        if not data:
            return cls()
        instructions = data.get("customInstructions", data.get("custom_instructions"))
        return cls(
            web_search=bool(data.get("webSearch", data.get("web_search", False))),
            deep_search=bool(data.get("deepSearch", data.get("deep_search", False))),
            custom_instructions=instructions if isinstance(instructions, str) else None,
        )


@dataclass(frozen=True, slots=True)
class SendMessageRequest:
    """Inputs of one ``send_message`` call."""

    content: str
    session_id: str | None
    user_id: str
    model: str
    context_items: Sequence[ContextItem] = ()
    file_attachments: Sequence[FileAttachment] = ()
    capabilities: Capabilities | None = None
    client_ip: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, client_ip: str | None = None) -> SendMessageRequest:
        """Build a request from a JSON body.

        Raises:
            ValueError: If a required field is missing or mistyped.

        """
        content = data.get("content")
        user_id = data.get("userId", data.get("user_id"))
        model = data.get("model")
        if not isinstance(content, str):
            msg = "'content' must be a string"
            raise ValueError(msg)
        if not isinstance(user_id, str) or not user_id:
            msg = "'userId' is required"
            raise ValueError(msg)
        if not isinstance(model, str) or not model:
            msg = "'model' is required"
            raise ValueError(msg)

        session_id = data.get("sessionId", data.get("session_id"))
        context_items = data.get("contextItems", data.get("context_items")) or []
        attachments = data.get("fileAttachments", data.get("file_attachments")) or []
        if not isinstance(context_items, list) or not isinstance(attachments, list):
            msg = "'contextItems' and 'fileAttachments' must be lists"
            raise ValueError(msg)
        try:
            files = [FileAttachment.from_dict(item) for item in attachments]
        except (KeyError, TypeError, AttributeError) as exc:
            msg = "Malformed file attachment"
            raise ValueError(msg) from exc

        return cls(
            content=content,
            session_id=session_id if isinstance(session_id, str) and session_id else None,
            user_id=user_id,
            model=model,
            context_items=context_items,
            file_attachments=files,
            capabilities=Capabilities.from_dict(data.get("capabilities")),
            client_ip=client_ip,
        )


@dataclass(frozen=True, slots=True)
class SendMessageResult:
    """Outcome of a successful ``send_message`` call."""

    session_id: str
    message: Message
    title_updated: bool = False
    title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "sessionId": self.session_id,
            "message": self.message.to_dict(),
            "titleUpdated": self.title_updated,
        }
        if self.title is not None:
            data["title"] = self.title
        return data


def time_and_date_context(now: datetime) -> dict[str, Any]:
    """Build the ``TimeAndDate`` context item for ``now``."""
    return {
        "TimeAndDate": {
            "date": format_date(now),
            "time": format_time(now),
            "year": now.year,
        },
    }


def _local_now() -> datetime:
    return datetime.now().astimezone()


@dataclass(slots=True)
class _SessionLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


@dataclass(slots=True)
class _Turn:
    session_id: str
    chat: ChatRecord | None
    thread: list[Message]
    config: AIModelConfig
    search_results: list[SearchResult] = field(default_factory=list)


class ChatDispatcher:
    """Orchestrate storage, search augmentation and the model call."""

    def __init__(
        self,
        registry: ModelRegistry,
        store: ChatStore,
        *,
        augmenter: WebSearchAugmenter | None = None,
        title_generator: TitleGenerator | None = None,
        provider_timeout: float = PROVIDER_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = _local_now,
    ) -> None:
        """Wire the dispatcher to its collaborators."""
        self.registry = registry
        self.store = store
        self.augmenter = augmenter
        self.title_generator = title_generator
        self.provider_timeout = provider_timeout
        self.clock = clock
        self._session_locks: dict[str, _SessionLock] = {}

    def _resolve(self, model_id: str) -> AIModelConfig:
        config = self.registry.resolve(model_id)
        if config is None:
            raise UnsupportedModelError(model_id)
        return config

    @contextlib.asynccontextmanager
    async def _session_lock(self, session_id: str) -> AsyncIterator[None]:
        """Serialize turns of one session; the entry is dropped once unused."""
        entry = self._session_locks.setdefault(session_id, _SessionLock())
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if not entry.holders:
                del self._session_locks[session_id]

    async def _open_turn(self, request: SendMessageRequest, session_id: str) -> _Turn:
        chat = await self.store.get_latest_chat(session_id)
        # A chat keeps the model it started with
        config = self._resolve(chat.model if chat else request.model)

        thread = list(chat.messages) if chat else []
        thread.append(build_user_message(request.content, request.file_attachments))
        return _Turn(session_id=session_id, chat=chat, thread=thread, config=config)

    async def _search(self, request: SendMessageRequest, turn: _Turn) -> list[SearchResult]:
        capabilities = request.capabilities or Capabilities()
        query = request.content.strip()
        if not capabilities.web_search or not query or self.augmenter is None:
            return []

        try:
            if capabilities.deep_search:
                return await self.augmenter.deep_search(
                    query,
                    turn.thread,
                    client_ip=request.client_ip,
                )
            return await self.augmenter.search(query, turn.thread, client_ip=request.client_ip)
        except (SearchProviderError, SearchRefinementError) as exc:
            logger.warning("Web search failed, continuing without results: %s", exc)
            return []

    def _system_prompt(self, request: SendMessageRequest, config: AIModelConfig) -> str:
        capabilities = request.capabilities or Capabilities()
        custom_instructions = None
        if config.accepts_custom_instructions:
            custom_instructions = capabilities.custom_instructions
        return self.registry.get_system_prompt(
            PromptContext(
                selected_chat_model=config.id,
                custom_instructions=custom_instructions,
            ),
        )

    async def _generate(
        self,
        turn: _Turn,
        system_prompt: str,
        context: list[ContextItem],
    ) -> Message:
        config = turn.config
        append_pending(turn.thread)
        history = committed_history(turn.thread)
        try:
            async with asyncio.timeout(self.provider_timeout):
                reply = await config.handler.generate(history, system_prompt, context)
        except TimeoutError as exc:
            log_exception(
                logger=logger,
                message="Model call timed out",
                error=exc,
                context={"model": config.id, "timeout": self.provider_timeout},
            )
            msg = f"{config.name} did not respond within {self.provider_timeout:g} seconds."
            raise ChatDispatchError(msg, model_id=config.id) from exc
        except (ProviderError, ImageFetchError) as exc:
            log_exception(
                logger=logger,
                message="Model call failed",
                error=exc,
                context={"model": config.id, "session_id": turn.session_id},
            )
            msg = f"Failed to generate a response with {config.name}: {summarize_error(exc)}"
            raise ChatDispatchError(msg, model_id=config.id) from exc

        finalize_pending(turn.thread, reply)
        return reply

    async def _title(self, thread: Sequence[Message]) -> str:
        if self.title_generator is None:
            return DEFAULT_CHAT_TITLE
        return await self.title_generator.generate(thread)

    async def _persist(self, request: SendMessageRequest, turn: _Turn) -> tuple[bool, str | None]:
        if turn.chat is None:
            title = await self._title(turn.thread)
            await self.store.insert_chat(
                ChatRecord(
                    session_id=turn.session_id,
                    user_id=request.user_id,
                    model=turn.config.id,
                    messages=turn.thread,
                    title=title,
                ),
            )
            return True, title

        if len(turn.thread) == 2:  # noqa: PLR2004
            title = await self._title(turn.thread)
            await self.store.update_chat(turn.chat.id, turn.thread, title=title)
            return True, title

        await self.store.update_chat(turn.chat.id, turn.thread)
        return False, None

    async def send_message(self, request: SendMessageRequest) -> SendMessageResult:
        """Append the user's message, generate the reply and persist both.

        Raises:
            UnsupportedModelError: If the chat's model is not registered.
            ChatDispatchError: If the model call fails or times out.

        """
        session_id = request.session_id
        if session_id is None:
            self._resolve(request.model)
            session = await self.store.create_session(request.user_id)
            session_id = session.id

        async with self._session_lock(session_id):
            return await self._send_in_session(request, session_id)

    async def _send_in_session(
        self,
        request: SendMessageRequest,
        session_id: str,
    ) -> SendMessageResult:
        turn = await self._open_turn(request, session_id)
        logger.info(
            "Dispatching message | session=%s model=%s files=%d",
            turn.session_id,
            turn.config.id,
            len(request.file_attachments),
        )

        turn.search_results = await self._search(request, turn)
        context: list[ContextItem] = [
            *request.context_items,
            *(result.to_context_item() for result in turn.search_results),
            time_and_date_context(self.clock()),
        ]

        reply = await self._generate(turn, self._system_prompt(request, turn.config), context)
        title_updated, title = await self._persist(request, turn)
        return SendMessageResult(
            session_id=turn.session_id,
            message=reply,
            title_updated=title_updated,
            title=title,
        )
