"""Chat persistence seam and its in-memory implementation."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from chatcortex.core.config import DEFAULT_CHAT_TITLE
from chatcortex.core.exceptions import ChatNotFoundError
from chatcortex.core.models import now_ms

if TYPE_CHECKING:
    from collections.abc import Sequence

    from chatcortex.core.models import Message

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ChatSession:
    """A conversation container owned by one user."""

    id: str
    user_id: str
    title: str = DEFAULT_CHAT_TITLE
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(slots=True)
class ChatRecord:
    """The message thread of a session, pinned to the model it started with."""

    session_id: str
    user_id: str
    model: str
    messages: list[Message]
    title: str = DEFAULT_CHAT_TITLE
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)


class ChatStore(Protocol):
    """Storage operations the dispatcher depends on."""

    async def create_session(self, user_id: str) -> ChatSession: ...

    async def get_latest_chat(self, session_id: str) -> ChatRecord | None: ...

    async def insert_chat(self, record: ChatRecord) -> ChatRecord: ...

    async def update_chat(
        self,
        chat_id: str,
        messages: Sequence[Message],
        *,
        title: str | None = None,
    ) -> ChatRecord: ...


class InMemoryChatStore:
    """Process-local ``ChatStore`` for development and tests."""

    def __init__(self) -> None:
        """Create an empty store."""
        self.sessions: dict[str, ChatSession] = {}
        self.chats: dict[str, ChatRecord] = {}

    async def create_session(self, user_id: str) -> ChatSession:
        session = ChatSession(id=str(uuid.uuid4()), user_id=user_id)
        self.sessions[session.id] = session
        logger.debug("Created session %s for user %s", session.id, user_id)
        return session

    async def get_latest_chat(self, session_id: str) -> ChatRecord | None:
        chats = [chat for chat in self.chats.values() if chat.session_id == session_id]
        if not chats:
            return None
        return max(chats, key=lambda chat: chat.created_at)

    async def insert_chat(self, record: ChatRecord) -> ChatRecord:
        self.chats[record.id] = record
        self._touch_session(record.session_id, record.title)
        return record

    async def update_chat(
        self,
        chat_id: str,
        messages: Sequence[Message],
        *,
        title: str | None = None,
    ) -> ChatRecord:
        record = self.chats.get(chat_id)
        if record is None:
            raise ChatNotFoundError("chat", chat_id)
        record.messages = list(messages)
        record.updated_at = now_ms()
        if title is not None:
            record.title = title
        self._touch_session(record.session_id, title)
        return record

    def _touch_session(self, session_id: str, title: str | None) -> None:
        session = self.sessions.get(session_id)
        if session is None:
            return
        session.updated_at = now_ms()
        if title is not None:
            session.title = title
