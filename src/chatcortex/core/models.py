"""Data models for chatcortex.

The JSON wire shape of every model matches what the chat store persists, so
``to_dict``/``from_dict`` round-trip messages written by any client.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal

Role = Literal["user", "assistant", "system"]
ROLES: tuple[Role, ...] = ("user", "assistant", "system")


class ProviderKind(StrEnum):
    """Wire-format families supported by the content normalizer."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"


def now_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_message_id() -> str:
    """Return a fresh random message identifier."""
    return str(uuid.uuid4())


@dataclass(frozen=True, slots=True)
class TextContent:
    """A plain text segment."""

    text: str
    type: Literal["text"] = field(default="text", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True, slots=True)
class ImageContent:
    """An image referenced by URL (http(s) or ``data:``)."""

    url: str
    type: Literal["image_url"] = field(default="image_url", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "image_url": {"url": self.url}}


@dataclass(frozen=True, slots=True)
class FileContent:
    """A non-image file referenced by URL."""

    url: str
    mime_type: str = "application/octet-stream"
    file_name: str = "file"
    size: int | None = None
    type: Literal["file_url"] = field(default="file_url", init=False)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type,
            "file_url": {"url": self.url},
            "mime_type": self.mime_type,
            "file_name": self.file_name,
        }
        if self.size is not None:
            data["size"] = self.size
        return data


MessageContent = TextContent | ImageContent | FileContent


def content_from_dict(data: dict[str, Any]) -> MessageContent:
    """Build a content item from its JSON wire shape.

    Raises:
        ValueError: If the item has an unknown ``type`` or misses its payload.

    """
    item_type = data.get("type")
    try:
        if item_type == "text":
            return TextContent(text=str(data["text"]))
        if item_type == "image_url":
            return ImageContent(url=str(data["image_url"]["url"]))
        if item_type == "file_url":
            size = data.get("size")
            return FileContent(
                url=str(data["file_url"]["url"]),
                mime_type=data.get("mime_type") or "application/octet-stream",
                file_name=data.get("file_name") or "file",
                size=size if isinstance(size, int) else None,
            )
    except (KeyError, TypeError) as exc:
        msg = f"Malformed '{item_type}' content item"
        raise ValueError(msg) from exc

    msg = f"Unsupported content type: {item_type!r}"
    raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class FileAttachment:
    """An uploaded file produced by the storage layer."""

    id: str
    name: str
    url: str
    mime_type: str
    size: int = 0
    is_image: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "mime_type": self.mime_type,
            "size": self.size,
            "isImage": self.is_image,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileAttachment:
        mime_type = data.get("mime_type") or data.get("type") or ""
        is_image = data.get("isImage", data.get("is_image"))
        if is_image is None:
            is_image = mime_type.startswith("image/")
        return cls(
            id=str(data.get("id") or new_message_id()),
            name=str(data.get("name") or "file"),
            url=str(data["url"]),
            mime_type=mime_type or "application/octet-stream",
            size=int(data.get("size") or 0),
            is_image=bool(is_image),
        )


@dataclass(slots=True)
class Message:
    """One conversation turn in the canonical message model."""

    role: Role
    content: list[MessageContent]
    id: str = field(default_factory=new_message_id)
    created_at: int = field(default_factory=now_ms)
    pending: bool = False
    files: list[FileAttachment] = field(default_factory=list)

    @property
    def text(self) -> str:
        """Concatenated text segments, in order."""
        return " ".join(
            item.text for item in self.content if isinstance(item, TextContent)
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "content": [item.to_dict() for item in self.content],
            "createdAt": self.created_at,
        }
        if self.pending:
            data["pending"] = True
        if self.files:
            data["files"] = [attachment.to_dict() for attachment in self.files]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        role = data.get("role")
        if role not in ROLES:
            msg = f"Invalid message role: {role!r}"
            raise ValueError(msg)

        raw_content = data.get("content") or []
        if isinstance(raw_content, str):
            content: list[MessageContent] = [TextContent(text=raw_content)]
        else:
            content = [content_from_dict(item) for item in raw_content]

        created_at = data.get("createdAt", data.get("created_at"))
        return cls(
            id=str(data.get("id") or new_message_id()),
            role=role,
            content=content,
            created_at=int(created_at) if created_at is not None else now_ms(),
            pending=bool(data.get("pending", False)),
            files=[FileAttachment.from_dict(item) for item in data.get("files") or []],
        )


@dataclass(frozen=True, slots=True)
class SearchResult:
    """One web search hit in the provider-independent shape."""

    title: str
    snippet: str
    url: str
    source_title: str | None = None

    def to_context_item(self) -> dict[str, str]:
        """Render as a ``web_search_result`` context item for adapters."""
        return {
            "type": "web_search_result",
            "title": self.title or "Search Result",
            "snippet": self.snippet or "No description available",
            "url": self.url,
            "sourceTitle": self.source_title or self.title or "Search Result",
        }
