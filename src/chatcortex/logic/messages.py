"""Thread building: user turns, pending placeholders and error turns."""

from __future__ import annotations

from typing import TYPE_CHECKING

from chatcortex.core.error_handling import summarize_error
from chatcortex.core.exceptions import ChatDispatchError, UnsupportedModelError
from chatcortex.core.models import Message, TextContent
from chatcortex.logic.content import attachments_to_content

if TYPE_CHECKING:
    from collections.abc import Sequence

    from chatcortex.core.models import FileAttachment, MessageContent

GENERIC_ERROR_TEXT = "Sorry, something went wrong while generating a response."


def build_user_message(text: str, files: Sequence[FileAttachment] = ()) -> Message:
    """Wrap user text and attachments into one user turn.

    Blank text is dropped when attachments carry the turn, since vendors
    reject empty text blocks.
    """
    content: list[MessageContent] = []
    if text.strip() or not files:
        content.append(TextContent(text=text))
    content.extend(attachments_to_content(files))
    return Message(role="user", content=content, files=list(files))


def pending_placeholder() -> Message:
    """Return the assistant turn shown while a reply is being generated."""
    return Message(role="assistant", content=[TextContent(text="")], pending=True)


def has_pending_tail(thread: Sequence[Message]) -> bool:
    return bool(thread) and thread[-1].pending


def append_pending(thread: list[Message]) -> Message:
    """Append a pending placeholder unless one is already trailing."""
    if has_pending_tail(thread):
        return thread[-1]
    placeholder = pending_placeholder()
    thread.append(placeholder)
    return placeholder


def finalize_pending(thread: list[Message], final: Message) -> None:
    """Replace the trailing pending placeholder with ``final``.

    Raises:
        ValueError: If the thread does not end with a pending placeholder.

    """
    if not has_pending_tail(thread):
        msg = "Thread has no pending placeholder to finalize"
        raise ValueError(msg)
    thread[-1] = final


def error_message(error: BaseException) -> Message:
    """Build the system turn rendered in place of a failed reply."""
    if isinstance(error, ChatDispatchError):
        text = error.user_message
    elif isinstance(error, UnsupportedModelError):
        text = str(error)
    else:
        text = f"{GENERIC_ERROR_TEXT} {summarize_error(error)}"
    return Message(role="system", content=[TextContent(text=text)])


def committed_history(thread: Sequence[Message]) -> list[Message]:
    """Drop pending placeholders before sending history to a model."""
    return [message for message in thread if not message.pending]
