"""Content normalization from the canonical message model to vendor formats."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import mimetypes
import re
from typing import TYPE_CHECKING, Any

import httpx

from chatcortex.core.exceptions import ImageFetchError
from chatcortex.core.models import (
    FileAttachment,
    FileContent,
    ImageContent,
    MessageContent,
    ProviderKind,
    TextContent,
)
from chatcortex.services.http import RetryOptions, request_with_retries

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from chatcortex.core.models import Message

logger = logging.getLogger(__name__)

DATA_URL_PATTERN = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[^,;]*)*?;base64,(?P<data>.*)$",
    re.DOTALL,
)
TEXT_LIKE_MARKERS = ("text", "json", "csv")
DEFAULT_IMAGE_MIME = "image/jpeg"
FETCH_RETRY_OPTIONS = RetryOptions(retries=1)

ProviderBlock = dict[str, Any]


def is_text_like(mime_type: str) -> bool:
    """Return True when a file's content can be inlined as text."""
    lowered = mime_type.lower()
    return any(marker in lowered for marker in TEXT_LIKE_MARKERS)


def _guess_image_mime(url: str, header_value: str | None) -> str:
    if header_value:
        mime = header_value.split(";", maxsplit=1)[0].strip().lower()
        if mime.startswith("image/"):
            return mime
    guessed, _ = mimetypes.guess_type(url)
    if guessed and guessed.startswith("image/"):
        return guessed
    return DEFAULT_IMAGE_MIME


def _decode_data_url(url: str) -> tuple[str, str] | None:
    match = DATA_URL_PATTERN.match(url)
    if match is None:
        return None
    data = match.group("data").strip()
    try:
        base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        return None
    return match.group("mime") or DEFAULT_IMAGE_MIME, data


async def fetch_image_base64(url: str, *, client: httpx.AsyncClient) -> tuple[str, str]:
    """Fetch an image and return ``(mime_type, base64_data)``.

    ``data:`` URLs are decoded locally instead of fetched.

    Raises:
        ImageFetchError: If the image cannot be retrieved or decoded.

    """
    if url.startswith("data:"):
        decoded = _decode_data_url(url)
        if decoded is None:
            raise ImageFetchError(url[:64], "malformed data URL")
        return decoded

    try:
        response = await request_with_retries(
            lambda: client.get(url),
            options=FETCH_RETRY_OPTIONS,
            log_context=f"image {url}",
        )
    except httpx.HTTPError as exc:
        raise ImageFetchError(url, str(exc) or type(exc).__name__) from exc

    if not response.is_success:
        raise ImageFetchError(url, f"HTTP {response.status_code}")

    mime_type = _guess_image_mime(url, response.headers.get("content-type"))
    return mime_type, base64.b64encode(response.content).decode("ascii")


async def fetch_text_file(url: str, *, client: httpx.AsyncClient) -> str | None:
    """Fetch a text-like file, returning ``None`` when it cannot be retrieved."""
    try:
        response = await request_with_retries(
            lambda: client.get(url),
            options=FETCH_RETRY_OPTIONS,
            log_context=f"file {url}",
        )
    except httpx.HTTPError as exc:
        logger.warning("Failed to fetch file %s: %s", url, exc)
        return None

    if not response.is_success:
        logger.warning("Failed to fetch file %s: HTTP %s", url, response.status_code)
        return None
    return response.text


def text_block(text: str, provider: ProviderKind) -> ProviderBlock:
    """Build the vendor text block for ``provider``."""
    if provider is ProviderKind.GOOGLE:
        return {"text": text}
    return {"type": "text", "text": text}


def image_block(mime_type: str, data: str, provider: ProviderKind) -> ProviderBlock:
    """Build the vendor image block for already-encoded image data."""
    if provider is ProviderKind.ANTHROPIC:
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": mime_type, "data": data},
        }
    if provider is ProviderKind.GOOGLE:
        return {"inline_data": {"mime_type": mime_type, "data": data}}
    return {
        "type": "image_url",
        "image_url": {"url": f"data:{mime_type};base64,{data}"},
    }


def file_placeholder(item: FileContent) -> str:
    """Describe a non-text file that is never fetched."""
    size_kb = (item.size or 0) / 1024
    return f"File attachment: {item.file_name} ({item.mime_type}, size: {size_kb:.2f} KB)"


async def _normalize_item(
    item: MessageContent,
    provider: ProviderKind,
    client: httpx.AsyncClient,
) -> ProviderBlock:
    if isinstance(item, TextContent):
        return text_block(item.text, provider)

    if isinstance(item, ImageContent):
        mime_type, data = await fetch_image_base64(item.url, client=client)
        return image_block(mime_type, data, provider)

    if not is_text_like(item.mime_type):
        return text_block(file_placeholder(item), provider)

    text = await fetch_text_file(item.url, client=client)
    if text is None:
        return text_block(
            f"Unable to retrieve file: {item.file_name} ({item.mime_type})",
            provider,
        )
    return text_block(
        f"File content ({item.file_name}, {item.mime_type}):\n{text}",
        provider,
    )


async def to_provider_format(
    content: Sequence[MessageContent],
    provider: ProviderKind,
    *,
    client: httpx.AsyncClient,
) -> list[ProviderBlock]:
    """Convert canonical content items into ``provider``'s wire blocks.

    Fetches run concurrently and the output keeps the input order. An image
    that cannot be fetched aborts the conversion with ``ImageFetchError``;
    text files that cannot be fetched degrade to a placeholder.

    Args:
        content: Content items of a single message.
        provider: Target wire-format family.
        client: Shared HTTP client used for image and file fetches.

    Returns:
        One vendor block per input item.

    """
    return list(
        await asyncio.gather(
            *(_normalize_item(item, provider, client) for item in content),
        ),
    )


def attachments_to_content(files: Iterable[FileAttachment]) -> list[MessageContent]:
    """Convert uploaded files into image or file content items."""
    items: list[MessageContent] = []
    for attachment in files:
        if attachment.is_image:
            items.append(ImageContent(url=attachment.url))
        else:
            items.append(
                FileContent(
                    url=attachment.url,
                    mime_type=attachment.mime_type,
                    file_name=attachment.name,
                    size=attachment.size,
                ),
            )
    return items


def render_history_text(message: Message) -> str:
    """Render a prior turn as plain text; media become short placeholders."""
    parts: list[str] = []
    for item in message.content:
        if isinstance(item, TextContent):
            parts.append(item.text)
        elif isinstance(item, ImageContent):
            parts.append("[Image]")
        else:
            parts.append(f"[File: {item.file_name}]")
    return "\n".join(part for part in parts if part)
