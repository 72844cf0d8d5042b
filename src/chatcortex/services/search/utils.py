"""Helpers for shaping search provider output."""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from chatcortex.core.models import ImageContent, TextContent
from chatcortex.services.search.config import (
    MAX_SOURCE_TITLE_CHARS,
    TRACKING_PARAM_PREFIXES,
    TRACKING_PARAMS,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from chatcortex.core.models import Message


def clean_url(url: str) -> str:
    """Strip tracking query parameters and the fragment from ``url``.

    >>> clean_url("https://www.example.com/a?utm_source=x&id=7#top")
    'https://www.example.com/a?id=7'
    """
    parsed = urlsplit(url)
    if not parsed.scheme or not parsed.netloc:
        return url
    kept = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if key not in TRACKING_PARAMS and not key.startswith(TRACKING_PARAM_PREFIXES)
    ]
    return urlunsplit(
        (parsed.scheme, parsed.netloc, parsed.path, urlencode(kept), ""),
    )


def source_title_from_url(url: str, fallback: str) -> str:
    """Build a short site name like ``Coin Market`` from ``coin-market.com``."""
    hostname = urlsplit(url).hostname
    if not hostname:
        return fallback
    label = hostname.removeprefix("www.").split(".", maxsplit=1)[0]
    if not label:
        return fallback
    return " ".join(word.capitalize() for word in label.split("-") if word)


def short_source_title(title: str, url: str) -> str:
    """Keep short titles; derive long ones from the hostname."""
    if len(title) > MAX_SOURCE_TITLE_CHARS:
        return source_title_from_url(url, title)
    return title


def render_chat_context(messages: Sequence[Message], *, limit: int) -> str:
    """Render the last ``limit`` turns as ``role: text`` lines."""
    lines = []
    for message in list(messages)[-limit:] if limit > 0 else []:
        parts = []
        for item in message.content:
            if isinstance(item, TextContent):
                parts.append(item.text)
            elif isinstance(item, ImageContent):
                parts.append("[Image]")
            else:
                parts.append(f"[File: {item.file_name}]")
        lines.append(f"{message.role}: {' '.join(parts)}")
    return "\n".join(lines)


def normalize_query(query: str) -> str:
    """Cache key for a query: trimmed, lowercased, inner whitespace collapsed."""
    return " ".join(query.lower().split())
