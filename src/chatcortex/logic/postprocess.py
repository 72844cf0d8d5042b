"""Post-processing of raw model output into display-ready text.

Each step is a pure ``str -> str`` transform. ``clean`` runs the whole
pipeline until the text stops changing, so cleaning twice is the same as
cleaning once.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import StrEnum
from functools import partial
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

MAX_CLEAN_PASSES = 10
NOON = 12

_COPY_SUFFIX_RE = re.compile(r"\bcopy\s*$", re.IGNORECASE)
_FENCE_RE = re.compile(
    r"^```(?:json)?[ \t]*(?:\n|(?=[{\[]))(?P<body>.*?)\s*```$",
    re.DOTALL | re.IGNORECASE,
)
_URL_RE = re.compile(r"https?://\S+|www\.\S+")
_PROPER_NOUNS = {
    re.compile(r"\bbitcoin\b", re.IGNORECASE): "Bitcoin",
    re.compile(r"\bethereum\b", re.IGNORECASE): "Ethereum",
}
_AMOUNT = r"\d[\d,]*(?:\.\d+)?"
_DOLLAR_WITH_SUFFIX_RE = re.compile(
    rf"\$({_AMOUNT})\s+(?:USD|dollars?)\b",
    re.IGNORECASE,
)
_AMOUNT_WITH_SUFFIX_RE = re.compile(
    rf"(?<![\$\d.,])({_AMOUNT})\s+(?:USD|dollars)\b",
    re.IGNORECASE,
)


class TimePlaceholder(StrEnum):
    """Pseudo-function tokens models emit instead of the current time."""

    DATE = "TimeAndDate.date()"
    TIME = "TimeAndDate.time()"
    YEAR = "TimeAndDate.year()"
    CALL = "TimeAndDate(...)"
    BARE = "TimeAndDate"


_PLACEHOLDER_PATTERNS: dict[TimePlaceholder, re.Pattern[str]] = {
    TimePlaceholder.DATE: re.compile(r"TimeAndDate\.date\(\)"),
    TimePlaceholder.TIME: re.compile(r"TimeAndDate\.time\(\)"),
    TimePlaceholder.YEAR: re.compile(r"TimeAndDate\.year\(\)"),
    TimePlaceholder.CALL: re.compile(r"TimeAndDate\([^)]*\)"),
    TimePlaceholder.BARE: re.compile(r"TimeAndDate"),
}


def format_date(now: datetime) -> str:
    """Format like ``10/17/2026``."""
    return f"{now.month}/{now.day}/{now.year}"


def format_time(now: datetime) -> str:
    """Format like ``3:04:05 PM``."""
    hour = now.hour % NOON or NOON
    suffix = "AM" if now.hour < NOON else "PM"
    return f"{hour}:{now.minute:02d}:{now.second:02d} {suffix}"


def placeholder_value(placeholder: TimePlaceholder, now: datetime) -> str:
    """Return the text that replaces ``placeholder`` at time ``now``."""
    if placeholder is TimePlaceholder.DATE:
        return format_date(now)
    if placeholder is TimePlaceholder.TIME:
        return format_time(now)
    if placeholder is TimePlaceholder.YEAR:
        return str(now.year)
    return f"{format_date(now)}, {format_time(now)}"


def strip_copy_artifact(text: str) -> str:
    """Remove trailing ``Copy`` tokens left by copy-button scraping."""
    previous = None
    while previous != text:
        previous = text
        text = _COPY_SUFFIX_RE.sub("", text).rstrip()
    return text.strip()


def unwrap_code_fence(text: str) -> str:
    """Return the body when the whole text is one json or untagged fence."""
    match = _FENCE_RE.match(text.strip())
    if match is None:
        return text
    body = match.group("body")
    if "```" in body:
        return text
    return body.strip()


def substitute_time_placeholders(text: str, *, now: datetime | None = None) -> str:
    """Replace ``TimeAndDate`` pseudo-calls with concrete values."""
    if "TimeAndDate" not in text:
        return text
    current = now or datetime.now().astimezone()
    for placeholder, pattern in _PLACEHOLDER_PATTERNS.items():
        text = pattern.sub(placeholder_value(placeholder, current), text)
    return text


def _normalize_segment(segment: str) -> str:
    for pattern, canonical in _PROPER_NOUNS.items():
        segment = pattern.sub(canonical, segment)
    segment = _DOLLAR_WITH_SUFFIX_RE.sub(r"$\1", segment)
    return _AMOUNT_WITH_SUFFIX_RE.sub(r"$\1", segment)


def normalize_terms(text: str) -> str:
    """Canonicalize proper nouns and dollar amounts outside of URLs.

    >>> normalize_terms("bitcoin hit 100,000 USD")
    'Bitcoin hit $100,000'
    """
    pieces: list[str] = []
    cursor = 0
    for match in _URL_RE.finditer(text):
        pieces.append(_normalize_segment(text[cursor : match.start()]))
        pieces.append(match.group(0))
        cursor = match.end()
    pieces.append(_normalize_segment(text[cursor:]))
    return "".join(pieces)


def build_pipeline(now: datetime | None = None) -> list[Callable[[str], str]]:
    """Return the ordered cleaning steps."""
    return [
        strip_copy_artifact,
        unwrap_code_fence,
        partial(substitute_time_placeholders, now=now),
        normalize_terms,
    ]


def clean(raw_text: str, *, now: datetime | None = None) -> str:
    """Clean raw model output for display.

    Args:
        raw_text: Text returned by the vendor.
        now: Moment used for time placeholders; defaults to local now.

    Returns:
        The cleaned text.

    """
    pipeline = build_pipeline(now or datetime.now().astimezone())
    text = raw_text
    for _ in range(MAX_CLEAN_PASSES):
        previous = text
        for step in pipeline:
            text = step(text)
        if text == previous:
            break
    return text
