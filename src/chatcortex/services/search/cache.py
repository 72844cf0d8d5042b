"""In-process TTL + LRU cache used by the search augmentation layer."""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING

from chatcortex.core.error_handling import log_exception

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CacheEntry[V]:
    """A cached value and the clock reading at insertion."""

    value: V
    timestamp: float


class TTLCache[K: Hashable, V]:
    """Bounded mapping whose entries expire ``ttl_seconds`` after insertion.

    Reads refresh recency but not age: an entry is evicted by capacity in
    least-recently-used order, and never returned once
    ``clock() - timestamp >= ttl_seconds``. Mutations are not locked; callers
    share one event loop.
    """

    def __init__(
        self,
        max_entries: int,
        ttl_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Create an empty cache.

        Raises:
            ValueError: If ``max_entries`` or ``ttl_seconds`` is not positive.

        """
        if isinstance(max_entries, bool) or not isinstance(max_entries, int):
            msg = f"max_entries must be an int, got {type(max_entries).__name__}"
            raise ValueError(msg)
        if max_entries <= 0:
            msg = f"max_entries must be positive, got {max_entries}"
            raise ValueError(msg)
        if ttl_seconds <= 0:
            msg = f"ttl_seconds must be positive, got {ttl_seconds}"
            raise ValueError(msg)

        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[K, CacheEntry[V]] = OrderedDict()

    def _is_fresh(self, entry: CacheEntry[V], now: float) -> bool:
        return now - entry.timestamp < self.ttl_seconds

    def get(self, key: K) -> V | None:
        """Return the live value for ``key`` or ``None``; expired entries are dropped."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not self._is_fresh(entry, self._clock()):
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry.value

    def set(self, key: K, value: V) -> None:
        """Store ``value``, resetting its age and evicting LRU entries if full."""
        self._entries[key] = CacheEntry(value=value, timestamp=self._clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Cache evicted key %r", evicted)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[arg-type]
        return entry is not None and self._is_fresh(entry, self._clock())

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def evict_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        expired = [
            key for key, entry in self._entries.items() if not self._is_fresh(entry, now)
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)


def build_cache[K: Hashable, V](
    name: str,
    max_entries: int,
    ttl_seconds: float,
    *,
    clock: Callable[[], float] = time.monotonic,
) -> TTLCache[K, V] | None:
    """Build a cache, or return ``None`` so the caller runs uncached."""
    try:
        cache: TTLCache[K, V] = TTLCache(max_entries, ttl_seconds, clock=clock)
    except (TypeError, ValueError) as exc:
        log_exception(
            logger=logger,
            message="Failed to build cache; continuing uncached",
            error=exc,
            context={"cache": name, "max_entries": max_entries, "ttl_seconds": ttl_seconds},
        )
        return None

    logger.info(
        "Cache '%s' ready (max_entries=%s, ttl=%ss)",
        name,
        max_entries,
        ttl_seconds,
    )
    return cache
