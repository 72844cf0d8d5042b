"""IP-based location lookup used to localize search queries."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from chatcortex.core.config import SEARCH_TIMEOUT_SECONDS
from chatcortex.services.search.config import (
    IP_GEOLOCATION_URL,
    LOCATION_SENSITIVE_TERMS,
)

if TYPE_CHECKING:
    from chatcortex.services.search.cache import TTLCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Location:
    """Coarse location of a client IP."""

    city: str
    region: str | None = None
    country: str | None = None

    @property
    def label(self) -> str:
        return ", ".join(part for part in (self.city, self.region) if part)


def is_location_sensitive(query: str) -> bool:
    lowered = query.lower()
    return any(term in lowered for term in LOCATION_SENSITIVE_TERMS)


def localize_query(query: str, location: Location | None) -> str:
    """Append the city to location-sensitive queries that lack it.

    >>> localize_query("weather today", Location(city="Lisbon"))
    'weather today Lisbon'
    >>> localize_query("capital of france", Location(city="Lisbon"))
    'capital of france'
    """
    if location is None or not is_location_sensitive(query):
        return query
    if location.city.lower() in query.lower():
        return query
    return f"{query} {location.city}"


def _is_public_ip(ip: str) -> bool:
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return address.is_global


class LocationResolver:
    """Resolve client IPs to a city, caching answers per IP."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        cache: TTLCache[str, Location] | None = None,
        endpoint: str = IP_GEOLOCATION_URL,
        timeout: float = SEARCH_TIMEOUT_SECONDS,
    ) -> None:
        """Bind the resolver to the shared HTTP client and its cache."""
        self.client = client
        self.cache = cache
        self.endpoint = endpoint
        self.timeout = timeout

    async def lookup(self, ip: str | None) -> Location | None:
        """Return the location for ``ip``; failures and private IPs give ``None``."""
        if not ip or not _is_public_ip(ip):
            return None

        if self.cache is not None and (cached := self.cache.get(ip)) is not None:
            return cached

        try:
            async with asyncio.timeout(self.timeout):
                response = await self.client.get(
                    self.endpoint.format(ip=ip),
                    timeout=self.timeout,
                )
        except (TimeoutError, httpx.HTTPError) as exc:
            logger.warning("Location lookup failed for %s: %s", ip, exc)
            return None

        if not response.is_success:
            logger.warning(
                "Location lookup failed for %s: HTTP %s",
                ip,
                response.status_code,
            )
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("Location lookup for %s returned invalid JSON", ip)
            return None

        if not isinstance(data, dict) or data.get("error") or not data.get("city"):
            logger.debug("No city for %s: %s", ip, data)
            return None

        location = Location(
            city=str(data["city"]),
            region=data.get("region") or None,
            country=data.get("country_name") or data.get("country") or None,
        )
        if self.cache is not None:
            self.cache.set(ip, location)
        logger.debug("Resolved %s to %s", ip, location.label)
        return location
