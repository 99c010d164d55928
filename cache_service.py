"""
Cache Service - In-memory cache of player uuid -> name lookups.

World save files only know players by uuid. To show names, every uuid is
looked up on Mojang's session server. Names rarely change, so each answer
is cached for a fixed time (12 hours by default) to keep scrapes fast and
avoid Mojang's rate limits.

Expired entries are only noticed (and dropped) when that uuid is asked for
again. There is no background cleanup and no size limit: the set of players
on one server is small.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import requests

from errors import LookupFailedError, ParseError, TransportError

logger = logging.getLogger(__name__)

PROFILE_URL = "https://sessionserver.mojang.com/session/minecraft/profile/{uuid}"
REQUEST_TIMEOUT_SECONDS = 10

# Mojang answers "204 No Content" for uuids without an account
STATUS_NO_PROFILE = 204

DEFAULT_TTL = timedelta(hours=12)


def fetch_profile(uuid: str) -> requests.Response:
    return requests.get(PROFILE_URL.format(uuid=uuid), timeout=REQUEST_TIMEOUT_SECONDS)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheItem:
    name: str
    timestamp: datetime


class UUIDCache:
    """
    Maps player uuids to names, backed by the Mojang session server.

    Thread safe: a lock guards the map, not the HTTP lookup. A slow lookup
    never holds up names that are already cached; two scrapes missing the
    same uuid at once may both fetch it.
    """

    def __init__(
        self,
        ttl: timedelta = DEFAULT_TTL,
        fetch: Optional[Callable[[str], Any]] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            ttl: How long a fetched name is served from cache
            fetch: Does the HTTP lookup for one uuid, defaults to fetch_profile.
                Must return an object with status_code, text and json()
            now: Clock, defaults to the current UTC time
        """
        self.ttl = ttl
        self._fetch = fetch or fetch_profile
        self._now = now or _utcnow
        self._items: Dict[str, CacheItem] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def resolve(self, uuid: str) -> str:
        """
        Return the player name for a uuid.

        Served from cache while the entry is younger than the TTL, otherwise
        fetched. If Mojang has no profile for the uuid, the uuid itself is
        cached and returned as the name.

        Raises:
            TransportError: the request didn't get a response
            LookupFailedError: Mojang answered with an unexpected status
            ParseError: the profile response couldn't be decoded
        """
        now = self._now()
        with self._lock:
            item = self._items.get(uuid)
            if item is not None:
                if now - item.timestamp < self.ttl:
                    return item.name
                del self._items[uuid]

        name = self._lookup(uuid)
        with self._lock:
            self._items[uuid] = CacheItem(name=name, timestamp=now)
        return name

    def _lookup(self, uuid: str) -> str:
        try:
            response = self._fetch(uuid)
        except requests.RequestException as e:
            raise TransportError(f"Profile lookup for {uuid}", e) from e

        if response.status_code == STATUS_NO_PROFILE:
            logger.warning(
                "Found no minecraft account for the uuid %s, falling back to using uuid as name",
                uuid,
            )
            return uuid
        if response.status_code != 200:
            raise LookupFailedError(response.status_code, response.text)

        try:
            return response.json()["name"]
        except (ValueError, KeyError, TypeError) as e:
            raise ParseError("profile", response.text, reason=str(e)) from e
