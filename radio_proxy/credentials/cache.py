"""
In-memory credential cache.
"""

import logging
import time
from typing import Callable, Optional

from .types import CACHE_TTL_SECONDS, CredentialSet

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class CredentialCache:
    """
    Latest credentials per channel with a fixed TTL.

    The channel set is small and fixed, so entries are only ever replaced,
    never evicted.
    """

    def __init__(self, ttl_seconds: float = CACHE_TTL_SECONDS, clock: Clock = time.time):
        """
        Initialize cache.

        Args:
            ttl_seconds: Maximum entry age; must stay below the cookie lifetime
            clock: Time source returning epoch seconds
        """
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CredentialSet] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def now(self) -> float:
        return self._clock()

    def get(self, channel: str) -> Optional[CredentialSet]:
        """Get credentials for channel if younger than the TTL."""
        entry = self._entries.get(channel)
        if entry is None:
            return None
        if self._clock() - entry.timestamp < self._ttl:
            return entry
        return None

    def set(self, channel: str, credentials: CredentialSet) -> None:
        """Store credentials for channel, replacing any previous entry."""
        self._entries[channel] = credentials

    def snapshot(self) -> dict[str, int]:
        """Age in seconds of every fresh entry, keyed by channel."""
        now = self._clock()
        return {
            channel: round(entry.age(now))
            for channel, entry in self._entries.items()
            if now - entry.timestamp < self._ttl
        }
