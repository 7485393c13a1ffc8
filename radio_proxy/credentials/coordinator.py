"""
Extraction coordination.

Serves credentials from the cache and makes sure at most one browser
extraction runs per channel, however many callers ask at once.
"""

import logging
from typing import TYPE_CHECKING, Optional

from .cache import CredentialCache
from .singleflight import SingleFlight
from .types import CredentialSet, ExtractionError

if TYPE_CHECKING:
    from .extractor import CredentialExtractor

logger = logging.getLogger(__name__)


class ExtractionCoordinator:
    """
    Cache-first credential lookup with single-flight extraction.

    One instance is created per process and shared by the HTTP server and
    the edge distributor. It is the only writer to the cache.
    """

    def __init__(self, cache: CredentialCache, extractor: "CredentialExtractor"):
        """
        Initialize coordinator.

        Args:
            cache: Credential cache (read by lookups, written only here)
            extractor: Browser-based credential extractor
        """
        self._cache = cache
        self._extractor = extractor
        self._flight: SingleFlight[str, CredentialSet] = SingleFlight()

    @property
    def cache(self) -> CredentialCache:
        return self._cache

    def is_extracting(self, channel: str) -> bool:
        """Check if an extraction for channel is in flight."""
        return channel in self._flight

    def extracting_channels(self) -> list[str]:
        return self._flight.keys()

    async def acquire(self, channel: str) -> Optional[CredentialSet]:
        """
        Get credentials for channel.

        Returns:
            Fresh cached credentials, or the result of the (possibly shared)
            extraction, or None if extraction failed
        """
        try:
            return await self.acquire_or_raise(channel)
        except ExtractionError as e:
            logger.error(f"[{channel}] Credential extraction failed: {e}")
            return None

    async def acquire_or_raise(self, channel: str) -> CredentialSet:
        """
        Get credentials for channel, raising on extraction failure.

        Raises:
            ExtractionError: If the extraction this call joined or started failed
        """
        cached = self._cache.get(channel)
        if cached is not None:
            logger.debug(
                f"[{channel}] Using cached credentials (age: {round(cached.age(self._cache.now()))}s)"
            )
            return cached

        if self.is_extracting(channel):
            logger.info(f"[{channel}] Waiting for in-flight extraction")
        return await self._flight.do(channel, lambda: self._extract_and_store(channel))

    async def refresh(self, channel: str) -> CredentialSet:
        """
        Force a new extraction for channel, ignoring the cache.

        Still coalesces with an extraction already in flight.

        Raises:
            ExtractionError: If extraction failed
        """
        logger.info(f"[{channel}] Forced credential refresh")
        return await self._flight.do(channel, lambda: self._extract_and_store(channel))

    async def _extract_and_store(self, channel: str) -> CredentialSet:
        credentials = await self._extractor.extract(channel)
        self._cache.set(channel, credentials)
        if not credentials.is_complete:
            logger.warning(
                f"[{channel}] Cached incomplete credentials, missing: "
                f"{', '.join(credentials.missing_cookies)}"
            )
        return credentials
