"""
Stream liveness probe.

Checks that a synthesized playlist URL actually serves a playlist with the
harvested cookies before it is trusted.
"""

import asyncio
import logging
from typing import Optional

import aiohttp

logger = logging.getLogger(__name__)

PLAYLIST_SIGNATURE = "#EXTM3U"


class StreamProbe:
    """Fetches a playlist URL once and checks the response looks like HLS."""

    def __init__(
        self,
        user_agent: str,
        site_origin: str = "",
        timeout_s: float = 10,
    ):
        """
        Initialize probe.

        Args:
            user_agent: User-Agent header to send
            site_origin: Origin/Referer base of the broadcaster site
            timeout_s: Total request timeout in seconds
        """
        self._user_agent = user_agent
        self._site_origin = site_origin.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)

    async def check(
        self, url: str, cookie_header: str, referer: Optional[str] = None
    ) -> bool:
        """
        Probe a playlist URL.

        Args:
            url: Playlist URL
            cookie_header: Cookie header value to send
            referer: Referer header (defaults to the site origin)

        Returns:
            True if the URL returned 200 with a playlist body
        """
        headers = {
            "User-Agent": self._user_agent,
            "Accept": "*/*",
        }
        if cookie_header:
            headers["Cookie"] = cookie_header
        if self._site_origin:
            headers["Origin"] = self._site_origin
            headers["Referer"] = referer or f"{self._site_origin}/"

        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.get(url, headers=headers) as resp:
                    if resp.status != 200:
                        logger.warning(f"Probe of {url[:100]} returned {resp.status}")
                        return False
                    body = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Probe of {url[:100]} failed: {type(e).__name__}: {e}")
            return False

        ok = body.lstrip().startswith(PLAYLIST_SIGNATURE)
        if not ok:
            logger.warning(f"Probe of {url[:100]} did not return a playlist")
        return ok
