"""
Browser-based credential extraction.

Drives a headless Chromium session against a channel's live page and
derives the playlist URL plus CloudFront authorization cookies.
"""

import asyncio
import logging
import time
from dataclasses import replace
from typing import TYPE_CHECKING, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from .probe import StreamProbe
from .strategies import (
    BrowserSession,
    ExtractionStrategy,
    NetworkCapture,
    PartialCredentials,
    default_strategies,
)
from .types import CredentialSet, ExtractionError, UrlSource

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext

    from radio_proxy.config import SourceConfig

logger = logging.getLogger(__name__)

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]
VIEWPORT = {"width": 1280, "height": 720}


class CredentialExtractor:
    """
    Extracts stream credentials for a channel with a headless browser.

    Each call opens and closes its own browser, so a result either comes
    back whole or the call raises ExtractionError. Partial cookies are
    still returned; callers check CredentialSet.is_complete.

    Usage:
        extractor = CredentialExtractor(config.source)
        credentials = await extractor.extract("903")
    """

    def __init__(
        self,
        source: "SourceConfig",
        probe: Optional[StreamProbe] = None,
        strategies: Optional[list[ExtractionStrategy]] = None,
    ):
        """
        Initialize extractor.

        Args:
            source: Live page and CDN settings
            probe: Liveness probe for fallback URLs (None disables probing)
            strategies: Extraction strategies in order (defaults to all)
        """
        self._source = source
        self._probe = probe
        self._strategies = strategies if strategies is not None else default_strategies()

    def page_url(self, channel: str) -> str:
        return self._source.page_url_template.format(channel=channel)

    async def extract(self, channel: str) -> CredentialSet:
        """
        Extract credentials for a channel.

        Raises:
            ExtractionError: If browser automation failed (timeout, crash)
        """
        logger.info(f"[{channel}] Starting extraction")
        started = time.monotonic()

        browser: Optional["Browser"] = None
        context: Optional["BrowserContext"] = None
        try:
            async with async_playwright() as p:
                try:
                    browser = await p.chromium.launch(
                        headless=self._source.headless,
                        args=BROWSER_ARGS,
                    )
                    context = await browser.new_context(
                        user_agent=self._source.user_agent,
                        viewport=VIEWPORT,
                        locale=self._source.locale,
                    )
                    found = await self._run_session(channel, context)
                finally:
                    await self._close(channel, browser, context)
        except PlaywrightError as e:
            raise ExtractionError(f"Browser automation failed: {e}", channel) from e
        except asyncio.TimeoutError as e:
            raise ExtractionError("Browser automation timed out", channel) from e

        credentials = await self._build(channel, found)
        logger.info(
            f"[{channel}] Extraction finished in {time.monotonic() - started:.1f}s "
            f"(url: {credentials.url_source}, complete: {credentials.is_complete})"
        )
        return credentials

    async def _run_session(
        self, channel: str, context: "BrowserContext"
    ) -> PartialCredentials:
        page = await context.new_page()

        capture = NetworkCapture(self._source.cdn_hosts, self._source.playlist_marker)
        page.on("request", capture.on_request)

        url = self.page_url(channel)
        logger.info(f"[{channel}] Navigating to {url}")
        await page.goto(
            url,
            wait_until="domcontentloaded",
            timeout=self._source.navigation_timeout_ms,
        )
        # Let the player bootstrap
        await page.wait_for_timeout(self._source.settle_ms)

        session = BrowserSession(
            channel=channel,
            page=page,
            context=context,
            capture=capture,
            source=self._source,
        )
        return await self.run_strategies(session)

    async def run_strategies(self, session: BrowserSession) -> PartialCredentials:
        """Run every strategy in order and merge what they find."""
        found = PartialCredentials()
        for strategy in self._strategies:
            partial = await strategy.run(session, found)
            if partial is not None:
                logger.debug(f"[{session.channel}] Strategy {strategy.name} contributed")
                found.merge(partial)
        return found

    async def _build(self, channel: str, found: PartialCredentials) -> CredentialSet:
        if not found.stream_url:
            raise ExtractionError("No stream URL could be determined", channel)

        credentials = CredentialSet(
            channel=channel,
            stream_url=found.stream_url,
            cookies=dict(found.cookies),
            cookie_domain=found.cookie_domain or "",
            headers=dict(found.headers),
            timestamp=time.time(),
            url_source=found.url_source or UrlSource.FALLBACK,
        )

        if not credentials.is_complete:
            logger.warning(
                f"[{channel}] Missing CloudFront cookies: "
                f"{', '.join(credentials.missing_cookies)}"
            )

        if credentials.url_source == UrlSource.FALLBACK and self._probe is not None:
            verified = await self._probe.check(
                credentials.stream_url,
                credentials.cookie_header(),
                referer=self.page_url(channel),
            )
            credentials = replace(credentials, url_verified=verified)
        return credentials

    async def _close(
        self,
        channel: str,
        browser: Optional["Browser"],
        context: Optional["BrowserContext"],
    ) -> None:
        """Release the browser session; close errors are logged, not raised."""
        if context is not None:
            try:
                await context.close()
            except PlaywrightError as e:
                logger.debug(f"[{channel}] Error closing context: {e}")
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as e:
                logger.debug(f"[{channel}] Error closing browser: {e}")
