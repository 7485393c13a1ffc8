"""
Credential extraction strategies.

The live page has no stable contract, so credentials are gathered by an
ordered list of best-effort strategies. Each one looks at the browser
session and returns whatever it could find; results are merged in order
and earlier findings are never overwritten.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional, Protocol
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError

from .types import (
    UrlSource,
    has_required_cookies,
    is_cloudfront_cookie,
)

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext, Page, Request

    from radio_proxy.config import SourceConfig

logger = logging.getLogger(__name__)

# Play affordances across the player families seen on the site, most specific last
PLAY_SELECTORS = [
    'button[class*="play"]',
    '[class*="play-btn"]',
    '[class*="PlayButton"]',
    '[aria-label*="play" i]',
    '[data-testid*="play" i]',
    ".fp-ui",  # Flowplayer
    ".fp-playbtn",
    ".fp-play",
    'button:has-text("Play")',
    ".vjs-play-control",  # Video.js
]

SELECTOR_VISIBLE_TIMEOUT_MS = 1000
CLICK_TIMEOUT_MS = 3000
POST_CLICK_WAIT_MS = 2000

# Evaluated in the page: known embedded-player config objects, in priority order
PLAYER_CONFIG_SCRIPT = """
() => {
    const fp = window.flowplayer && window.flowplayer.instances && window.flowplayer.instances[0];
    if (fp && fp.conf && fp.conf.clip && fp.conf.clip.sources && fp.conf.clip.sources[0]) {
        return fp.conf.clip.sources[0].src || null;
    }
    const cfg = window.__CR_CONFIG__ || window.CR_CONFIG || window.radioConfig;
    if (cfg) {
        return JSON.stringify(cfg);
    }
    return null;
}
"""


@dataclass
class PartialCredentials:
    """Fields one strategy managed to find."""

    stream_url: Optional[str] = None
    url_source: Optional[str] = None
    cookies: dict[str, str] = field(default_factory=dict)
    cookie_domain: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict)

    def merge(self, other: "PartialCredentials") -> None:
        """Fill in fields from other that are still missing here."""
        if not self.stream_url and other.stream_url:
            self.stream_url = other.stream_url
            self.url_source = other.url_source
        if not self.cookie_domain and other.cookie_domain:
            self.cookie_domain = other.cookie_domain
        if not self.headers and other.headers:
            self.headers = dict(other.headers)
        for name, value in other.cookies.items():
            self.cookies.setdefault(name, value)


class NetworkCapture:
    """
    Watches outgoing page requests for the first CDN playlist request.

    Attach with ``page.on("request", capture.on_request)`` before navigating.
    """

    def __init__(self, cdn_hosts: list[str], playlist_marker: str = ".m3u8"):
        self._cdn_hosts = [h.lower() for h in cdn_hosts]
        self._marker = playlist_marker
        self.url: Optional[str] = None
        self.headers: dict[str, str] = {}
        self.requests_seen = 0

    def matches(self, url: str) -> bool:
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
        return host in self._cdn_hosts and self._marker in parsed.path

    async def on_request(self, request: "Request") -> None:
        url = request.url
        if not self.matches(url):
            return
        self.requests_seen += 1
        if self.url:
            return
        self.url = url
        try:
            self.headers = dict(await request.all_headers())
        except PlaywrightError as e:
            logger.debug(f"Could not read headers for {url[:100]}: {e}")
            self.headers = dict(request.headers)
        logger.info(f"Captured playlist request: {url[:150]}")


@dataclass
class BrowserSession:
    """State shared by strategies during one extraction."""

    channel: str
    page: "Page"
    context: "BrowserContext"
    capture: NetworkCapture
    source: "SourceConfig"


def parse_cookie_header(header: str) -> dict[str, str]:
    """Parse a Cookie request header, keeping only CloudFront cookies."""
    cookies: dict[str, str] = {}
    for part in header.split(";"):
        name, sep, value = part.strip().partition("=")
        if sep and is_cloudfront_cookie(name):
            cookies.setdefault(name, value)
    return cookies


def find_playlist_url(text: str, source: "SourceConfig") -> Optional[str]:
    """Find a literal playlist URL in script text."""
    host_pattern = "|".join(re.escape(h) for h in source.cdn_hosts)
    patterns = [
        # Dedicated playlist host for the site
        rf"https://playlist\.{re.escape(source.cookie_site_domain)}[^\"'\s]+",
        # Live CDN playlist
        rf"https://(?:{host_pattern})[^\"'\s]+{re.escape(source.playlist_marker)}[^\"'\s]*",
    ]
    for pattern in patterns:
        match = re.search(pattern, text, re.IGNORECASE)
        if match:
            return match.group(0)
    return None


class ExtractionStrategy(Protocol):
    """One step of the extraction pipeline."""

    name: str

    async def run(
        self, session: BrowserSession, found: PartialCredentials
    ) -> Optional[PartialCredentials]:
        ...


class NetworkCaptureStrategy:
    """Use the playlist request observed while the page loaded."""

    name = "network"

    async def run(
        self, session: BrowserSession, found: PartialCredentials
    ) -> Optional[PartialCredentials]:
        capture = session.capture
        if not capture.url:
            return None
        cookies = parse_cookie_header(capture.headers.get("cookie", ""))
        if cookies:
            logger.debug(f"Request cookies: {', '.join(sorted(cookies))}")
        return PartialCredentials(
            stream_url=capture.url,
            url_source=UrlSource.NETWORK,
            cookies=cookies,
            headers=capture.headers,
        )


class PlayButtonStrategy:
    """Click the first visible play control so the player requests the playlist."""

    name = "play_button"

    def __init__(self, selectors: Optional[list[str]] = None):
        self._selectors = selectors or PLAY_SELECTORS

    async def run(
        self, session: BrowserSession, found: PartialCredentials
    ) -> Optional[PartialCredentials]:
        if found.stream_url:
            return None

        page = session.page
        for selector in self._selectors:
            try:
                button = page.locator(selector).first
                if not await button.is_visible(timeout=SELECTOR_VISIBLE_TIMEOUT_MS):
                    continue
                logger.info(f"[{session.channel}] Clicking play control: {selector}")
                await button.click(timeout=CLICK_TIMEOUT_MS)
                await page.wait_for_timeout(POST_CLICK_WAIT_MS)
            except PlaywrightError as e:
                logger.debug(f"[{session.channel}] Selector {selector} failed: {e}")
                continue
            if session.capture.url:
                break

        if not session.capture.url:
            logger.debug(f"[{session.channel}] Waiting for stream URL to appear...")
            await page.wait_for_timeout(session.source.settle_ms)

        return await NetworkCaptureStrategy().run(session, found)


class PlayerConfigStrategy:
    """Read the playlist URL out of an embedded player's config object."""

    name = "player_config"

    async def run(
        self, session: BrowserSession, found: PartialCredentials
    ) -> Optional[PartialCredentials]:
        if found.stream_url:
            return None

        try:
            result: Any = await session.page.evaluate(PLAYER_CONFIG_SCRIPT)
        except PlaywrightError as e:
            logger.debug(f"[{session.channel}] Player config probe failed: {e}")
            return None

        if not result or not isinstance(result, str):
            return None

        marker = session.source.playlist_marker
        if result.startswith("http") and marker in result:
            url: Optional[str] = result
        else:
            # Serialized config blob: look for a URL inside it
            url = find_playlist_url(result, session.source)
        if not url or marker not in url:
            return None

        logger.info(f"[{session.channel}] Found stream URL in player config")
        return PartialCredentials(stream_url=url, url_source=UrlSource.PLAYER_CONFIG)


class PageScriptStrategy:
    """Scan inline page scripts for a literal playlist URL."""

    name = "page_script"

    async def run(
        self, session: BrowserSession, found: PartialCredentials
    ) -> Optional[PartialCredentials]:
        if found.stream_url:
            return None

        try:
            html = await session.page.content()
        except PlaywrightError as e:
            logger.debug(f"[{session.channel}] Could not read page content: {e}")
            return None

        soup = BeautifulSoup(html, "html.parser")
        for script in soup.find_all("script"):
            text = script.string or script.get_text() or ""
            url = find_playlist_url(text, session.source)
            if url and session.source.playlist_marker in url:
                logger.info(f"[{session.channel}] Found stream URL in page script")
                return PartialCredentials(stream_url=url, url_source=UrlSource.PAGE_SCRIPT)
        return None


class CookieHarvestStrategy:
    """Collect CloudFront cookies from the browser context."""

    name = "cookies"

    async def run(
        self, session: BrowserSession, found: PartialCredentials
    ) -> Optional[PartialCredentials]:
        source = session.source
        cookies: dict[str, str] = {}
        observed_domain: Optional[str] = None

        all_cookies = await session.context.cookies()
        logger.debug(f"[{session.channel}] Total cookies found: {len(all_cookies)}")
        for cookie in all_cookies:
            name = cookie.get("name", "")
            if not is_cloudfront_cookie(name):
                continue
            cookies.setdefault(name, cookie.get("value", ""))
            domain = cookie.get("domain", "").lstrip(".")
            if source.cookie_site_domain in domain and not observed_domain:
                observed_domain = domain

        # The first CDN host holding a complete set decides the cookie domain
        complete_domain: Optional[str] = None
        for host in source.cdn_hosts:
            host_cookies = {
                c.get("name", ""): c.get("value", "")
                for c in await session.context.cookies(f"https://{host}")
                if is_cloudfront_cookie(c.get("name", ""))
            }
            logger.debug(f"[{session.channel}] Cookies for {host}: {len(host_cookies)}")
            if has_required_cookies(host_cookies):
                complete_domain = host
                # Cookies scoped to this host take precedence
                cookies = {**cookies, **host_cookies}
                break
            for name, value in host_cookies.items():
                cookies.setdefault(name, value)
            if host_cookies and not observed_domain:
                observed_domain = host

        # Only cookie attributes decide the domain; unknown stays unset
        domain = complete_domain or observed_domain

        if cookies:
            logger.info(
                f"[{session.channel}] CloudFront cookies: {', '.join(sorted(cookies))} "
                f"(domain: {domain or 'unknown'})"
            )

        return PartialCredentials(cookies=cookies, cookie_domain=domain)


class FallbackUrlStrategy:
    """Build the playlist URL from the per-channel pattern when nothing was found."""

    name = "fallback"

    async def run(
        self, session: BrowserSession, found: PartialCredentials
    ) -> Optional[PartialCredentials]:
        if found.stream_url:
            return None
        url = build_fallback_url(session.channel, found.cookie_domain, session.source)
        logger.info(f"[{session.channel}] Using fallback stream URL: {url}")
        return PartialCredentials(stream_url=url, url_source=UrlSource.FALLBACK)


def build_fallback_url(channel: str, domain: Optional[str], source: "SourceConfig") -> str:
    """Fallback playlist URL; some channels only publish an SD rendition."""
    quality = "sd" if channel in source.sd_channels else "hd"
    return source.fallback_url_template.format(
        domain=domain or source.cdn_hosts[0],
        channel=channel,
        quality=quality,
    )


def default_strategies() -> list[ExtractionStrategy]:
    """Strategies in the order they are tried."""
    return [
        NetworkCaptureStrategy(),
        PlayButtonStrategy(),
        PlayerConfigStrategy(),
        PageScriptStrategy(),
        CookieHarvestStrategy(),
        FallbackUrlStrategy(),
    ]
