"""Tests for credential extraction strategies."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError

from radio_proxy.config import SourceConfig
from radio_proxy.credentials.strategies import (
    BrowserSession,
    CookieHarvestStrategy,
    FallbackUrlStrategy,
    NetworkCapture,
    NetworkCaptureStrategy,
    PageScriptStrategy,
    PartialCredentials,
    PlayButtonStrategy,
    PlayerConfigStrategy,
    build_fallback_url,
    default_strategies,
    find_playlist_url,
    parse_cookie_header,
)
from radio_proxy.credentials.types import UrlSource

PLAYLIST_URL = "https://live.881903.com/edge-aac/903hd/playlist.m3u8"


def _cookie(name: str, value: str, domain: str) -> dict:
    return {"name": name, "value": value, "domain": domain, "path": "/"}


def _full_cookies(domain: str, suffix: str = "") -> list[dict]:
    return [
        _cookie("CloudFront-Policy", f"policy{suffix}", domain),
        _cookie("CloudFront-Signature", f"signature{suffix}", domain),
        _cookie("CloudFront-Key-Pair-Id", f"key{suffix}", domain),
    ]


def _make_session(
    source: SourceConfig = None,
    channel: str = "903",
    page: MagicMock = None,
    context: MagicMock = None,
) -> BrowserSession:
    source = source or SourceConfig(settle_ms=0)
    return BrowserSession(
        channel=channel,
        page=page or MagicMock(),
        context=context or MagicMock(),
        capture=NetworkCapture(source.cdn_hosts, source.playlist_marker),
        source=source,
    )


def _make_context(all_cookies: list[dict], per_host: dict[str, list[dict]] = None) -> MagicMock:
    per_host = per_host or {}

    async def cookies(url: str = None) -> list[dict]:
        if url is None:
            return all_cookies
        host = url.split("://", 1)[1]
        return per_host.get(host, [])

    context = MagicMock()
    context.cookies = AsyncMock(side_effect=cookies)
    return context


class TestPartialCredentials:
    """Tests for merging strategy results."""

    def test_first_writer_wins(self) -> None:
        found = PartialCredentials(stream_url="https://a/playlist.m3u8", url_source=UrlSource.NETWORK)
        found.merge(
            PartialCredentials(stream_url="https://b/playlist.m3u8", url_source=UrlSource.FALLBACK)
        )

        assert found.stream_url == "https://a/playlist.m3u8"
        assert found.url_source == UrlSource.NETWORK

    def test_fills_missing_fields(self) -> None:
        found = PartialCredentials()
        found.merge(
            PartialCredentials(
                stream_url=PLAYLIST_URL,
                url_source=UrlSource.PAGE_SCRIPT,
                cookie_domain="live.881903.com",
                headers={"referer": "x"},
            )
        )

        assert found.stream_url == PLAYLIST_URL
        assert found.url_source == UrlSource.PAGE_SCRIPT
        assert found.cookie_domain == "live.881903.com"
        assert found.headers == {"referer": "x"}

    def test_cookies_merge_without_overwrite(self) -> None:
        found = PartialCredentials(cookies={"CloudFront-Policy": "first"})
        found.merge(
            PartialCredentials(
                cookies={"CloudFront-Policy": "second", "CloudFront-Signature": "sig"}
            )
        )

        assert found.cookies == {"CloudFront-Policy": "first", "CloudFront-Signature": "sig"}


class TestNetworkCapture:
    """Tests for playlist request capture."""

    def test_matches_cdn_playlist(self) -> None:
        capture = NetworkCapture(["live.881903.com", "live2.881903.com"])

        assert capture.matches(PLAYLIST_URL)
        assert capture.matches("https://LIVE2.881903.com/x/playlist.m3u8?t=1")
        assert not capture.matches("https://live.881903.com/app.js")
        assert not capture.matches("https://evil.example.com/live.881903.com/playlist.m3u8")

    @pytest.mark.asyncio
    async def test_first_match_wins(self) -> None:
        capture = NetworkCapture(["live.881903.com"])
        first = MagicMock(url=PLAYLIST_URL)
        first.all_headers = AsyncMock(return_value={"cookie": "CloudFront-Policy=p"})
        second = MagicMock(url="https://live.881903.com/other/playlist.m3u8")
        second.all_headers = AsyncMock(return_value={})

        await capture.on_request(first)
        await capture.on_request(second)

        assert capture.url == PLAYLIST_URL
        assert capture.headers == {"cookie": "CloudFront-Policy=p"}
        assert capture.requests_seen == 2

    @pytest.mark.asyncio
    async def test_ignores_other_requests(self) -> None:
        capture = NetworkCapture(["live.881903.com"])
        request = MagicMock(url="https://www.881903.com/live/903")

        await capture.on_request(request)

        assert capture.url is None
        assert capture.requests_seen == 0

    @pytest.mark.asyncio
    async def test_header_fallback(self) -> None:
        capture = NetworkCapture(["live.881903.com"])
        request = MagicMock(url=PLAYLIST_URL, headers={"user-agent": "ua"})
        request.all_headers = AsyncMock(side_effect=PlaywrightError("target closed"))

        await capture.on_request(request)

        assert capture.url == PLAYLIST_URL
        assert capture.headers == {"user-agent": "ua"}


class TestParsing:
    """Tests for cookie header and playlist URL parsing."""

    def test_parse_cookie_header_keeps_cloudfront_only(self) -> None:
        header = "CloudFront-Policy=abc=; _ga=GA1; CloudFront-Signature=s~ig; CloudFront-Key-Pair-Id=K1"

        assert parse_cookie_header(header) == {
            "CloudFront-Policy": "abc=",
            "CloudFront-Signature": "s~ig",
            "CloudFront-Key-Pair-Id": "K1",
        }

    def test_parse_cookie_header_empty(self) -> None:
        assert parse_cookie_header("") == {}

    def test_find_playlist_url_cdn(self) -> None:
        text = f'var src = "{PLAYLIST_URL}"; start();'
        assert find_playlist_url(text, SourceConfig()) == PLAYLIST_URL

    def test_find_playlist_url_playlist_host(self) -> None:
        text = "load('https://playlist.881903.com/903/index.m3u8')"
        assert find_playlist_url(text, SourceConfig()) == "https://playlist.881903.com/903/index.m3u8"

    def test_find_playlist_url_none(self) -> None:
        assert find_playlist_url("https://www.881903.com/app.js", SourceConfig()) is None


class TestFallbackUrl:
    """Tests for fallback URL construction."""

    def test_hd_channel(self) -> None:
        url = build_fallback_url("903", "live.881903.com", SourceConfig())
        assert url == "https://live.881903.com/edge-aac/903hd/playlist.m3u8"

    def test_sd_channel(self) -> None:
        url = build_fallback_url("864", "live2.881903.com", SourceConfig())
        assert url == "https://live2.881903.com/edge-aac/864sd/playlist.m3u8"

    def test_unknown_domain_uses_first_cdn_host(self) -> None:
        url = build_fallback_url("881", None, SourceConfig())
        assert url == "https://live.881903.com/edge-aac/881hd/playlist.m3u8"

    @pytest.mark.asyncio
    async def test_strategy_skips_when_url_found(self) -> None:
        found = PartialCredentials(stream_url=PLAYLIST_URL)
        assert await FallbackUrlStrategy().run(_make_session(), found) is None

    @pytest.mark.asyncio
    async def test_strategy_uses_cookie_domain(self) -> None:
        found = PartialCredentials(cookie_domain="live2.881903.com")

        result = await FallbackUrlStrategy().run(_make_session(channel="864"), found)

        assert result.stream_url == "https://live2.881903.com/edge-aac/864sd/playlist.m3u8"
        assert result.url_source == UrlSource.FALLBACK


class TestUrlStrategies:
    """Tests for strategies that discover the stream URL."""

    @pytest.mark.asyncio
    async def test_network_capture(self) -> None:
        session = _make_session()
        session.capture.url = PLAYLIST_URL
        session.capture.headers = {"cookie": "CloudFront-Policy=p; other=1"}

        result = await NetworkCaptureStrategy().run(session, PartialCredentials())

        assert result.stream_url == PLAYLIST_URL
        assert result.url_source == UrlSource.NETWORK
        assert result.cookies == {"CloudFront-Policy": "p"}

    @pytest.mark.asyncio
    async def test_network_capture_nothing_seen(self) -> None:
        assert await NetworkCaptureStrategy().run(_make_session(), PartialCredentials()) is None

    @pytest.mark.asyncio
    async def test_play_button_clicks_visible_control(self) -> None:
        session = _make_session()
        hidden = MagicMock()
        hidden.is_visible = AsyncMock(return_value=False)
        visible = MagicMock()
        visible.is_visible = AsyncMock(return_value=True)

        async def click(timeout: int = 0) -> None:
            session.capture.url = PLAYLIST_URL

        visible.click = AsyncMock(side_effect=click)
        locators = {".hidden": hidden, ".play": visible}
        session.page.locator = MagicMock(side_effect=lambda s: MagicMock(first=locators[s]))
        session.page.wait_for_timeout = AsyncMock()

        strategy = PlayButtonStrategy(selectors=[".hidden", ".play", ".never"])
        result = await strategy.run(session, PartialCredentials())

        visible.click.assert_awaited_once()
        assert result.stream_url == PLAYLIST_URL

    @pytest.mark.asyncio
    async def test_play_button_survives_selector_errors(self) -> None:
        session = _make_session()
        broken = MagicMock()
        broken.is_visible = AsyncMock(side_effect=PlaywrightError("detached"))
        session.page.locator = MagicMock(return_value=MagicMock(first=broken))
        session.page.wait_for_timeout = AsyncMock()

        result = await PlayButtonStrategy(selectors=[".a", ".b"]).run(
            session, PartialCredentials()
        )

        assert result is None
        assert broken.is_visible.await_count == 2

    @pytest.mark.asyncio
    async def test_play_button_skipped_when_url_found(self) -> None:
        session = _make_session()
        session.page.locator = MagicMock()

        found = PartialCredentials(stream_url=PLAYLIST_URL)
        assert await PlayButtonStrategy().run(session, found) is None
        session.page.locator.assert_not_called()

    @pytest.mark.asyncio
    async def test_player_config_direct_url(self) -> None:
        session = _make_session()
        session.page.evaluate = AsyncMock(return_value=PLAYLIST_URL)

        result = await PlayerConfigStrategy().run(session, PartialCredentials())

        assert result.stream_url == PLAYLIST_URL
        assert result.url_source == UrlSource.PLAYER_CONFIG

    @pytest.mark.asyncio
    async def test_player_config_json_blob(self) -> None:
        session = _make_session()
        session.page.evaluate = AsyncMock(
            return_value='{"stream":{"hls":"https://live2.881903.com/edge-aac/881hd/playlist.m3u8"}}'
        )

        result = await PlayerConfigStrategy().run(session, PartialCredentials())

        assert result.stream_url == "https://live2.881903.com/edge-aac/881hd/playlist.m3u8"

    @pytest.mark.asyncio
    async def test_player_config_absent(self) -> None:
        session = _make_session()
        session.page.evaluate = AsyncMock(return_value=None)

        assert await PlayerConfigStrategy().run(session, PartialCredentials()) is None

    @pytest.mark.asyncio
    async def test_page_script(self) -> None:
        session = _make_session()
        session.page.content = AsyncMock(
            return_value=(
                "<html><head><script>var a = 1;</script>"
                f"<script>player.load('{PLAYLIST_URL}');</script></head></html>"
            )
        )

        result = await PageScriptStrategy().run(session, PartialCredentials())

        assert result.stream_url == PLAYLIST_URL
        assert result.url_source == UrlSource.PAGE_SCRIPT

    @pytest.mark.asyncio
    async def test_page_script_no_match(self) -> None:
        session = _make_session()
        session.page.content = AsyncMock(return_value="<html><script>init();</script></html>")

        assert await PageScriptStrategy().run(session, PartialCredentials()) is None


class TestCookieHarvest:
    """Tests for CloudFront cookie collection."""

    @pytest.mark.asyncio
    async def test_complete_set_on_cdn_host(self) -> None:
        context = _make_context(
            all_cookies=_full_cookies(".881903.com") + [_cookie("_ga", "x", ".881903.com")],
            per_host={"live2.881903.com": _full_cookies("live2.881903.com", suffix="-2")},
        )
        session = _make_session(context=context)

        result = await CookieHarvestStrategy().run(session, PartialCredentials())

        assert result.cookie_domain == "live2.881903.com"
        assert result.cookies == {
            "CloudFront-Policy": "policy-2",
            "CloudFront-Signature": "signature-2",
            "CloudFront-Key-Pair-Id": "key-2",
        }

    @pytest.mark.asyncio
    async def test_domain_from_observed_cookie(self) -> None:
        context = _make_context(all_cookies=_full_cookies(".881903.com"))
        session = _make_session(context=context)

        result = await CookieHarvestStrategy().run(session, PartialCredentials())

        assert result.cookie_domain == "881903.com"
        assert len(result.cookies) == 3

    @pytest.mark.asyncio
    async def test_domain_not_taken_from_stream_url(self) -> None:
        """Without an observed cookie the domain stays unknown, even with a URL."""
        context = _make_context(all_cookies=[])
        session = _make_session(context=context)
        found = PartialCredentials(stream_url="https://live2.881903.com/edge-aac/903hd/playlist.m3u8")

        result = await CookieHarvestStrategy().run(session, found)

        assert result.cookie_domain is None
        assert result.cookies == {}

    @pytest.mark.asyncio
    async def test_unknown_domain_merges_empty(self) -> None:
        found = PartialCredentials(stream_url=PLAYLIST_URL, url_source=UrlSource.NETWORK)
        session = _make_session(context=_make_context(all_cookies=[]))

        found.merge(await CookieHarvestStrategy().run(session, found))

        assert found.cookie_domain is None

    @pytest.mark.asyncio
    async def test_no_cookies_no_domain(self) -> None:
        context = _make_context(all_cookies=[])
        session = _make_session(context=context)

        result = await CookieHarvestStrategy().run(session, PartialCredentials())

        assert result.cookie_domain is None
        assert result.cookies == {}


def test_default_strategy_order() -> None:
    names = [s.name for s in default_strategies()]
    assert names == [
        "network",
        "play_button",
        "player_config",
        "page_script",
        "cookies",
        "fallback",
    ]
