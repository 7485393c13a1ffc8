"""Tests for the extraction coordinator."""

import asyncio
import time

import pytest

from radio_proxy.credentials.cache import CredentialCache
from radio_proxy.credentials.coordinator import ExtractionCoordinator
from radio_proxy.credentials.types import CredentialSet, ExtractionError

FULL_COOKIES = {
    "CloudFront-Policy": "policy",
    "CloudFront-Signature": "signature",
    "CloudFront-Key-Pair-Id": "APKAEXAMPLE",
}


class MockExtractor:
    """Extractor stand-in that counts calls and can be held open."""

    def __init__(self, cookies: dict[str, str] = None, error: Exception = None):
        self.cookies = FULL_COOKIES if cookies is None else cookies
        self.error = error
        self.calls: list[str] = []
        self.release = asyncio.Event()
        self.release.set()

    async def extract(self, channel: str) -> CredentialSet:
        self.calls.append(channel)
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return CredentialSet(
            channel=channel,
            stream_url=f"https://live.881903.com/edge-aac/{channel}hd/playlist.m3u8",
            cookies=dict(self.cookies),
            cookie_domain="live.881903.com",
            timestamp=time.time(),
        )


@pytest.fixture
def extractor() -> MockExtractor:
    return MockExtractor()


@pytest.fixture
def coordinator(extractor: MockExtractor) -> ExtractionCoordinator:
    return ExtractionCoordinator(CredentialCache(), extractor)


class TestAcquire:
    """Tests for cache-first acquisition."""

    @pytest.mark.asyncio
    async def test_miss_extracts_and_caches(
        self, coordinator: ExtractionCoordinator, extractor: MockExtractor
    ) -> None:
        credentials = await coordinator.acquire("903")

        assert credentials is not None
        assert credentials.is_complete
        assert extractor.calls == ["903"]
        assert coordinator.cache.get("903") is credentials

    @pytest.mark.asyncio
    async def test_hit_skips_extraction(
        self, coordinator: ExtractionCoordinator, extractor: MockExtractor
    ) -> None:
        first = await coordinator.acquire("903")
        second = await coordinator.acquire("903")

        assert second is first
        assert extractor.calls == ["903"]

    @pytest.mark.asyncio
    async def test_concurrent_lookups_share_one_extraction(
        self, coordinator: ExtractionCoordinator, extractor: MockExtractor
    ) -> None:
        """Ten simultaneous lookups on a cold cache start exactly one browser run."""
        extractor.release.clear()

        tasks = [asyncio.create_task(coordinator.acquire("881")) for _ in range(10)]
        await asyncio.sleep(0.01)
        assert coordinator.is_extracting("881")
        assert coordinator.extracting_channels() == ["881"]

        extractor.release.set()
        results = await asyncio.gather(*tasks)

        assert extractor.calls == ["881"]
        assert all(r is results[0] for r in results)
        assert not coordinator.is_extracting("881")

    @pytest.mark.asyncio
    async def test_concurrent_lookups_share_failure(self, extractor: MockExtractor) -> None:
        extractor.error = ExtractionError("Browser automation failed: crash", "881")
        extractor.release.clear()
        coordinator = ExtractionCoordinator(CredentialCache(), extractor)

        tasks = [
            asyncio.create_task(coordinator.acquire_or_raise("881")) for _ in range(4)
        ]
        await asyncio.sleep(0.01)
        extractor.release.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert len(extractor.calls) == 1
        assert all(isinstance(r, ExtractionError) for r in results)

    @pytest.mark.asyncio
    async def test_failure_returns_none_and_is_not_cached(
        self, extractor: MockExtractor
    ) -> None:
        extractor.error = ExtractionError("timed out", "864")
        coordinator = ExtractionCoordinator(CredentialCache(), extractor)

        assert await coordinator.acquire("864") is None
        assert coordinator.cache.get("864") is None

        # Next lookup tries again
        extractor.error = None
        assert await coordinator.acquire("864") is not None
        assert extractor.calls == ["864", "864"]

    @pytest.mark.asyncio
    async def test_incomplete_credentials_are_cached(self) -> None:
        extractor = MockExtractor(cookies={"CloudFront-Policy": "policy"})
        coordinator = ExtractionCoordinator(CredentialCache(), extractor)

        credentials = await coordinator.acquire("903")

        assert credentials is not None
        assert not credentials.is_complete
        assert coordinator.cache.get("903") is credentials

    @pytest.mark.asyncio
    async def test_channels_extract_independently(
        self, coordinator: ExtractionCoordinator, extractor: MockExtractor
    ) -> None:
        extractor.release.clear()

        t1 = asyncio.create_task(coordinator.acquire("881"))
        t2 = asyncio.create_task(coordinator.acquire("903"))
        await asyncio.sleep(0.01)
        assert sorted(coordinator.extracting_channels()) == ["881", "903"]

        extractor.release.set()
        await asyncio.gather(t1, t2)
        assert sorted(extractor.calls) == ["881", "903"]

    @pytest.mark.asyncio
    async def test_stale_entry_triggers_extraction(self, extractor: MockExtractor) -> None:
        cache = CredentialCache(ttl_seconds=60)
        cache.set(
            "903",
            CredentialSet(
                channel="903",
                stream_url="https://live.881903.com/old.m3u8",
                timestamp=time.time() - 120,
            ),
        )
        coordinator = ExtractionCoordinator(cache, extractor)

        credentials = await coordinator.acquire("903")

        assert extractor.calls == ["903"]
        assert credentials.stream_url.endswith("903hd/playlist.m3u8")


class TestRefresh:
    """Tests for forced refresh."""

    @pytest.mark.asyncio
    async def test_refresh_ignores_cache(
        self, coordinator: ExtractionCoordinator, extractor: MockExtractor
    ) -> None:
        first = await coordinator.acquire("903")
        refreshed = await coordinator.refresh("903")

        assert extractor.calls == ["903", "903"]
        assert refreshed is not first
        assert coordinator.cache.get("903") is refreshed

    @pytest.mark.asyncio
    async def test_refresh_joins_in_flight_extraction(
        self, coordinator: ExtractionCoordinator, extractor: MockExtractor
    ) -> None:
        extractor.release.clear()

        lookup = asyncio.create_task(coordinator.acquire("903"))
        await asyncio.sleep(0.01)
        refresh = asyncio.create_task(coordinator.refresh("903"))
        await asyncio.sleep(0.01)

        extractor.release.set()
        results = await asyncio.gather(lookup, refresh)

        assert extractor.calls == ["903"]
        assert results[0] is results[1]

    @pytest.mark.asyncio
    async def test_refresh_failure_raises(self, extractor: MockExtractor) -> None:
        extractor.error = ExtractionError("no url", "903")
        coordinator = ExtractionCoordinator(CredentialCache(), extractor)

        with pytest.raises(ExtractionError, match="no url"):
            await coordinator.refresh("903")
