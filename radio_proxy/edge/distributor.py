"""
Edge distribution of stream credentials.

For every configured channel, obtains credentials through the coordinator,
checks they are usable, and publishes them to the edge KV store. One
channel failing never stops the others.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Optional

from radio_proxy.credentials.types import CACHE_TTL_SECONDS, ExtractionError

from .kv_client import MIN_EXPIRATION_TTL_S, KVWriteError
from .records import EdgeRecord, record_key

if TYPE_CHECKING:
    from radio_proxy.credentials.coordinator import ExtractionCoordinator

    from .kv_client import CloudflareKVClient

logger = logging.getLogger(__name__)


@dataclass
class ChannelResult:
    """Outcome of distributing one channel."""

    channel: str
    success: bool = False  # Usable credentials obtained
    edge_written: bool = False
    error: Optional[str] = None
    credential_age: Optional[int] = None  # Seconds

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "channel": self.channel,
            "success": self.success,
            "edgeWritten": self.edge_written,
            "credentialAge": self.credential_age,
        }
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class DistributionReport:
    """Outcome of one distribution run."""

    results: list[ChannelResult] = field(default_factory=list)
    duration_seconds: float = 0.0
    timestamp: float = field(default_factory=time.time)
    edge_enabled: bool = True

    @property
    def success(self) -> bool:
        """Every channel obtained credentials and (when enabled) was written."""
        if not self.results:
            return False
        if self.edge_enabled:
            return all(r.success and r.edge_written for r in self.results)
        return all(r.success for r in self.results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "results": [r.to_dict() for r in self.results],
            "duration": round(self.duration_seconds, 2),
            "timestamp": datetime.fromtimestamp(self.timestamp, tz=timezone.utc).isoformat(),
        }


class EdgeDistributor:
    """
    Publishes per-channel credentials to the edge store.

    Channels are processed one at a time since each extraction holds a
    full browser. Safe to re-run at any time: every run overwrites the
    record of each channel it succeeds on.

    Usage:
        distributor = EdgeDistributor(coordinator, ["881", "903"], kv_client)
        report = await distributor.distribute()
    """

    def __init__(
        self,
        coordinator: "ExtractionCoordinator",
        channels: list[str],
        kv_client: Optional["CloudflareKVClient"] = None,
        validity_seconds: float = CACHE_TTL_SECONDS,
        key_prefix: str = "",
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize distributor.

        Args:
            coordinator: Shared extraction coordinator
            channels: Channels to distribute, in order
            kv_client: Edge store client; None runs in warm-only mode
            validity_seconds: Record validity measured from acquisition
            key_prefix: Prefix for KV keys
            clock: Time source returning epoch seconds
        """
        self._coordinator = coordinator
        self._channels = list(channels)
        self._kv = kv_client
        self._validity = validity_seconds
        self._key_prefix = key_prefix
        self._clock = clock

    @property
    def edge_enabled(self) -> bool:
        return self._kv is not None

    async def distribute(self) -> DistributionReport:
        """Run one distribution pass over every channel."""
        started = time.monotonic()
        report = DistributionReport(timestamp=self._clock(), edge_enabled=self.edge_enabled)
        logger.info(f"Distributing credentials for {len(self._channels)} channel(s)...")

        for channel in self._channels:
            result = await self.distribute_channel(channel)
            report.results.append(result)

        report.duration_seconds = time.monotonic() - started
        ok = sum(1 for r in report.results if r.success)
        written = sum(1 for r in report.results if r.edge_written)
        logger.info(
            f"Distribution finished in {report.duration_seconds:.1f}s: "
            f"{ok}/{len(report.results)} extracted, {written} written"
        )
        return report

    async def distribute_channel(self, channel: str) -> ChannelResult:
        """Acquire, validate and publish credentials for one channel."""
        result = ChannelResult(channel=channel)

        try:
            credentials = await self._coordinator.acquire_or_raise(channel)
        except ExtractionError as e:
            logger.error(f"[{channel}] Extraction failed: {e}")
            result.error = str(e)
            return result
        except Exception as e:
            logger.exception(f"[{channel}] Unexpected error during extraction: {e}")
            result.error = f"Unexpected error: {type(e).__name__}"
            return result

        now = self._clock()
        result.credential_age = round(credentials.age(now))

        if not credentials.is_complete:
            result.error = f"Missing required cookies: {', '.join(credentials.missing_cookies)}"
            logger.warning(f"[{channel}] Not distributing: {result.error}")
            return result

        if credentials.url_verified is False:
            result.error = "Stream URL failed liveness probe"
            logger.warning(f"[{channel}] Not distributing: {result.error}")
            return result

        result.success = True
        if self._kv is None:
            return result

        record = EdgeRecord.from_credentials(credentials, now, self._validity)
        key = record_key(channel, self._key_prefix)
        # Record expiresAt stays authoritative; KV just needs a legal expiry
        expiration = max(record.expiration_s, int(now) + MIN_EXPIRATION_TTL_S)
        try:
            await self._kv.put(key, record.to_json(), expiration=expiration)
        except KVWriteError as e:
            logger.error(f"[{channel}] Edge write failed: {e}")
            result.error = f"Edge write failed: {e}"
            return result

        result.edge_written = True
        logger.info(
            f"[{channel}] Published to edge key {key} "
            f"(age {result.credential_age}s, expires in {record.expiration_s - int(now)}s)"
        )
        return result
