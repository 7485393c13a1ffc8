"""
Credential types and channel helpers.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

# CloudFront signed-cookie names required to authorize playlist requests
REQUIRED_COOKIES = (
    "CloudFront-Policy",
    "CloudFront-Signature",
    "CloudFront-Key-Pair-Id",
)
CLOUDFRONT_COOKIE_PREFIX = "CloudFront-"

DEFAULT_CHANNELS = ("881", "903", "864")

# Cookies issued by the CDN live for about an hour
COOKIE_LIFETIME_SECONDS = 60 * 60
CACHE_TTL_SECONDS = 45 * 60


class UrlSource:
    """Where a stream URL was discovered."""

    NETWORK = "network"
    PLAYER_CONFIG = "player_config"
    PAGE_SCRIPT = "page_script"
    FALLBACK = "fallback"


class ExtractionError(Exception):
    """Browser automation failed to produce credentials."""

    def __init__(self, message: str, channel: str = ""):
        super().__init__(message)
        self.channel = channel


class UnknownChannelError(ValueError):
    """Channel id is not in the configured set."""

    def __init__(self, channel: str, valid: Iterable[str]):
        self.channel = channel
        self.valid = list(valid)
        super().__init__(f"Invalid channel: {channel!r}. Valid channels: {', '.join(self.valid)}")


def validate_channel(channel: Optional[str], valid: Iterable[str]) -> str:
    """Return channel if it is one of the valid ids, else raise UnknownChannelError."""
    valid = list(valid)
    if not channel or channel not in valid:
        raise UnknownChannelError(channel or "", valid)
    return channel


def is_cloudfront_cookie(name: str) -> bool:
    return name.startswith(CLOUDFRONT_COOKIE_PREFIX)


def missing_cookies(cookies: dict[str, str]) -> list[str]:
    """Required cookie names absent (or empty) in cookies."""
    return [name for name in REQUIRED_COOKIES if not cookies.get(name)]


def has_required_cookies(cookies: dict[str, str]) -> bool:
    return not missing_cookies(cookies)


@dataclass(frozen=True)
class CredentialSet:
    """
    Stream credentials for one channel.

    Instances are never modified; a refresh produces a new instance that
    replaces the old one in the cache.
    """

    channel: str
    stream_url: str
    cookies: dict[str, str] = field(default_factory=dict)
    cookie_domain: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
    url_source: str = UrlSource.NETWORK
    url_verified: Optional[bool] = None  # None = not probed

    @property
    def is_complete(self) -> bool:
        """True when every required CloudFront cookie is present."""
        return has_required_cookies(self.cookies)

    @property
    def missing_cookies(self) -> list[str]:
        return missing_cookies(self.cookies)

    def age(self, now: Optional[float] = None) -> float:
        """Seconds since the credentials were acquired."""
        if now is None:
            now = time.time()
        return max(0.0, now - self.timestamp)

    def cookie_header(self) -> str:
        """Cookies formatted as a Cookie request header."""
        return "; ".join(f"{name}={value}" for name, value in self.cookies.items())

    def summary(self, now: Optional[float] = None) -> dict[str, Any]:
        """Description safe to log or print (no cookie values)."""
        return {
            "channel": self.channel,
            "stream_url": self.stream_url,
            "url_source": self.url_source,
            "url_verified": self.url_verified,
            "cookie_domain": self.cookie_domain,
            "cookie_names": sorted(self.cookies),
            "complete": self.is_complete,
            "age_s": round(self.age(now)),
        }
