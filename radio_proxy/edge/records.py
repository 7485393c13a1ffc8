"""
Edge store record format.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from radio_proxy.credentials.types import CredentialSet


def record_key(channel: str, prefix: str = "") -> str:
    """KV key holding the record for a channel."""
    return f"{prefix}{channel}"


@dataclass(frozen=True)
class EdgeRecord:
    """
    Credentials as published to the edge key-value store.

    Times are epoch milliseconds. Edge consumers must not serve a record
    past expires_at.
    """

    channel: str
    stream_url: str
    cookie_domain: str
    cookies: dict[str, str] = field(default_factory=dict)
    updated_at: int = 0
    expires_at: int = 0

    @classmethod
    def from_credentials(
        cls, credentials: CredentialSet, now: float, validity_seconds: float
    ) -> "EdgeRecord":
        """
        Build a record from credentials.

        Args:
            credentials: Complete credentials for the channel
            now: Current time in epoch seconds (becomes updated_at)
            validity_seconds: Window after acquisition the record stays valid
        """
        return cls(
            channel=credentials.channel,
            stream_url=credentials.stream_url,
            cookie_domain=credentials.cookie_domain,
            cookies=dict(credentials.cookies),
            updated_at=int(now * 1000),
            expires_at=int((credentials.timestamp + validity_seconds) * 1000),
        )

    @property
    def expiration_s(self) -> int:
        """Expiry in epoch seconds, as the KV API expects."""
        return self.expires_at // 1000

    def to_dict(self) -> dict[str, Any]:
        return {
            "cookies": self.cookies,
            "cookieDomain": self.cookie_domain,
            "streamUrl": self.stream_url,
            "updatedAt": self.updated_at,
            "expiresAt": self.expires_at,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), sort_keys=True)
