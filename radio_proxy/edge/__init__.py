"""
Edge distribution module.

Publishes credentials to the Cloudflare Workers KV store read by edge proxies.
"""

from .auth import is_authorized
from .distributor import ChannelResult, DistributionReport, EdgeDistributor
from .kv_client import CloudflareKVClient, KVWriteError
from .records import EdgeRecord, record_key

__all__ = [
    "ChannelResult",
    "CloudflareKVClient",
    "DistributionReport",
    "EdgeDistributor",
    "EdgeRecord",
    "KVWriteError",
    "is_authorized",
    "record_key",
]
