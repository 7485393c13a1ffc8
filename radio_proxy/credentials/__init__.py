"""
Stream credential acquisition.

Handles browser-based extraction, caching, and single-flight coordination.
"""

from .cache import CredentialCache
from .coordinator import ExtractionCoordinator
from .extractor import CredentialExtractor
from .probe import StreamProbe
from .singleflight import SingleFlight
from .strategies import PartialCredentials, default_strategies
from .types import (
    CACHE_TTL_SECONDS,
    COOKIE_LIFETIME_SECONDS,
    DEFAULT_CHANNELS,
    REQUIRED_COOKIES,
    CredentialSet,
    ExtractionError,
    UnknownChannelError,
    UrlSource,
    validate_channel,
)

__all__ = [
    # Types
    "CACHE_TTL_SECONDS",
    "COOKIE_LIFETIME_SECONDS",
    "DEFAULT_CHANNELS",
    "REQUIRED_COOKIES",
    "CredentialSet",
    "ExtractionError",
    "UnknownChannelError",
    "UrlSource",
    "validate_channel",
    # Components
    "CredentialCache",
    "CredentialExtractor",
    "ExtractionCoordinator",
    "PartialCredentials",
    "SingleFlight",
    "StreamProbe",
    "default_strategies",
]
