"""
RadioProxy - Live radio stream credential service.

Extracts CDN authorization cookies for protected live radio streams and
distributes them to an edge key-value store.
"""

__version__ = "0.1.0"

from .app import RadioProxy
from .config import Config, load_config, ConfigError

__all__ = [
    "__version__",
    "RadioProxy",
    "Config",
    "load_config",
    "ConfigError",
]
