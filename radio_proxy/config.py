"""
RadioProxy Configuration System.

Priority order (highest to lowest):
1. Command-line arguments
2. Environment variables
3. Configuration file (YAML)
4. Default values
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from radio_proxy.credentials.types import (
    CACHE_TTL_SECONDS,
    COOKIE_LIFETIME_SECONDS,
    DEFAULT_CHANNELS,
)

logger = logging.getLogger(__name__)

# Valid log levels
VALID_LOG_LEVELS = {"debug", "info", "warning", "error"}

CHANNEL_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Environment variable mappings
ENV_MAPPINGS = {
    # Radio
    "RADIOPROXY_CHANNELS": ("radio", "channels"),
    "RADIOPROXY_CACHE_TTL": ("radio", "cache_ttl_seconds"),
    "RADIOPROXY_PROBE_FALLBACK": ("radio", "probe_fallback_urls"),
    "RADIOPROXY_PREWARM_ON_START": ("radio", "prewarm_on_start"),
    # Source
    "RADIOPROXY_HEADLESS": ("source", "headless"),
    # Edge store
    "CLOUDFLARE_ACCOUNT_ID": ("edge", "account_id"),
    "CLOUDFLARE_KV_NAMESPACE_ID": ("edge", "namespace_id"),
    "CLOUDFLARE_API_TOKEN": ("edge", "api_token"),
    "RADIOPROXY_KV_KEY_PREFIX": ("edge", "key_prefix"),
    "CRON_SECRET": ("edge", "cron_secret"),
    # Server
    "RADIOPROXY_HTTP_PORT": ("server", "http_port"),
    "RADIOPROXY_BIND": ("server", "bind_address"),
    # Logging
    "RADIOPROXY_LOG_LEVEL": ("logging", "level"),
}

_INT_ENV_VARS = {"RADIOPROXY_CACHE_TTL", "RADIOPROXY_HTTP_PORT"}
_BOOL_ENV_VARS = {
    "RADIOPROXY_PROBE_FALLBACK",
    "RADIOPROXY_PREWARM_ON_START",
    "RADIOPROXY_HEADLESS",
}
_LIST_ENV_VARS = {"RADIOPROXY_CHANNELS"}


class ConfigError(Exception):
    """Configuration error."""

    pass


@dataclass
class SourceConfig:
    """Broadcaster live page and CDN settings used by the extractor."""

    page_url_template: str = "https://www.881903.com/live/{channel}"
    site_origin: str = "https://www.881903.com"
    cookie_site_domain: str = "881903.com"
    cdn_hosts: list[str] = field(
        default_factory=lambda: ["live.881903.com", "live2.881903.com"]
    )
    playlist_marker: str = ".m3u8"
    fallback_url_template: str = "https://{domain}/edge-aac/{channel}{quality}/playlist.m3u8"
    sd_channels: list[str] = field(default_factory=lambda: ["864"])
    user_agent: str = DEFAULT_USER_AGENT
    locale: str = "en-HK"
    headless: bool = True
    navigation_timeout_ms: int = 30000
    settle_ms: int = 3000


@dataclass
class RadioConfig:
    """Channel set and caching behaviour."""

    channels: list[str] = field(default_factory=lambda: list(DEFAULT_CHANNELS))
    cache_ttl_seconds: int = CACHE_TTL_SECONDS
    probe_fallback_urls: bool = True
    prewarm_on_start: bool = False
    proxy_path_template: str = "/api/radio/proxy?channel={channel}"


@dataclass
class EdgeConfig:
    """Cloudflare Workers KV distribution settings."""

    account_id: str = ""
    namespace_id: str = ""
    api_token: str = ""
    api_base: str = "https://api.cloudflare.com/client/v4"
    key_prefix: str = ""
    validity_seconds: int = CACHE_TTL_SECONDS
    cron_secret: str = ""
    scheduler_user_agent: str = "vercel-cron/1.0"

    @property
    def is_configured(self) -> bool:
        """True when all KV credentials are present."""
        return bool(self.account_id and self.namespace_id and self.api_token)


@dataclass
class ServerConfig:
    """Server configuration."""

    http_port: int = 3001
    bind_address: str = "0.0.0.0"


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class Config:
    """Complete RadioProxy configuration."""

    source: SourceConfig = field(default_factory=SourceConfig)
    radio: RadioConfig = field(default_factory=RadioConfig)
    edge: EdgeConfig = field(default_factory=EdgeConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def validate_port(port: int) -> bool:
    """Validate port number."""
    return 1 <= port <= 65535


def validate_config(config: Config) -> None:
    """
    Validate configuration.

    Raises:
        ConfigError: If configuration is invalid
    """
    errors = []

    # Channels
    if not config.radio.channels:
        errors.append("At least one channel is required")
    for channel in config.radio.channels:
        if not isinstance(channel, str) or not CHANNEL_PATTERN.match(channel):
            errors.append(f"Invalid channel id: {channel!r}")
    if len(set(config.radio.channels)) != len(config.radio.channels):
        errors.append("Duplicate channel ids")

    # Validity windows must end before the CDN cookies do
    if not 0 < config.radio.cache_ttl_seconds <= COOKIE_LIFETIME_SECONDS:
        errors.append(
            f"Invalid cache_ttl_seconds: {config.radio.cache_ttl_seconds}. "
            f"Must be between 1 and {COOKIE_LIFETIME_SECONDS}"
        )
    if not 60 <= config.edge.validity_seconds <= COOKIE_LIFETIME_SECONDS:
        errors.append(
            f"Invalid validity_seconds: {config.edge.validity_seconds}. "
            f"Must be between 60 and {COOKIE_LIFETIME_SECONDS}"
        )

    # Source
    if "{channel}" not in config.source.page_url_template:
        errors.append("page_url_template must contain {channel}")
    if not config.source.cdn_hosts:
        errors.append("At least one CDN host is required")
    if config.source.navigation_timeout_ms <= 0:
        errors.append(f"Invalid navigation_timeout_ms: {config.source.navigation_timeout_ms}")

    # Edge store: all or nothing
    edge = config.edge
    edge_fields = [edge.account_id, edge.namespace_id, edge.api_token]
    if any(edge_fields) and not all(edge_fields):
        errors.append(
            "Edge store needs account_id, namespace_id and api_token together"
        )

    # Server
    if not validate_port(config.server.http_port):
        errors.append(f"Invalid HTTP port: {config.server.http_port}")

    # Logging
    if config.logging.level.lower() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid log level: {config.logging.level}. "
            f"Valid values: {sorted(VALID_LOG_LEVELS)}"
        )

    if errors:
        raise ConfigError("Configuration validation failed:\n  - " + "\n  - ".join(errors))


def load_yaml_config(path: Path) -> dict:
    """
    Load configuration from YAML file.

    Args:
        path: Path to YAML file

    Returns:
        Configuration dictionary

    Raises:
        ConfigError: If file cannot be read or parsed
    """
    if not path.exists():
        logger.debug(f"Config file not found: {path}")
        return {}

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
            return data if data else {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML config: {e}")
    except IOError as e:
        raise ConfigError(f"Error reading config file: {e}")


def _set_nested(d: dict, path: tuple, value: Any) -> None:
    """Set a nested dictionary value using a path tuple."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def load_env_config() -> dict:
    """
    Load configuration from environment variables.

    Returns:
        Configuration dictionary with values from environment
    """
    result: dict = {}

    for env_var, path in ENV_MAPPINGS.items():
        value: Any = os.environ.get(env_var)
        if value is None:
            continue

        if env_var in _INT_ENV_VARS:
            try:
                value = int(value)
            except ValueError:
                logger.warning(f"Invalid integer for {env_var}: {value}")
                continue
        elif env_var in _BOOL_ENV_VARS:
            value = value.lower() in ("true", "1", "yes", "on")
        elif env_var in _LIST_ENV_VARS:
            value = [item.strip() for item in value.split(",") if item.strip()]

        _set_nested(result, path, value)

    return result


def _deep_merge(base: dict, override: dict) -> None:
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def merge_configs(*configs: dict) -> dict:
    """
    Deep merge multiple configuration dictionaries.
    Later configs override earlier ones.
    """
    result: dict = {}
    for config in configs:
        _deep_merge(result, config)
    return result


def _apply_section(section: Any, values: dict) -> None:
    """Copy known keys from values onto a config dataclass section."""
    for key, value in values.items():
        if hasattr(section, key) and not isinstance(getattr(type(section), key, None), property):
            setattr(section, key, value)
        else:
            logger.warning(f"Ignoring unknown config key: {key}")


def dict_to_config(d: dict) -> Config:
    """Convert a dictionary to Config dataclass."""
    config = Config()

    for name in ("source", "radio", "edge", "server", "logging"):
        if name in d and isinstance(d[name], dict):
            _apply_section(getattr(config, name), d[name])

    # YAML may give numeric channel ids (e.g. 903)
    config.radio.channels = [str(c) for c in config.radio.channels]
    config.source.sd_channels = [str(c) for c in config.source.sd_channels]

    return config


def load_config(
    config_path: Optional[Path] = None,
    cli_args: Optional[dict] = None,
) -> Config:
    """
    Load configuration from all sources.

    Priority (highest to lowest):
    1. CLI arguments
    2. Environment variables
    3. Config file
    4. Defaults

    Args:
        config_path: Path to YAML config file
        cli_args: Dictionary of CLI arguments

    Returns:
        Merged Config object

    Raises:
        ConfigError: If configuration is invalid
    """
    configs = []

    # 1. Load from file (lowest priority of explicit configs)
    if config_path:
        file_config = load_yaml_config(config_path)
        if file_config:
            configs.append(file_config)
            logger.debug(f"Loaded config from {config_path}")

    # 2. Load from environment
    env_config = load_env_config()
    if env_config:
        configs.append(env_config)
        logger.debug("Loaded config from environment variables")

    # 3. Load from CLI (highest priority)
    if cli_args:
        configs.append(cli_args)
        logger.debug("Loaded config from CLI arguments")

    merged = merge_configs(*configs) if configs else {}

    # Convert to Config object (fills in defaults)
    config = dict_to_config(merged)

    validate_config(config)

    return config
