"""
RadioProxy CLI entry point.

Provides command-line interface for running RadioProxy.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from radio_proxy import __version__
from radio_proxy.app import RadioProxy
from radio_proxy.config import Config, ConfigError, load_config
from radio_proxy.credentials import ExtractionError, UnknownChannelError, validate_channel

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_NETWORK_ERROR = 3
EXIT_DISTRIBUTION_FAILED = 4


def setup_logging(level: str = "info") -> None:
    """Configure logging to stdout."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
        force=True,
    )


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="radio-proxy",
        description="Live radio stream credential service with edge distribution",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  radio-proxy --config config.yaml
  radio-proxy --extract 903
  radio-proxy --prewarm --channels 881,903
  radio-proxy --http-port 3001 --log-level debug

Environment Variables:
  RADIOPROXY_CHANNELS, RADIOPROXY_CACHE_TTL, RADIOPROXY_PROBE_FALLBACK
  RADIOPROXY_PREWARM_ON_START, RADIOPROXY_HEADLESS, RADIOPROXY_HTTP_PORT
  RADIOPROXY_BIND, RADIOPROXY_LOG_LEVEL, RADIOPROXY_KV_KEY_PREFIX
  CLOUDFLARE_ACCOUNT_ID, CLOUDFLARE_KV_NAMESPACE_ID, CLOUDFLARE_API_TOKEN
  CRON_SECRET
""",
    )

    # General
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    # One-shot modes
    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--extract",
        metavar="CHANNEL",
        help="Extract credentials for one channel, print a summary and exit",
    )
    mode_group.add_argument(
        "--prewarm",
        action="store_true",
        help="Run one edge distribution pass, print the report and exit",
    )

    # Configuration
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("./config.yaml"),
        metavar="PATH",
        help="Path to config file (default: ./config.yaml)",
    )

    # Radio
    radio_group = parser.add_argument_group("Radio")
    radio_group.add_argument(
        "--channels",
        metavar="LIST",
        help="Comma-separated channel ids (default: 881,903,864)",
    )
    radio_group.add_argument(
        "--no-probe",
        action="store_true",
        help="Do not probe synthesized fallback stream URLs",
    )
    radio_group.add_argument(
        "--prewarm-on-start",
        action="store_true",
        help="Distribute all channels shortly after the server starts",
    )
    radio_group.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window (debugging)",
    )

    # Edge store
    edge_group = parser.add_argument_group("Edge store")
    edge_group.add_argument(
        "--kv-namespace",
        metavar="ID",
        help="Cloudflare KV namespace ID",
    )
    edge_group.add_argument(
        "--kv-key-prefix",
        metavar="TEXT",
        help="Prefix for KV keys",
    )

    # Server
    server_group = parser.add_argument_group("Server")
    server_group.add_argument(
        "--http-port",
        type=int,
        metavar="INT",
        help="HTTP server port (default: 3001)",
    )
    server_group.add_argument(
        "--bind",
        metavar="TEXT",
        help="Bind address (default: 0.0.0.0)",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        metavar="LEVEL",
        help="Log level: debug, info, warning, error",
    )

    return parser.parse_args(argv)


def _set_nested(d: dict, path: tuple, value: Any) -> None:
    """Set a nested dictionary value."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def args_to_dict(args: argparse.Namespace) -> dict:
    """Convert argparse namespace to nested config dict."""
    result: dict = {}

    # Map CLI args to config paths
    mappings = {
        "kv_namespace": ("edge", "namespace_id"),
        "kv_key_prefix": ("edge", "key_prefix"),
        "http_port": ("server", "http_port"),
        "bind": ("server", "bind_address"),
        "log_level": ("logging", "level"),
    }

    for arg_name, path in mappings.items():
        value = getattr(args, arg_name, None)
        if value is None:
            continue
        _set_nested(result, path, value)

    channels = getattr(args, "channels", None)
    if channels:
        _set_nested(
            result,
            ("radio", "channels"),
            [c.strip() for c in channels.split(",") if c.strip()],
        )

    # Flags only override when explicitly given
    if getattr(args, "no_probe", False):
        _set_nested(result, ("radio", "probe_fallback_urls"), False)
    if getattr(args, "prewarm_on_start", False):
        _set_nested(result, ("radio", "prewarm_on_start"), True)
    if getattr(args, "headed", False):
        _set_nested(result, ("source", "headless"), False)

    return result


def log_config(config: Config) -> None:
    """Log configuration summary (without sensitive data)."""
    logger.info(f"Channels: {', '.join(config.radio.channels)}")
    logger.info(f"Cache TTL: {config.radio.cache_ttl_seconds}s")
    logger.info(f"HTTP server: {config.server.bind_address}:{config.server.http_port}")
    if config.edge.is_configured:
        logger.info(
            f"Edge store: KV namespace {config.edge.namespace_id} "
            f"(validity {config.edge.validity_seconds}s)"
        )
    else:
        logger.info("Edge store: disabled")
    if config.edge.cron_secret:
        logger.info("Prewarm authorization: enabled")
    else:
        logger.warning("Prewarm authorization: disabled (no CRON_SECRET)")


async def run_extract(app: RadioProxy, channel: str) -> int:
    """
    Extract credentials for one channel and print a summary.

    Args:
        app: Application with components built
        channel: Channel id

    Returns:
        Exit code
    """
    try:
        credentials = await app.coordinator.acquire_or_raise(channel)
    except ExtractionError as e:
        logger.error(f"Extraction failed: {e}")
        return EXIT_NETWORK_ERROR

    print(json.dumps(credentials.summary(), indent=2))
    return EXIT_SUCCESS if credentials.is_complete else EXIT_DISTRIBUTION_FAILED


async def run_prewarm(app: RadioProxy) -> int:
    """
    Run one distribution pass and print the report.

    Returns:
        Exit code
    """
    report = await app.prewarm()
    print(json.dumps(report.to_dict(), indent=2))
    return EXIT_SUCCESS if report.success else EXIT_DISTRIBUTION_FAILED


def run(args: argparse.Namespace) -> int:
    """
    Load configuration and run the selected mode.

    Args:
        args: Parsed arguments

    Returns:
        Exit code
    """
    # Setup basic logging first (will be reconfigured after config load)
    setup_logging("info")

    logger.info(f"RadioProxy v{__version__}")

    try:
        cli_config = args_to_dict(args)
        config = load_config(args.config, cli_config)

        # Reconfigure logging with loaded level
        setup_logging(config.logging.level)

        log_config(config)

    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    try:
        app = RadioProxy(config)

        if args.extract:
            try:
                channel = validate_channel(args.extract, config.radio.channels)
            except UnknownChannelError as e:
                logger.error(str(e))
                return EXIT_CONFIG_ERROR
            return asyncio.run(run_extract(app, channel))

        if args.prewarm:
            return asyncio.run(run_prewarm(app))

        asyncio.run(app.run())
        return EXIT_SUCCESS

    except (ConnectionError, OSError) as e:
        logger.error(f"Network error: {e}")
        return EXIT_NETWORK_ERROR

    except KeyboardInterrupt:
        logger.info("Interrupted")
        return EXIT_SUCCESS

    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return EXIT_NETWORK_ERROR


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code: 0=success, 1=config error, 3=network error,
        4=distribution incomplete
    """
    return run(parse_args(argv))


if __name__ == "__main__":
    sys.exit(main())
