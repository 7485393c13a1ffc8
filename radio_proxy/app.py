"""
RadioProxy Application.

Main orchestrator that wires together all components and manages lifecycle.
"""

import asyncio
import logging
import signal
from typing import Optional

from radio_proxy.config import Config
from radio_proxy.credentials import (
    CredentialCache,
    CredentialExtractor,
    ExtractionCoordinator,
    StreamProbe,
)
from radio_proxy.edge import CloudflareKVClient, DistributionReport, EdgeDistributor
from radio_proxy.server import RadioServer

logger = logging.getLogger(__name__)

# Give the server a moment to come up before the first browser launch
STARTUP_PREWARM_DELAY_S = 2.0


class RadioProxy:
    """
    Main RadioProxy application.

    Orchestrates all components:
    - Credentials (CredentialExtractor, CredentialCache, ExtractionCoordinator)
    - Edge distribution (CloudflareKVClient, EdgeDistributor)
    - HTTP endpoints (RadioServer)

    Usage:
        config = load_config(...)
        app = RadioProxy(config)
        await app.run()
    """

    def __init__(self, config: Config):
        """
        Initialize RadioProxy.

        Components are built here so one-shot commands can use them
        without starting the server.

        Args:
            config: Validated configuration
        """
        self._config = config
        self._is_running = False
        self._shutdown_event = asyncio.Event()
        self._prewarm_task: Optional[asyncio.Task] = None

        source = config.source
        probe = (
            StreamProbe(user_agent=source.user_agent, site_origin=source.site_origin)
            if config.radio.probe_fallback_urls
            else None
        )
        self.extractor = CredentialExtractor(source, probe=probe)
        self.cache = CredentialCache(ttl_seconds=config.radio.cache_ttl_seconds)
        self.coordinator = ExtractionCoordinator(self.cache, self.extractor)

        self.kv_client: Optional[CloudflareKVClient] = None
        if config.edge.is_configured:
            self.kv_client = CloudflareKVClient(
                account_id=config.edge.account_id,
                namespace_id=config.edge.namespace_id,
                api_token=config.edge.api_token,
                api_base=config.edge.api_base,
            )

        self.distributor = EdgeDistributor(
            self.coordinator,
            channels=config.radio.channels,
            kv_client=self.kv_client,
            validity_seconds=config.edge.validity_seconds,
            key_prefix=config.edge.key_prefix,
        )
        self.server = RadioServer(config, self.coordinator, self.distributor)

    async def start(self) -> None:
        """
        Start RadioProxy.

        Startup order:
        1. Edge store client
        2. HTTP server
        3. Optional background prewarm

        Raises:
            OSError: If the HTTP port cannot be bound
        """
        logger.info("Starting RadioProxy...")

        if self.kv_client:
            await self.kv_client.open()
            logger.info(f"Edge store: KV namespace {self._config.edge.namespace_id}")
        else:
            logger.info("Edge store not configured, prewarm will only warm the cache")

        await self.server.start()
        self._is_running = True

        if self._config.radio.prewarm_on_start:
            self._prewarm_task = asyncio.create_task(self._startup_prewarm())

        logger.info(f"RadioProxy ready - channels: {', '.join(self._config.radio.channels)}")

    async def _startup_prewarm(self) -> None:
        await asyncio.sleep(STARTUP_PREWARM_DELAY_S)
        logger.info("Prewarming all channels...")
        try:
            await self.distributor.distribute()
        except Exception as e:
            logger.error(f"Startup prewarm failed: {e}", exc_info=True)

    async def prewarm(self) -> DistributionReport:
        """Run one distribution pass (one-shot mode)."""
        if self.kv_client:
            await self.kv_client.open()
        try:
            return await self.distributor.distribute()
        finally:
            if self.kv_client:
                await self.kv_client.close()

    async def stop(self) -> None:
        """
        Stop RadioProxy.

        Shutdown order (reverse of startup):
        1. Cancel background prewarm
        2. Stop HTTP server
        3. Close edge store client
        """
        if not self._is_running:
            return

        logger.info("Stopping RadioProxy...")
        self._is_running = False

        # 1. Cancel background prewarm
        if self._prewarm_task and not self._prewarm_task.done():
            self._prewarm_task.cancel()
            try:
                await self._prewarm_task
            except asyncio.CancelledError:
                pass

        # 2. Stop HTTP server
        try:
            await self.server.stop()
        except Exception as e:
            logger.warning(f"Error stopping HTTP server: {e}")

        # 3. Close edge store client
        if self.kv_client:
            try:
                await self.kv_client.close()
            except Exception as e:
                logger.warning(f"Error closing KV client: {e}")

        logger.info("RadioProxy stopped")

    async def run(self) -> None:
        """
        Run RadioProxy until interrupted.

        Sets up signal handlers for graceful shutdown on SIGINT/SIGTERM.
        """
        loop = asyncio.get_running_loop()

        def handle_signal() -> None:
            logger.info("Shutdown signal received")
            self._shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, handle_signal)

        try:
            await self.start()

            # Wait for shutdown signal
            await self._shutdown_event.wait()

        finally:
            await self.stop()

    @property
    def is_running(self) -> bool:
        """Check if the application is running."""
        return self._is_running
