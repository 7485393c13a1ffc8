"""
HTTP endpoints.

Serves stream lookups to playback clients and prewarm/refresh triggers to
the scheduler and operators.
"""

import logging
from typing import Optional

from aiohttp import web

from radio_proxy.config import Config
from radio_proxy.credentials import (
    ExtractionCoordinator,
    ExtractionError,
    UnknownChannelError,
    validate_channel,
)
from radio_proxy.edge import EdgeDistributor, is_authorized

logger = logging.getLogger(__name__)


class RadioServer:
    """
    aiohttp server exposing the credential service.

    Routes:
        GET  /health                     service status
        GET  /api/radio/stream?channel=  playback lookup
        GET  /api/radio/prewarm          scheduled distribution (also POST)
        POST /api/radio/refresh/{channel} forced re-extraction
    """

    def __init__(
        self,
        config: Config,
        coordinator: ExtractionCoordinator,
        distributor: EdgeDistributor,
    ):
        """
        Initialize server.

        Args:
            config: Application configuration
            coordinator: Shared extraction coordinator
            distributor: Edge distributor used by prewarm
        """
        self._config = config
        self._coordinator = coordinator
        self._distributor = distributor

        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    @property
    def channels(self) -> list[str]:
        return self._config.radio.channels

    @property
    def is_running(self) -> bool:
        return self._site is not None

    def create_app(self) -> web.Application:
        """Build the aiohttp application with all routes."""
        app = web.Application()
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/api/radio/stream", self._handle_stream)
        app.router.add_get("/api/radio/prewarm", self._handle_prewarm)
        app.router.add_post("/api/radio/prewarm", self._handle_prewarm)
        app.router.add_post("/api/radio/refresh/{channel}", self._handle_refresh)
        return app

    async def start(self) -> None:
        """Start HTTP server."""
        self._app = self.create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        self._site = web.TCPSite(
            self._runner,
            self._config.server.bind_address,
            self._config.server.http_port,
        )
        await self._site.start()
        logger.info(
            f"HTTP server started on "
            f"{self._config.server.bind_address}:{self._config.server.http_port}"
        )

    async def stop(self) -> None:
        """Stop HTTP server."""
        if self._site:
            await self._site.stop()
            self._site = None
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        self._app = None
        logger.info("HTTP server stopped")

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(
            {
                "status": "ok",
                "channels": self.channels,
                "cached": self._coordinator.cache.snapshot(),
                "extracting": self._coordinator.extracting_channels(),
                "edge": self._distributor.edge_enabled,
            }
        )

    async def _handle_stream(self, request: web.Request) -> web.Response:
        """Playback lookup: proxy path plus cache metadata, never cookies."""
        try:
            channel = validate_channel(request.query.get("channel"), self.channels)
        except UnknownChannelError as e:
            return web.json_response({"error": str(e)}, status=400)

        try:
            credentials = await self._coordinator.acquire(channel)
        except Exception as e:
            logger.exception(f"[{channel}] Lookup failed: {e}")
            credentials = None

        if credentials is not None and credentials.url_verified is False:
            logger.warning(f"[{channel}] Stream URL failed liveness probe, not serving it")
            credentials = None

        if credentials is None:
            return web.json_response(
                {"error": "Failed to extract stream credentials"}, status=500
            )

        cache = self._coordinator.cache
        return web.json_response(
            {
                "success": True,
                "channel": channel,
                "proxyUrl": self._config.radio.proxy_path_template.format(channel=channel),
                "streamUrl": credentials.stream_url,
                "hasCookies": credentials.is_complete,
                "cacheAge": round(credentials.age(cache.now())),
                "cacheTTL": round(cache.ttl_seconds),
            }
        )

    async def _handle_prewarm(self, request: web.Request) -> web.Response:
        """Scheduled distribution of every channel to the edge store."""
        if not self._authorized(request):
            return web.json_response({"error": "Unauthorized"}, status=401)

        logger.info("Prewarm triggered")
        report = await self._distributor.distribute()
        return web.json_response(report.to_dict())

    async def _handle_refresh(self, request: web.Request) -> web.Response:
        """Force a fresh extraction for one channel."""
        if not self._authorized(request):
            return web.json_response({"error": "Unauthorized"}, status=401)

        try:
            channel = validate_channel(request.match_info.get("channel"), self.channels)
        except UnknownChannelError as e:
            return web.json_response({"error": str(e)}, status=400)

        try:
            credentials = await self._coordinator.refresh(channel)
        except ExtractionError as e:
            logger.error(f"[{channel}] Refresh failed: {e}")
            return web.json_response({"error": "Failed to refresh"}, status=500)

        return web.json_response(
            {
                "success": True,
                "channel": channel,
                "cacheAge": round(credentials.age(self._coordinator.cache.now())),
                "hasCookies": credentials.is_complete,
            }
        )

    def _authorized(self, request: web.Request) -> bool:
        edge = self._config.edge
        return is_authorized(request.headers, edge.cron_secret, edge.scheduler_user_agent)
