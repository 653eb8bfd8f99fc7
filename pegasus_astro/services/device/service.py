"""
Device Service

Responsible for:
- Discovering and connecting PPBA units at startup
- Running the per-device refresh loops (via DeviceManager)
- Serving a small health endpoint
- Graceful shutdown on SIGINT/SIGTERM
"""

import asyncio
import signal
from datetime import datetime, timezone

from aiohttp import web

from pegasus_astro.common.config import DriverConfig
from pegasus_astro.common.logging_setup import get_service_logger
from .device_manager import DeviceListener, DeviceManager

logger = get_service_logger("device")


class DeviceService:
    """
    Owns a DeviceManager for the lifetime of the process.

    Control-plane adapters plug in as the manager's listener.
    """

    def __init__(
        self,
        config: DriverConfig | None = None,
        listener: DeviceListener | None = None,
        manager: DeviceManager | None = None,
    ):
        self.config = config or DriverConfig()
        self.manager = manager or DeviceManager(self.config, listener)
        self._start_time = datetime.now(timezone.utc)

        # Health server
        self._health_app: web.Application | None = None
        self._health_runner: web.AppRunner | None = None

        # State
        self._running = False
        self._shutdown_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Connect every discovered device and start the health server"""
        logger.info("Starting Device Service")
        self._running = True
        self._start_time = datetime.now(timezone.utc)

        devices = await self.manager.add_discovered()

        await self._start_health_server()

        logger.info(
            f"Device Service started ({len(devices)} devices)",
            extra={"device_count": len(devices)},
        )

    async def run(self) -> None:
        """Start, then block until a shutdown is requested"""
        try:
            await self.start()
            self._setup_signal_handlers()
            await self._shutdown_event.wait()
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop refresh loops, close ports and the health server"""
        if not self._running:
            return
        logger.info("Stopping Device Service")
        self._running = False

        await self.manager.stop()
        await self._stop_health_server()

        logger.info("Device Service stopped")

    def request_shutdown(self) -> None:
        """Handle shutdown signal"""
        logger.info("Shutdown requested")
        self._shutdown_event.set()

    def _setup_signal_handlers(self) -> None:
        """Setup graceful shutdown signal handlers"""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except NotImplementedError:
                signal.signal(sig, lambda s, f: self.request_shutdown())

    async def _start_health_server(self) -> None:
        """Start the health check HTTP server"""
        health = self.config.health
        if not health.port:
            logger.debug("Health server disabled")
            return

        self._health_app = web.Application()
        self._health_app.router.add_get("/health", self._health_handler)
        self._health_app.router.add_get("/devices", self._devices_handler)

        self._health_runner = web.AppRunner(self._health_app)
        await self._health_runner.setup()

        site = web.TCPSite(self._health_runner, health.host, health.port)
        await site.start()

        logger.info(f"Health server started on port {health.port}")

    async def _stop_health_server(self) -> None:
        """Stop the health check HTTP server"""
        if self._health_runner:
            await self._health_runner.cleanup()
            self._health_runner = None

    async def _health_handler(self, request: web.Request) -> web.Response:
        """Handle health check requests"""
        uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds()

        return web.json_response({
            "status": "healthy" if self._running else "unhealthy",
            "service": "device",
            "uptime": int(uptime),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "devices": len(self.manager),
        })

    async def _devices_handler(self, request: web.Request) -> web.Response:
        """Return the refresh status of every device"""
        status = {}
        for device_id, entry in self.manager.get_all_status().items():
            status[device_id] = {
                "device_name": entry.device_name,
                "last_seen": entry.last_seen.isoformat() if entry.last_seen else None,
                "last_error": entry.last_error,
                "consecutive_failures": entry.consecutive_failures,
                "refresh_count": entry.refresh_count,
            }
        return web.json_response(status)
