"""
Pegasus Astro Driver - RPC API

FastAPI application that provides:
- Connected device listing
- Property writes with DeviceAction status codes
- Health check

Devices are discovered when the application starts and closed when
it shuts down.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from pegasus_astro import __version__
from pegasus_astro.common.config import DriverConfig
from pegasus_astro.common.logging_setup import get_service_logger
from pegasus_astro.services.device.device_manager import DeviceManager
from pegasus_astro.api.routers import devices

logger = get_service_logger("rpc")


def create_app(
    config: DriverConfig | None = None,
    manager: DeviceManager | None = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        config: Driver configuration, defaults when omitted
        manager: Device manager to serve, created from config when omitted
    """
    config = config or DriverConfig()
    manager = manager or DeviceManager(config)

    # ============================================
    # APPLICATION LIFESPAN
    # ============================================

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup: discover and connect devices.
        Shutdown: stop refresh loops and close ports.
        """
        logger.info("Starting Pegasus Astro RPC API")
        found = await manager.add_discovered()
        logger.info(f"Serving {len(found)} devices")

        yield

        logger.info("Shutting down RPC API")
        await manager.stop()

    app = FastAPI(
        title="Pegasus Astro Driver API",
        description="Control plane for Pegasus Astro Pocket Powerbox Advance units.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.device_manager = manager
    app.state.config = config

    # ============================================
    # INCLUDE ROUTERS
    # ============================================

    app.include_router(
        devices.router,
        prefix="/api/devices",
        tags=["Devices"]
    )

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Basic health check."""
        return {
            "status": "healthy",
            "service": "rpc",
            "devices": len(manager),
            "version": __version__,
        }

    return app
