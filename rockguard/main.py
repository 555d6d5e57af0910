"""
Main FastAPI application.

RockGuard risk telemetry service: live environmental risk per location,
alerting and personnel risk tiers for open-pit mine sites.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from rockguard.core.config import Settings, get_settings
from rockguard.api.v1 import alerts, personnel, telemetry
from rockguard.services.monitoring_service import MonitoringService
from rockguard.sources.base import ProviderAdapter

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    adapters: Optional[Sequence[ProviderAdapter]] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use (default: get_settings() at startup)
        adapters: Provider adapters (default: Open-Meteo + USGS)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan context manager.

        Runs on startup and shutdown.
        """
        # Startup
        app_settings = settings or get_settings()
        logging.getLogger().setLevel(app_settings.log_level)
        logger.info("Starting RockGuard Risk Telemetry Service")
        logger.info(f"Log level: {app_settings.log_level}")
        logger.info(f"Refresh interval: {app_settings.refresh_interval_seconds}s")
        logger.info(f"Alert persistence: {'on' if app_settings.persist_alerts else 'off'}")

        service = MonitoringService(app_settings, adapters=adapters)
        try:
            await service.start()
        except Exception as e:
            logger.error(f"Failed to start monitoring service: {e}")
            await service.shutdown()
            raise
        app.state.service = service

        yield

        # Shutdown
        logger.info("Shutting down")
        app.state.service = None
        await service.shutdown()

    app = FastAPI(
        title="RockGuard Risk Telemetry Service",
        description="Real-time environmental risk telemetry, alerting and personnel risk for mine sites",
        version="0.1.0",
        lifespan=lifespan
    )

    # CORS middleware (configure as needed)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(telemetry.router, prefix="/api/v1")
    app.include_router(alerts.router, prefix="/api/v1")
    app.include_router(personnel.router, prefix="/api/v1")

    @app.get("/")
    def root():
        """Service info."""
        return {
            "service": "RockGuard Risk Telemetry Service",
            "version": "0.1.0",
            "status": "running",
            "endpoints": {
                "telemetry": "/api/v1/telemetry?lat=&lon=",
                "telemetry_stream": "/api/v1/telemetry/stream?lat=&lon=",
                "telemetry_ws": "/api/v1/telemetry/ws?lat=&lon=",
                "alerts": "/api/v1/alerts",
                "personnel": "/api/v1/personnel/live",
            },
        }

    @app.get("/health")
    def health(request: Request):
        """Health check with hub, alert and personnel stats."""
        service = getattr(request.app.state, "service", None)
        if service is None:
            return {"status": "starting"}
        return service.health()

    return app


app = create_app()
