"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from mavparam_gateway import __version__
from mavparam_gateway.api.connection_routes import router as connection_router
from mavparam_gateway.api.dependencies import app_state
from mavparam_gateway.api.routes import router as api_router
from mavparam_gateway.core.cache import ParameterCache
from mavparam_gateway.core.config import Settings, setup_logging
from mavparam_gateway.core.models import HealthResponse
from mavparam_gateway.protocol.codec import PacketCodec
from mavparam_gateway.protocol.handler import ProtocolHandler
from mavparam_gateway.transport.connection import MAVLinkTransport

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    settings = app_state.settings or Settings()
    app_state.settings = settings

    setup_logging(settings.log_level)
    logger.info(f"Starting MAVLink Parameter Gateway v{__version__}")

    # Initialize components
    app_state.cache = ParameterCache()
    app_state.transport = MAVLinkTransport(
        heartbeat_timeout=settings.heartbeat_timeout,
        heartbeat_interval=settings.heartbeat_interval,
        connect_timeout=settings.connect_timeout,
    )
    app_state.handler = ProtocolHandler(
        app_state.transport,
        app_state.cache,
        PacketCodec(
            system_id=settings.system_id,
            component_id=settings.component_id,
            target_system=settings.target_system,
            target_component=settings.target_component,
        ),
        idle_timeout=settings.idle_timeout,
        download_deadline=settings.download_deadline,
        max_retries=settings.max_retries,
        write_timeout=settings.write_timeout,
        verify_timeout=settings.verify_timeout,
        persistence_delay=settings.persistence_delay,
        tolerance=settings.tolerance,
        auto_refresh=settings.auto_refresh,
    )

    if settings.auto_connect:
        link = settings.connection_settings()
        if await app_state.transport.connect(link):
            logger.info(f"Connected to {link.describe()}")
        else:
            logger.warning(f"Failed to connect to {link.describe()}, use POST /api/connection to retry")

    yield

    # Shutdown
    logger.info("Shutting down...")
    if app_state.transport is not None:
        await app_state.transport.disconnect()
    if app_state.handler is not None:
        await app_state.handler.close()


app = FastAPI(
    title="MAVLink Parameter Gateway",
    description="Local REST API for reading and writing vehicle parameters over MAVLink",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(api_router)
app.include_router(connection_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "MAVLink Parameter Gateway",
        "version": __version__,
        "status": "running",
    }


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check endpoint."""
    handler = app_state.handler
    cache = app_state.cache

    if handler is None or cache is None:
        return HealthResponse(
            status="unhealthy",
            vehicle_connected=False,
            parameters_count=0,
            last_update=None,
        )

    connected = handler.connected
    status = "healthy" if connected and cache.count > 0 else ("degraded" if connected else "unhealthy")

    return HealthResponse(
        status=status,
        vehicle_connected=connected,
        parameters_count=cache.count,
        download_state=handler.download_status().state,
        last_update=cache.last_update,
    )


def main():
    """Run the application (for CLI entry point)."""
    import uvicorn

    settings = Settings()
    setup_logging(settings.log_level)
    app_state.settings = settings

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
