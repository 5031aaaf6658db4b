"""FastAPI application - group trip planner API."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend.app.api.deps import Services, build_services
from backend.app.api.routes.health import router as health_router
from backend.app.api.routes.metrics import router as metrics_router
from backend.app.api.routes.reactions import router as reactions_router
from backend.app.api.routes.trips import router as trips_router
from backend.app.config import get_settings
from backend.app.sync.background import drain

logger = logging.getLogger(__name__)

SHUTDOWN_DRAIN_SECONDS = 10.0


def create_app(services: Services | None = None) -> FastAPI:
    """Build the application.

    Args:
        services: Prebuilt services (tests); built from settings when omitted

    Returns:
        Configured FastAPI app
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = services is None
        app.state.services = services or build_services(get_settings())
        try:
            yield
        finally:
            await drain(timeout=SHUTDOWN_DRAIN_SECONDS)
            if owned:
                await app.state.services.close()
            logger.info("API shut down")

    app = FastAPI(title="Group Trip Planner API", version="0.1.0", lifespan=lifespan)
    if services is not None:
        # Available without running the lifespan (plain ASGITransport)
        app.state.services = services

    app.include_router(health_router, tags=["health"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(trips_router)
    app.include_router(reactions_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {"message": "Group Trip Planner API", "version": "0.1.0"}

    return app


app = create_app()
