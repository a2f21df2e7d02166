"""
Main FastAPI application for the dealership squad backend.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routes import communications, inventory, squads, tools
from .services import Services, get_services, initialize_services
from .middleware.metrics import MetricsMiddleware, metrics_endpoint
from .middleware.rate_limit import RateLimitMiddleware
from config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = app.state.settings
    configure_logging(settings.log_level)
    logger.info(f"{settings.api_title} starting up...")

    await initialize_services(settings)
    services = get_services()
    services.start_background()
    logger.info(f"{settings.api_title} ready")
    yield
    logger.info(f"{settings.api_title} shutting down...")
    await services.shutdown()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.api_title,
        description="Webhook backend for a voice-AI dealership squad: routing, lead scoring and follow-ups.",
        version=settings.api_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Prometheus metrics middleware
    app.add_middleware(MetricsMiddleware)

    # Rate limiting middleware
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_minute=settings.rate_limit_per_minute,
    )

    # --- Voice platform ---
    app.include_router(tools.router, tags=["Tool Calls"])
    app.include_router(squads.router, tags=["Squads"])

    # --- Shared links ---
    app.include_router(inventory.router, tags=["Inventory"])

    # --- Admin ---
    app.include_router(communications.router, prefix="/api/v1", tags=["Communications"])

    # --- Prometheus metrics endpoint ---
    app.get("/metrics", tags=["Monitoring"])(metrics_endpoint)

    # Root endpoint
    @app.get("/")
    async def root():
        return {
            "service": settings.api_title,
            "dealership": settings.dealership_name,
            "version": settings.api_version,
            "status": "operational",
            "docs": "/docs",
        }

    # Health check
    @app.get("/health")
    async def health(services: Services = Depends(get_services)):
        return {
            "status": "healthy" if services.is_ready else "degraded",
            "services": services.health(),
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    s = get_settings()
    uvicorn.run(app, host=s.api_host, port=s.api_port)
