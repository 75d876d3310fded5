"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI

from edu_gateway.app.exception_handlers import configure_exception_handlers
from edu_gateway.app.lifespan import lifespan
from edu_gateway.app.middleware import configure_middleware
from edu_gateway.app.router import setup_routers
from edu_gateway.core.settings import get_rate_limit_settings, get_service_settings


def create_app() -> FastAPI:
    """Create and configure the gateway application.

    Returns:
        Configured FastAPI application instance.
    """
    services = get_service_settings()

    app = FastAPI(
        title=services.name,
        version=services.version,
        lifespan=lifespan,
    )

    configure_exception_handlers(app)
    configure_middleware(app, get_rate_limit_settings())
    setup_routers(app)

    return app


# Application instance for uvicorn
app = create_app()
