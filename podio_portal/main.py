"""
FastAPI application entrypoint for the Podio portal gateway.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from podio_portal.api.routes import handle_portal_error, router as api_router
from podio_portal.core.config import get_settings
from podio_portal.core.errors import PodioPortalError
from podio_portal.core.logging import configure_logging

CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Podio Portal Gateway",
        version="0.1.0",
        description="OAuth and API proxy between the customer portal and Podio.",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.allowed_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=CORS_ALLOW_HEADERS,
        expose_headers=["Retry-After", "X-Rate-Limit-Limit", "X-Rate-Limit-Remaining"],
    )
    app.add_exception_handler(PodioPortalError, handle_portal_error)
    app.include_router(api_router)
    return app


app = create_app()

__all__ = ["app", "create_app"]
