"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from akadeo.api import auth, memberships, webhooks
from akadeo.config import Settings, get_settings
from akadeo.database import Database
from akadeo.responses import register_error_handlers

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, database: Database | None = None) -> FastAPI:
    """Build the application.

    Connection pools are created here and kept on ``app.state`` so each
    app (and each test) owns its own; pass ``database`` to supply one.
    """
    settings = settings or get_settings()
    database = database or Database.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle application startup and shutdown events."""
        logger.info(f"Starting Akadeo API ({settings.environment})")
        yield
        app.state.database.dispose()

    app = FastAPI(
        title="Akadeo API",
        description="Account lifecycle and subscription billing for Akadeo",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database

    register_error_handlers(app)

    # CORS middleware for development
    if settings.is_development:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Register routers
    app.include_router(auth.router)
    app.include_router(memberships.router)
    app.include_router(webhooks.router)

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        return {"status": "healthy", "environment": request.app.state.settings.environment}

    return app


app = create_app()
