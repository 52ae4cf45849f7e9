"""
FastAPI application factory for the UniFiles gateway.

This module creates the main FastAPI app with:
- CORS configuration for the frontend
- Portal lifecycle management (store connect, session restore, close)
- Login, navigation and record routes
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from portal.unifiles_core import __version__
from portal.unifiles_core.main import Portal
from portal.unifiles_core.notify import CollectingNotifier

from .config import Settings
from .routes import router


def create_app(settings: Optional[Settings] = None, portal: Optional[Portal] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Gateway settings (loaded from env if not provided)
        portal: Prebuilt core; built from settings in the lifespan otherwise
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage the Portal lifecycle."""
        core = portal or Portal(settings.portal_config(), notifier=CollectingNotifier())
        await core.start()
        app.state.portal = core
        app.state.settings = settings

        yield

        await core.stop()

    app = FastAPI(
        title="UniFiles Gateway",
        description="Login, role-gated navigation and record maintenance for UniFiles.",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # API routes
    app.include_router(router, prefix="/api/v1")

    # Health endpoint at root
    @app.get("/health")
    async def health():
        core: Portal = app.state.portal
        return {
            "status": "healthy" if core.store.is_connected else "degraded",
            "service": "unifiles-gateway",
            "version": __version__,
        }

    return app
