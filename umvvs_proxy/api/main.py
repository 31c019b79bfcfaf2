"""
FastAPI Application - Main entry point.
Serves the UMVVS cascading dropdowns as JSON.
"""

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from .. import __version__
from ..core.config import Settings, settings as default_settings
from ..core.errors import ProxyError, UpstreamError
from ..core.logging import setup_logging
from ..memory.session_store import SessionStore
from ..postback.client import PostbackClient
from ..postback.engine import ReplayEngine

from .routes import lookup, sessions


def create_app(
    config: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        config: Settings (defaults to global)
        transport: Optional httpx transport for the upstream client

    Returns:
        Configured FastAPI app
    """
    config = config or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.
        Opens the upstream client and session store, closes the client on exit.
        """
        setup_logging(config.log_level)

        client = PostbackClient(config, transport=transport)
        await client.start()

        app.state.client = client
        app.state.engine = ReplayEngine(client)
        app.state.session_store = SessionStore(
            ttl_seconds=config.session_ttl,
            max_sessions=config.max_sessions,
        )

        logger.info("UMVVS proxy ready", upstream=config.page_url)

        yield

        logger.info("Shutting down")
        await client.close()

    app = FastAPI(
        title="UMVVS Postback Proxy",
        description=(
            "Replays the TRA used-vehicle valuation page's ASP.NET postbacks "
            "and returns each cascading dropdown as JSON: "
            "make → model → year → country → fuel type → engine"
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
        """Map engine errors to JSON bodies."""
        if isinstance(exc, UpstreamError):
            logger.warning("upstream failure", path=request.url.path, kind=exc.kind, error=str(exc))
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc), "kind": exc.kind},
        )

    # Include routers
    app.include_router(lookup.router, prefix="/api", tags=["Lookup"])
    app.include_router(sessions.router, prefix="/api/sessions", tags=["Sessions"])

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "UMVVS Postback Proxy",
            "version": __version__,
            "status": "running",
            "docs": "/docs",
            "upstream": config.page_url,
            "cascade": [
                "make", "model", "year", "country", "fuel_type", "engine"
            ],
        }

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Health check endpoint."""
        client = getattr(request.app.state, "client", None)
        store = getattr(request.app.state, "session_store", None)
        return {
            "status": "healthy",
            "upstream_requests": client.requests_made if client else 0,
            "sessions": store.stats() if store else {},
        }

    return app


# Create app instance
app = create_app()
