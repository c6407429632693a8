"""
FastAPI Application

Main FastAPI application for NLDB Chat with:
- Lifespan management for the service container
- CORS middleware for the chat front end
- Global exception handlers for agent and gateway errors
- Chat, documentation, auth, user and proxy endpoints

Usage:
    uvicorn nldb.api.main:create_app --factory --reload --port 3001
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nldb import __version__
from nldb.api.container import ServiceContainer, build_container
from nldb.api.routes import auth, chat, doc_qa, health, user, weda_proxy
from nldb.clients import AuthRequiredError, CapiError
from nldb.config import get_settings
from nldb.knowledge import RetrievalError
from nldb.models.agent import AgentError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Build the service container on startup and close it on shutdown.

    A container already set on ``app.state`` (tests) is used as is.
    """
    logger.info("Starting NLDB Chat API server...")
    owns_container = getattr(app.state, "container", None) is None
    if owns_container:
        app.state.container = build_container()

    container: ServiceContainer = app.state.container
    try:
        await container.index.initialize()
        logger.info(f"Documentation index ready ({container.index.chunk_count} chunks)")
    except RetrievalError as e:
        # Chat still works; doc questions retry the build lazily
        logger.warning(f"Documentation index unavailable: {e}")

    logger.info("NLDB Chat API server started successfully")
    try:
        yield
    finally:
        logger.info("Shutting down NLDB Chat API server...")
        if owns_container:
            try:
                await container.aclose()
            except Exception as e:
                logger.error(f"Error closing services: {e}")
            app.state.container = None
        logger.info("NLDB Chat API server shut down complete")


async def agent_error_handler(request: Request, exc: AgentError) -> JSONResponse:
    """Handle agent errors with context."""
    logger.error(
        f"Agent error: {exc}",
        extra={"agent": exc.agent, "recoverable": exc.recoverable},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "type": "error",
            "message": str(exc),
            "agent": exc.agent,
            "recoverable": exc.recoverable,
        },
    )


async def auth_required_handler(request: Request, exc: AuthRequiredError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"type": "error", "message": exc.message},
    )


async def capi_error_handler(request: Request, exc: CapiError) -> JSONResponse:
    """Handle gateway errors that escaped a route."""
    logger.error(f"CAPI error: {exc}", extra={"code": exc.code})
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"type": "error", "message": str(exc), "code": exc.code},
    )


def create_app(container: ServiceContainer | None = None) -> FastAPI:
    """Create the FastAPI app, optionally around a prebuilt container."""
    settings = container.settings if container else get_settings()

    app = FastAPI(
        title="NLDB Chat API",
        description="Natural language chat over cloud document and MySQL databases",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AgentError, agent_error_handler)
    app.add_exception_handler(AuthRequiredError, auth_required_handler)
    app.add_exception_handler(CapiError, capi_error_handler)

    app.include_router(health.router, tags=["health"])
    app.include_router(chat.router, prefix="/api", tags=["chat"])
    app.include_router(doc_qa.router, prefix="/api", tags=["doc-qa"])
    app.include_router(auth.router, prefix="/api", tags=["auth"])
    app.include_router(user.router, prefix="/api", tags=["user"])
    app.include_router(weda_proxy.router, prefix="/api", tags=["weda"])

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": __version__,
            "description": "Natural language interface for cloud databases",
            "docs": "/docs",
        }

    return app
