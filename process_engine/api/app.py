"""
FastAPI application factory.

Creates and configures the process engine API application.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from process_engine import __version__
from process_engine.api.routes import router
from process_engine.config import get_settings
from process_engine.orchestrator.factory import build_engine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    settings = get_settings()

    # Startup
    logger.info("Starting Process Orchestration Engine...")

    resources = await build_engine(settings)
    app.state.resources = resources
    app.state.engine = resources.engine
    logger.info("Process engine initialized")

    logger.info(
        f"Process Engine started - Environment: {settings.environment.value}, "
        f"storage: {settings.storage_backend.value}"
    )

    yield

    # Shutdown
    logger.info("Shutting down Process Orchestration Engine...")

    await resources.close()

    logger.info("Process Engine shutdown complete")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """
    settings = get_settings()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = FastAPI(
        title=settings.app_name,
        description="Workflow template, instance and task orchestration engine",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(router)

    # Root endpoint
    @app.get("/", tags=["root"])
    async def root():
        return {
            "name": settings.app_name,
            "version": __version__,
            "status": "running",
        }

    return app


# Application instance for uvicorn
app = create_app()
