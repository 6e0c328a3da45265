"""Novelty Assessment Service - FastAPI Application Entry Point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .agents.aggregator import NoveltyPipeline
from .api.v1.endpoints.novelty import router as novelty_router
from .core.config import settings
from .core.logging_config import setup_logging

logger = structlog.get_logger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    setup_logging(settings.LOG_LEVEL)
    app.state.pipeline = NoveltyPipeline.from_settings()
    logger.info(
        "service_starting",
        port=settings.API_PORT,
        ai_providers=app.state.pipeline.gateway.available_providers(),
        ebay_configured=settings.ebay_configured,
        log_level=settings.LOG_LEVEL,
    )

    yield

    # Shutdown
    await app.state.pipeline.close()
    logger.info("service_stopped")


# Create FastAPI app
app = FastAPI(
    title="Novelty Assessment API",
    description="Checks whether an invention already exists across web, retail and patent sources",
    version=VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/api/v1/health", tags=["Health"])
async def health_check() -> JSONResponse:
    """Health check endpoint.

    Returns:
        JSONResponse: Service health status and which providers are configured
    """
    pipeline = getattr(app.state, "pipeline", None)
    return JSONResponse(
        content={
            "status": "healthy",
            "service": "novelty-service",
            "version": VERSION,
            "environment": "development" if settings.DEBUG else "production",
            "providers": {
                "ai": pipeline.gateway.provider_status().model_dump() if pipeline else None,
                "web": bool(settings.TAVILY_API_KEY),
                "retail": settings.ebay_configured,
                "patent": bool(settings.PATENTSVIEW_API_KEY),
                "ptab": bool(settings.USPTO_API_KEY),
            },
        }
    )


# Include API routers
app.include_router(novelty_router, prefix="/api")
