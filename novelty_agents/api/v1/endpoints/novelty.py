"""Novelty endpoints: invention expansion, novelty check and cache admin.

The pipeline is built once in the application lifespan and read from
``app.state``; tests replace it through ``dependency_overrides``.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from ....agents.aggregator import NoveltyPipeline
from ....core.exceptions import AIConfigurationError
from ....models.novelty import ExpandedInvention, NoveltyCheckRequest, NoveltyCheckResponse
from ....services.cache.search_cache import CacheStats, SearchCache
from ..schemas import CacheClearResponse, NoveltyCheckPayload, SearchType

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/v1/novelty", tags=["novelty"])


def get_pipeline(request: Request) -> NoveltyPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Novelty pipeline is not initialized",
        )
    return pipeline


def get_cache(pipeline: NoveltyPipeline = Depends(get_pipeline)) -> SearchCache:
    if pipeline.cache is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Search cache is not configured",
        )
    return pipeline.cache


@router.post(
    "/expand",
    response_model=ExpandedInvention,
    status_code=status.HTTP_200_OK,
    summary="Expand an invention description",
    description="Turn a brief description into a search-ready profile with per-channel queries",
)
async def expand_invention(
    body: NoveltyCheckRequest,
    pipeline: NoveltyPipeline = Depends(get_pipeline),
) -> ExpandedInvention:
    """Expand an invention. Never fails on model errors (keyword fallback)."""
    return await pipeline.expand(body)


@router.post(
    "/check",
    response_model=NoveltyCheckResponse,
    status_code=status.HTTP_200_OK,
    summary="Run a novelty check",
    description="Search web, retail and patent channels concurrently and aggregate a risk verdict",
    responses={
        200: {"description": "Novelty check completed (possibly with failed channels)"},
        422: {"description": "Validation error"},
        503: {"description": "No AI provider configured"},
    },
)
async def check_novelty(
    body: NoveltyCheckPayload,
    pipeline: NoveltyPipeline = Depends(get_pipeline),
) -> NoveltyCheckResponse:
    """Run the novelty pipeline.

    Channel failures are reported inside the response (``channel_status``,
    risk level ``incomplete``). Only total AI misconfiguration is an error.

    Raises:
        HTTPException: 503 if neither AI provider is configured
    """
    try:
        return await pipeline.run_novelty_check(
            body.to_request(),
            body.expanded,
            user_id=body.user_id,
            project_id=body.project_id,
        )
    except AIConfigurationError as e:
        logger.error("novelty_check_misconfigured", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        ) from e


@router.get(
    "/cache/stats",
    response_model=CacheStats,
    summary="Search cache statistics",
)
async def cache_stats(cache: SearchCache = Depends(get_cache)) -> CacheStats:
    return await cache.stats()


@router.delete(
    "/cache",
    response_model=CacheClearResponse,
    summary="Clear the search cache",
)
async def clear_cache(
    search_type: SearchType | None = Query(default=None, description="Only clear this type"),
    cache: SearchCache = Depends(get_cache),
) -> CacheClearResponse:
    deleted = await cache.clear(search_type)
    return CacheClearResponse(deleted=deleted, search_type=search_type)
