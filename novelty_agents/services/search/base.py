"""Shared plumbing for channel search clients.

Each client owns one ``httpx.AsyncClient``, one ``RateLimiter`` and an
optional ``SearchCache``. Provider HTTP statuses are mapped onto the typed
errors in ``core.exceptions`` so retry and failure handling is uniform.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from ...core.config import settings
from ...core.exceptions import (
    SearchAuthenticationError,
    SearchBadRequestError,
    SearchClientError,
    SearchRateLimitError,
    SearchUpstreamError,
)
from ...core.rate_limiter import RateLimiter
from ...core.retry import RetryPolicy
from ..cache.search_cache import SearchCache

logger = structlog.get_logger(__name__)

ItemT = TypeVar("ItemT", bound=BaseModel)


@dataclass
class SearchBatch(Generic[ItemT]):
    """Normalized results of one multi-query channel search.

    Attributes:
        queries: Queries actually issued
        results: Deduplicated provider items (unscored)
        error: Last error seen; set with empty results means the channel failed
        from_cache: True when served from the result cache
        partial: Some queries or sources failed; results are usable but not cached
    """

    queries: list[str]
    results: list[ItemT] = field(default_factory=list)
    error: SearchClientError | None = None
    from_cache: bool = False
    partial: bool = False

    @property
    def failed(self) -> bool:
        return self.error is not None and not self.results

    @property
    def query_label(self) -> str:
        return " | ".join(self.queries)


def as_search_error(provider: str, error: BaseException | None) -> SearchClientError:
    """Wrap an untyped failure (transport, timeout, parsing) as a search error."""
    if isinstance(error, SearchClientError):
        return error
    return SearchUpstreamError(provider, f"{provider} request failed: {error}")


def default_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.RETRY_MAX_ATTEMPTS,
        initial_delay=settings.RETRY_INITIAL_DELAY_SECONDS,
        max_delay=settings.RETRY_MAX_DELAY_SECONDS,
        backoff_multiplier=settings.RETRY_BACKOFF_MULTIPLIER,
    )


class BaseSearchClient:
    """Base class for provider clients.

    Subclasses set ``PROVIDER`` and ``MIN_INTERVAL`` (seconds between calls,
    from the provider's published quota).
    """

    PROVIDER: str = "search"
    MIN_INTERVAL: float = 0.0
    AUTH_HINT: str = ""

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
        rate_limiter: RateLimiter | None = None,
        retry_policy: RetryPolicy | None = None,
        cache: SearchCache | None = None,
    ) -> None:
        self.timeout = timeout or settings.SEARCH_TIMEOUT_SECONDS
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=self.timeout)
        self.rate_limiter = rate_limiter or RateLimiter(min_interval=self.MIN_INTERVAL)
        self.retry_policy = retry_policy or default_retry_policy()
        self.cache = cache

    async def close(self) -> None:
        """Close underlying HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Rate-limited HTTP request (patched in tests)."""
        await self.rate_limiter.wait()
        return await self._client.request(method, url, **kwargs)

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Map a non-2xx response onto the typed search errors."""
        status = response.status_code
        if status < 400:
            return

        body = response.text[:200]
        if status in (401, 403):
            raise SearchAuthenticationError(
                self.PROVIDER,
                f"{self.PROVIDER} API authentication failed ({status}). {self.AUTH_HINT}".strip(),
                status,
            )
        if status == 429:
            raise SearchRateLimitError(
                self.PROVIDER, f"{self.PROVIDER} API rate limit exceeded (429)", status
            )
        if status == 400:
            raise SearchBadRequestError(
                self.PROVIDER, f"{self.PROVIDER} API bad request: {body}", status
            )
        raise SearchUpstreamError(
            self.PROVIDER, f"{self.PROVIDER} API error ({status}): {body}", status
        )

    async def _cached_batch(
        self,
        search_type: str,
        params: dict[str, Any],
        item_model: type[ItemT],
        fetch: Callable[[], Awaitable[SearchBatch[ItemT]]],
    ) -> SearchBatch[ItemT]:
        return await cached_batch(
            self.cache, self.PROVIDER, search_type, params, item_model, fetch
        )


async def cached_batch(
    cache: SearchCache | None,
    source_api: str,
    search_type: str,
    params: dict[str, Any],
    item_model: type[ItemT],
    fetch: Callable[[], Awaitable[SearchBatch[ItemT]]],
) -> SearchBatch[ItemT]:
    """Serve ``fetch()`` through the result cache.

    Only complete, error-free batches are written back. Cache failures never surface
    here; the cache logs and degrades to a miss.
    """
    queries = list(params.get("queries", []))
    if cache is not None:
        cached = await cache.get(search_type, params)
        if cached is not None:
            try:
                results = [item_model.model_validate(r) for r in cached.results]
            except ValidationError as e:
                logger.warning("search_cache_payload_invalid", provider=source_api, error=str(e))
            else:
                logger.info(
                    "search_cache_hit",
                    provider=source_api,
                    search_type=search_type,
                    results=len(results),
                )
                return SearchBatch(queries=queries, results=results, from_cache=True)

    batch = await fetch()

    if cache is not None and batch.error is None and not batch.partial:
        await cache.put(
            search_type,
            params,
            [r.model_dump(mode="json") for r in batch.results],
            source_api,
        )
    return batch


__all__ = [
    "BaseSearchClient",
    "SearchBatch",
    "as_search_error",
    "cached_batch",
    "default_retry_policy",
]
