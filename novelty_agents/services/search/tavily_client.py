"""Tavily web search client.

Two-phase discovery:
    1. The first two queries run against product discovery domains
       (retail and crowdfunding sites), where existing products usually surface.
    2. Every query runs again without a domain restriction.

Results below MIN_RELEVANCE_SCORE are dropped, the rest are deduplicated by
URL and sorted by Tavily's relevance score. That score measures relevance
to the query, not similarity to the invention, which is scored later.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog
from pydantic import BaseModel, Field

from ...core.config import settings
from ...core.exceptions import (
    SearchAuthenticationError,
    SearchClientError,
    SearchNotConfiguredError,
    SearchRateLimitError,
)
from ...core.retry import with_retry
from .base import BaseSearchClient, SearchBatch, as_search_error

logger = structlog.get_logger(__name__)

PRODUCT_DISCOVERY_DOMAINS: tuple[str, ...] = (
    "amazon.com",
    "ebay.com",
    "walmart.com",
    "target.com",
    "etsy.com",
    "aliexpress.com",
    "kickstarter.com",
    "indiegogo.com",
    "producthunt.com",
    "bestbuy.com",
)

MIN_RELEVANCE_SCORE = 0.5
MAX_QUERY_LENGTH = 400
NOT_CONFIGURED_MESSAGE = "TAVILY_API_KEY not configured. Get a key at https://app.tavily.com"


class TavilyResult(BaseModel):
    """Normalized Tavily hit."""

    title: str
    description: str = ""
    url: str
    score: float = Field(default=0.0, description="Tavily relevance to the query (0-1)")
    age: str | None = None


class TavilyClient(BaseSearchClient):
    """Async client for the Tavily search API.

    Args:
        api_key: Tavily API key (None = not configured)
        **kwargs: http_client, timeout, rate_limiter, retry_policy, cache

    Example:
        >>> client = TavilyClient(api_key="tvly-...")
        >>> batch = await client.run_multiple_searches(["foldable solar charger"], results_per_query=5)
        >>> batch.results[0].url
    """

    API_URL = "https://api.tavily.com/search"
    PROVIDER = "Tavily"
    AUTH_HINT = "Check TAVILY_API_KEY."

    def __init__(self, api_key: str | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.api_key = api_key

    @classmethod
    def from_settings(cls, **kwargs: Any) -> "TavilyClient":
        return cls(api_key=settings.TAVILY_API_KEY, **kwargs)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def search(
        self,
        query: str,
        *,
        max_results: int = 10,
        search_depth: str = "basic",
        include_domains: Sequence[str] | None = None,
        exclude_domains: Sequence[str] | None = None,
    ) -> list[TavilyResult]:
        """Run one Tavily search.

        Raises:
            SearchNotConfiguredError: If no API key is set
            SearchClientError: On any non-2xx response
        """
        if not self.api_key:
            raise SearchNotConfiguredError(self.PROVIDER, NOT_CONFIGURED_MESSAGE)

        body: dict[str, Any] = {
            "api_key": self.api_key,
            "query": query[:MAX_QUERY_LENGTH],
            "max_results": min(max_results, 10),
            "search_depth": search_depth,
            "include_answer": False,
            "include_raw_content": False,
        }
        if include_domains:
            body["include_domains"] = list(include_domains)[:300]
        if exclude_domains:
            body["exclude_domains"] = list(exclude_domains)[:150]

        response = await self._send("POST", self.API_URL, json=body, timeout=self.timeout)
        self._raise_for_status(response)

        results = self._parse_response(response.json())
        logger.info(
            "tavily_search_completed",
            query=query[:50],
            domains=len(include_domains or []),
            results=len(results),
        )
        return results

    @staticmethod
    def _parse_response(data: dict[str, Any]) -> list[TavilyResult]:
        results = []
        for item in data.get("results") or []:
            score = float(item.get("score") or 0.0)
            if score < MIN_RELEVANCE_SCORE or not item.get("url"):
                continue
            results.append(
                TavilyResult(
                    title=item.get("title") or "Untitled",
                    description=item.get("content") or "",
                    url=item["url"],
                    score=score,
                    age=item.get("published_date"),
                )
            )
        return results

    async def run_multiple_searches(
        self, queries: Sequence[str], results_per_query: int = 5
    ) -> SearchBatch[TavilyResult]:
        """Two-phase discovery across all queries, served through the cache."""
        query_list = [q for q in queries if q]
        params = {"queries": query_list, "results_per_query": results_per_query}
        return await self._cached_batch(
            "web",
            params,
            TavilyResult,
            lambda: self._run_phases(query_list, results_per_query),
        )

    async def _run_phases(
        self, queries: list[str], results_per_query: int
    ) -> SearchBatch[TavilyResult]:
        if not self.api_key:
            return SearchBatch(
                queries=queries,
                error=SearchNotConfiguredError(self.PROVIDER, NOT_CONFIGURED_MESSAGE),
            )

        seen: set[str] = set()
        collected: list[TavilyResult] = []
        last_error: SearchClientError | None = None

        phases: list[tuple[str, list[str], Sequence[str] | None]] = [
            ("product_domains", queries[:2], PRODUCT_DISCOVERY_DOMAINS),
            ("general_web", queries, None),
        ]
        for phase, phase_queries, domains in phases:
            logger.info("tavily_phase_started", phase=phase, queries=len(phase_queries))
            for query in phase_queries:
                outcome = await with_retry(
                    self.search,
                    query,
                    max_results=results_per_query,
                    include_domains=domains,
                    policy=self.retry_policy,
                    operation="tavily_search",
                )
                if not outcome.success:
                    last_error = as_search_error(self.PROVIDER, outcome.last_error)
                    # Credentials and quota problems affect every remaining query
                    if isinstance(last_error, (SearchAuthenticationError, SearchRateLimitError)):
                        return self._finish(queries, collected, last_error)
                    continue

                for result in outcome.data or []:
                    if result.url not in seen:
                        seen.add(result.url)
                        collected.append(result)

        return self._finish(queries, collected, last_error)

    @staticmethod
    def _finish(
        queries: list[str], collected: list[TavilyResult], last_error: SearchClientError | None
    ) -> SearchBatch[TavilyResult]:
        collected.sort(key=lambda r: r.score, reverse=True)
        return SearchBatch(
            queries=queries,
            results=collected,
            error=last_error,
        )


__all__ = [
    "MIN_RELEVANCE_SCORE",
    "NOT_CONFIGURED_MESSAGE",
    "PRODUCT_DISCOVERY_DOMAINS",
    "TavilyClient",
    "TavilyResult",
]
