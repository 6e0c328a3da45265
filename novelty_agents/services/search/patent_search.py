"""Patent channel search: PatentsView (primary) merged with PTAB (challenged).

PatentsView supplies broad coverage of granted patents. PTAB only lists
patents that were disputed, so it is queried as a supplement: its absence or
failure is logged and never fails the channel. A 400 from either source is
retried once with a simplified two-keyword query.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import structlog

from ...core.exceptions import SearchBadRequestError, SearchClientError, SearchNotConfiguredError
from ...core.retry import RetryOutcome, with_retry
from ..cache.search_cache import SearchCache
from .base import SearchBatch, as_search_error, cached_batch
from .patent_reference import (
    PatentReference,
    build_ptab_query,
    merge_patent_results,
    sanitize_keywords,
)
from .patentsview_client import NOT_CONFIGURED_MESSAGE, PatentsViewClient
from .ptab_client import ENDPOINTS, PTABClient

logger = structlog.get_logger(__name__)

MAX_PATENT_QUERIES = 5


def simplify_query(query: str) -> list[str]:
    """First two sanitized keywords of a query, used after a 400."""
    return sanitize_keywords(query.split(), limit=5)[:2]


class PatentSearchService:
    """Run patent queries against both sources and merge the results.

    Args:
        patentsview: PatentsView client (required for the channel to run)
        ptab: Optional PTAB client
        cache: Optional result cache (patent entries never expire)

    Example:
        >>> service = PatentSearchService(PatentsViewClient(api_key="..."), PTABClient(api_key="..."))
        >>> batch = await service.search(["solar panel charger", "foldable photovoltaic"])
        >>> [p.patent_number for p in batch.results if p.is_challenged]
    """

    def __init__(
        self,
        patentsview: PatentsViewClient,
        ptab: PTABClient | None = None,
        cache: SearchCache | None = None,
    ) -> None:
        self.patentsview = patentsview
        self.ptab = ptab
        self.cache = cache

    @property
    def is_configured(self) -> bool:
        return self.patentsview.is_configured

    async def close(self) -> None:
        await self.patentsview.close()
        if self.ptab is not None:
            await self.ptab.close()

    async def search(
        self, queries: Sequence[str], max_results_per_query: int = 10
    ) -> SearchBatch[PatentReference]:
        query_list = [q for q in queries if q][:MAX_PATENT_QUERIES]
        params = {"queries": query_list, "max_results_per_query": max_results_per_query}
        return await cached_batch(
            self.cache,
            "PatentsView+PTAB",
            "patent",
            params,
            PatentReference,
            lambda: self._search_sources(query_list, max_results_per_query),
        )

    async def _search_sources(
        self, queries: list[str], max_results: int
    ) -> SearchBatch[PatentReference]:
        if not self.patentsview.is_configured:
            return SearchBatch(
                queries=queries,
                error=SearchNotConfiguredError("PatentsView", NOT_CONFIGURED_MESSAGE),
            )

        granted: list[PatentReference] = []
        last_error: SearchClientError | None = None

        for query in queries:
            outcome = await self._with_simplified_retry(
                lambda terms: self.patentsview.search_patents(terms, limit=max_results),
                query.split(),
                simplify_query(query),
                operation="patentsview_search",
            )
            if outcome.success:
                granted.extend(outcome.data or [])
            else:
                last_error = as_search_error("PatentsView", outcome.last_error)
                logger.warning("patentsview_query_failed", query=query[:50], error=str(last_error))

        challenged, ptab_complete = await self._search_ptab(queries, max_results)
        merged = merge_patent_results(granted, challenged)
        partial = last_error is not None or not ptab_complete

        logger.info(
            "patent_search_completed",
            queries=len(queries),
            granted=len(granted),
            challenged=len(challenged),
            merged=len(merged),
            partial=partial,
        )
        # Partial failure still counts as success when anything came back
        return SearchBatch(
            queries=queries,
            results=merged,
            error=None if merged else last_error,
            partial=partial,
        )

    async def _search_ptab(
        self, queries: list[str], max_results: int
    ) -> tuple[list[PatentReference], bool]:
        """PTAB references and whether every endpoint answered."""
        if self.ptab is None or not self.ptab.is_configured:
            logger.info("ptab_search_skipped", reason="USPTO_API_KEY not configured")
            return [], True

        keywords = list(dict.fromkeys(word for q in queries for word in q.split()))
        lucene = build_ptab_query(keywords)
        simplified = build_ptab_query(keywords[:2])

        references: list[PatentReference] = []
        complete = True
        for endpoint in ENDPOINTS:
            outcome = await self._with_simplified_retry(
                lambda q, ep=endpoint: self.ptab.search(ep, q, limit=max_results),  # type: ignore[union-attr]
                lucene,
                simplified,
                operation=f"ptab_{endpoint}",
            )
            if outcome.success:
                references.extend(outcome.data or [])
            else:
                complete = False
                logger.warning(
                    "ptab_search_failed", endpoint=endpoint, error=str(outcome.last_error)
                )
        return references, complete

    async def _with_simplified_retry(
        self,
        call: Callable[[Any], Awaitable[list[PatentReference]]],
        query: Any,
        simplified: Any,
        *,
        operation: str,
    ) -> RetryOutcome[list[PatentReference]]:
        """Retry transient errors; on a 400, retry once with the simplified query."""
        outcome = await with_retry(call, query, policy=self.patentsview.retry_policy, operation=operation)
        if (
            not outcome.success
            and isinstance(outcome.last_error, SearchBadRequestError)
            and simplified
            and simplified != query
        ):
            logger.info("patent_query_simplified", operation=operation, simplified=str(simplified))
            outcome = await with_retry(
                call, simplified, policy=self.patentsview.retry_policy, operation=operation
            )
        return outcome


__all__ = ["MAX_PATENT_QUERIES", "PatentSearchService", "simplify_query"]
