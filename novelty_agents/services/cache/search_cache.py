"""Search result cache backed by the ``search_cache`` table.

Policy:
    - patent: never expires, never evicted (patents are permanent public record)
    - web / retail: expire after CACHE_EXPIRY_DAYS and are capped at a maximum
      row count per type; the oldest rows by created_at are evicted first (FIFO)

The cache is an optimization only. Every database or driver error (asyncpg
raises plain OSError when the server is unreachable) is logged and turned
into a miss (reads) or a no-op (writes); nothing here raises to the caller.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

import structlog
from pydantic import BaseModel, Field
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...core.config import settings
from ...database.models import SearchCacheEntry, utcnow

logger = structlog.get_logger(__name__)

SEARCH_TYPES = ("patent", "web", "retail")
NEVER_EXPIRES = frozenset({"patent"})

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class CachedSearchResult(BaseModel):
    """Detached copy of a cache row."""

    query_hash: str
    search_type: str
    query_params: dict[str, Any]
    results: list[Any]
    result_count: int
    source_api: str
    created_at: datetime
    expires_at: datetime | None = None


class CacheTypeStats(BaseModel):
    count: int = 0
    oldest: datetime | None = None


class CacheStats(BaseModel):
    patent: CacheTypeStats = Field(default_factory=CacheTypeStats)
    web: CacheTypeStats = Field(default_factory=CacheTypeStats)
    retail: CacheTypeStats = Field(default_factory=CacheTypeStats)


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def _string_hash(text: str) -> int:
    """32-bit signed ``h = h * 31 + code`` hash over UTF-16 code units."""
    data = text.encode("utf-16-le")
    h = 0
    for i in range(0, len(data), 2):
        code = data[i] | (data[i + 1] << 8)
        h = ((h << 5) - h + code) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


def generate_query_hash(search_type: str, params: dict[str, Any]) -> str:
    """Derive the cache key for a search.

    Keys are serialized sorted, so field order never changes the key.

    Example:
        >>> generate_query_hash("web", {"a": 1, "b": 2}) == generate_query_hash("web", {"b": 2, "a": 1})
        True
    """
    normalized = json.dumps(
        params, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    )
    return f"{search_type}_{_to_base36(abs(_string_hash(normalized)))}"


class SearchCache:
    """Shared, read-mostly result cache.

    Args:
        session_factory: Async session factory
        expiry: Lifetime of web/retail entries (default CACHE_EXPIRY_DAYS)
        storage_limits: Max rows per search type, None = unbounded
        clock: Returns the current naive UTC time (patched in tests)

    Example:
        >>> cache = SearchCache(AsyncSessionLocal)
        >>> await cache.put("web", {"queries": ["solar charger"]}, results, "Tavily")
        >>> hit = await cache.get("web", {"queries": ["solar charger"]})
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        expiry: timedelta | None = None,
        storage_limits: dict[str, int | None] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self.expiry = expiry or timedelta(days=settings.CACHE_EXPIRY_DAYS)
        self.storage_limits = (
            storage_limits if storage_limits is not None else settings.cache_storage_limits
        )
        self._clock = clock

    async def get(self, search_type: str, query_params: dict[str, Any]) -> CachedSearchResult | None:
        """Return the cached entry, or None on miss, expiry or error.

        An expired row is deleted as part of the read.
        """
        query_hash = generate_query_hash(search_type, query_params)
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(SearchCacheEntry).where(
                        SearchCacheEntry.query_hash == query_hash,
                        SearchCacheEntry.search_type == search_type,
                    )
                )
                entry = result.scalar_one_or_none()
                if entry is None:
                    return None

                if entry.expires_at is not None and entry.expires_at < self._clock():
                    await session.delete(entry)
                    await session.commit()
                    logger.info("search_cache_expired", query_hash=query_hash)
                    return None

                return CachedSearchResult(
                    query_hash=entry.query_hash,
                    search_type=entry.search_type,
                    query_params=entry.query_params,
                    results=entry.results,
                    result_count=entry.result_count,
                    source_api=entry.source_api,
                    created_at=entry.created_at,
                    expires_at=entry.expires_at,
                )
        except SQLAlchemyError as e:
            logger.warning("search_cache_read_failed", query_hash=query_hash, error=str(e))
            return None
        except Exception as e:
            logger.error("search_cache_read_unexpected_error", query_hash=query_hash, error=str(e))
            return None

    async def put(
        self,
        search_type: str,
        query_params: dict[str, Any],
        results: list[Any],
        source_api: str,
    ) -> None:
        """Upsert results for a search, then enforce the storage limit."""
        query_hash = generate_query_hash(search_type, query_params)
        now = self._clock()
        expires_at = None if search_type in NEVER_EXPIRES else now + self.expiry

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(SearchCacheEntry).where(SearchCacheEntry.query_hash == query_hash)
                )
                entry = result.scalar_one_or_none()
                if entry is None:
                    session.add(
                        SearchCacheEntry(
                            query_hash=query_hash,
                            search_type=search_type,
                            query_params=query_params,
                            results=results,
                            result_count=len(results),
                            source_api=source_api,
                            created_at=now,
                            expires_at=expires_at,
                        )
                    )
                else:
                    entry.search_type = search_type
                    entry.query_params = query_params
                    entry.results = results
                    entry.result_count = len(results)
                    entry.source_api = source_api
                    entry.expires_at = expires_at
                await session.commit()
            logger.info(
                "search_cache_stored",
                query_hash=query_hash,
                search_type=search_type,
                results=len(results),
            )
        except SQLAlchemyError as e:
            logger.warning("search_cache_write_failed", query_hash=query_hash, error=str(e))
            return
        except Exception as e:
            logger.error("search_cache_write_unexpected_error", query_hash=query_hash, error=str(e))
            return

        await self.enforce_storage_limit(search_type)

    async def enforce_storage_limit(self, search_type: str) -> int:
        """Delete the oldest rows of a type beyond its limit.

        Returns:
            Number of rows deleted
        """
        limit = self.storage_limits.get(search_type)
        if limit is None:
            return 0

        try:
            async with self._session_factory() as session:
                count = await session.scalar(
                    select(func.count())
                    .select_from(SearchCacheEntry)
                    .where(SearchCacheEntry.search_type == search_type)
                )
                excess = (count or 0) - limit
                if excess <= 0:
                    return 0

                oldest_ids = (
                    await session.scalars(
                        select(SearchCacheEntry.id)
                        .where(SearchCacheEntry.search_type == search_type)
                        .order_by(SearchCacheEntry.created_at.asc(), SearchCacheEntry.id.asc())
                        .limit(excess)
                    )
                ).all()
                await session.execute(
                    delete(SearchCacheEntry).where(SearchCacheEntry.id.in_(oldest_ids))
                )
                await session.commit()
                logger.info("search_cache_evicted", search_type=search_type, deleted=excess)
                return excess
        except SQLAlchemyError as e:
            logger.warning("search_cache_eviction_failed", search_type=search_type, error=str(e))
            return 0
        except Exception as e:
            logger.error(
                "search_cache_eviction_unexpected_error", search_type=search_type, error=str(e)
            )
            return 0

    async def clear(self, search_type: str | None = None) -> int:
        """Delete all entries, or all entries of one type.

        Returns:
            Number of rows deleted
        """
        statement = delete(SearchCacheEntry)
        if search_type is not None:
            statement = statement.where(SearchCacheEntry.search_type == search_type)
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                await session.commit()
                deleted = result.rowcount or 0
            logger.info("search_cache_cleared", search_type=search_type or "all", deleted=deleted)
            return deleted
        except SQLAlchemyError as e:
            logger.warning("search_cache_clear_failed", search_type=search_type, error=str(e))
            return 0
        except Exception as e:
            logger.error(
                "search_cache_clear_unexpected_error", search_type=search_type, error=str(e)
            )
            return 0

    async def stats(self) -> CacheStats:
        """Row count and oldest created_at per search type."""
        stats = CacheStats()
        try:
            async with self._session_factory() as session:
                rows = await session.execute(
                    select(
                        SearchCacheEntry.search_type,
                        func.count(),
                        func.min(SearchCacheEntry.created_at),
                    ).group_by(SearchCacheEntry.search_type)
                )
                for search_type, count, oldest in rows:
                    if search_type in SEARCH_TYPES:
                        setattr(stats, search_type, CacheTypeStats(count=count, oldest=oldest))
        except SQLAlchemyError as e:
            logger.warning("search_cache_stats_failed", error=str(e))
        except Exception as e:
            logger.error("search_cache_stats_unexpected_error", error=str(e))
        return stats


__all__ = [
    "CacheStats",
    "CachedSearchResult",
    "SearchCache",
    "generate_query_hash",
]
