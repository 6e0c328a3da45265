"""Database models for the novelty assessment service."""

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Float, Integer, String, Text, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Naive UTC timestamp (columns are stored without timezone)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class SearchCacheEntry(Base):
    """Cached provider results keyed by a hash of (search type, query params)."""

    __tablename__ = "search_cache"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    query_hash: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)
    search_type: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True
    )  # 'patent', 'web', 'retail'
    query_params: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    results: Mapped[list[Any]] = mapped_column(JSON, nullable=False)
    result_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    source_api: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, index=True
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True
    )  # NULL = never expires


class AIMemory(Base):
    """Append-only memory log of AI insights per user/project."""

    __tablename__ = "ai_memory"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    project_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    memory_type: Mapped[str] = mapped_column(
        String(30), nullable=False, index=True
    )  # 'insight', 'preference', 'context'
    content: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    importance_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
