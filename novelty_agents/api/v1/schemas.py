"""API request/response schemas for novelty endpoints.

Domain models (NoveltyCheckRequest, ExpandedInvention, NoveltyCheckResponse)
are reused directly; only the envelope types live here.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from ...models.novelty import ExpandedInvention, NoveltyCheckRequest

SearchType = Literal["patent", "web", "retail"]


class NoveltyCheckPayload(NoveltyCheckRequest):
    """Request model for POST /v1/novelty/check.

    Attributes:
        expanded: Optional pre-computed expansion (skips per-agent query generation)
        user_id: Caller-supplied identity, used only for the memory log
        project_id: When set together with user_id, the result is logged to AI memory
    """

    expanded: ExpandedInvention | None = Field(
        default=None, description="Pre-computed expansion from POST /v1/novelty/expand"
    )
    user_id: str | None = Field(default=None, max_length=64, description="Caller identity")
    project_id: str | None = Field(default=None, max_length=64, description="Project to log to")

    def to_request(self) -> NoveltyCheckRequest:
        return NoveltyCheckRequest.model_validate(
            self.model_dump(include=set(NoveltyCheckRequest.model_fields))
        )


class CacheClearResponse(BaseModel):
    """Response model for DELETE /v1/novelty/cache."""

    deleted: int = Field(..., ge=0, description="Rows removed")
    search_type: SearchType | None = Field(default=None, description="Type cleared (None = all)")


__all__ = ["CacheClearResponse", "NoveltyCheckPayload", "SearchType"]
