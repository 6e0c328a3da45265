"""Novelty assessment data model shared by agents, aggregator and API.

Each channel agent returns a ``ChannelOutcome``: either ``ChannelSuccess``
or ``ChannelFailure``. A failure always carries a result whose completeness
is exactly 0, so the response shape stays uniform for consumers that only
read truth scores.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, Field, field_validator, model_validator


def _clamp_unit(value: Any) -> float:
    """Coerce a loosely typed score into [0, 1]; missing or invalid -> 0."""
    if value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number:  # NaN
        return 0.0
    return min(max(number, 0.0), 1.0)


class AgentType(str, Enum):
    """The three independent search channels."""

    WEB = "web_search"
    RETAIL = "retail_search"
    PATENT = "patent_search"

    @property
    def cache_type(self) -> str:
        """Search type used as the cache key prefix ("web", "retail", "patent")."""
        return self.value.removesuffix("_search")


class RiskLevel(str, Enum):
    """Discrete decision state derived by the aggregator."""

    HIGH_RISK = "high_risk"
    MODERATE_RISK = "moderate_risk"
    LOW_RISK = "low_risk"
    INCOMPLETE = "incomplete"


class FailureReason(str, Enum):
    """Why a channel produced no usable data."""

    NOT_CONFIGURED = "not_configured"
    AUTHENTICATION = "authentication"
    RATE_LIMITED = "rate_limited"
    BAD_REQUEST = "bad_request"
    UPSTREAM = "upstream"
    UNKNOWN = "unknown"


class NoveltyCheckRequest(BaseModel):
    """Invention submitted for a novelty check."""

    invention_name: str = Field(..., min_length=1, max_length=300, description="Invention name")
    description: str = Field(..., min_length=1, max_length=10000, description="Free-text description")
    problem_statement: str | None = Field(default=None, description="Problem the invention solves")
    target_audience: str | None = Field(default=None, description="Intended users")
    key_features: list[str] = Field(default_factory=list, description="Ordered key features")

    model_config = {"frozen": True}


class ExpandedInvention(BaseModel):
    """AI-enriched invention profile with per-channel query sets.

    List fields are truncated to their caps instead of rejected, so a model
    that over-delivers still produces a usable profile.
    """

    expanded_description: str = Field(..., min_length=1)
    key_features: list[str] = Field(default_factory=list)
    product_category: str = Field(default="General")
    differentiators: list[str] = Field(default_factory=list)
    web_queries: list[str] = Field(..., min_length=1)
    retail_queries: list[str] = Field(default_factory=list)
    patent_queries: list[str] = Field(default_factory=list)

    @field_validator(
        "key_features", "differentiators", "web_queries", "retail_queries", "patent_queries",
        mode="before",
    )
    @classmethod
    def _cap_lists(cls, value: Any) -> Any:
        if isinstance(value, list):
            cleaned = [str(v).strip() for v in value if isinstance(v, str) and v.strip()]
            return cleaned[:5]
        return value

    @field_validator("product_category", mode="before")
    @classmethod
    def _default_category(cls, value: Any) -> Any:
        return value or "General"

    @model_validator(mode="after")
    def _default_retail_queries(self) -> "ExpandedInvention":
        if not self.retail_queries:
            self.retail_queries = self.web_queries[:3]
        return self


class NoveltyFinding(BaseModel):
    """One external result, scored against the invention by the analysis step."""

    title: str
    description: str = ""
    url: str | None = None
    similarity_score: float = Field(default=0.0, ge=0.0, le=1.0)
    source: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("similarity_score", mode="before")
    @classmethod
    def _clamp_similarity(cls, value: Any) -> float:
        return _clamp_unit(value)


class GraduatedTruthScores(BaseModel):
    """Four independent 0-1 confidence axes.

    completeness == 0 marks a channel whose API call failed or returned no
    usable data.
    """

    objective_truth: float = Field(default=0.0, ge=0.0, le=1.0)
    practical_truth: float = Field(default=0.0, ge=0.0, le=1.0)
    completeness: float = Field(default=0.0, ge=0.0, le=1.0)
    contextual_scope: float = Field(default=0.0, ge=0.0, le=1.0)

    @field_validator(
        "objective_truth", "practical_truth", "completeness", "contextual_scope", mode="before"
    )
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return _clamp_unit(value)

    @classmethod
    def failed(cls) -> "GraduatedTruthScores":
        """All-zero scores used for a failed channel."""
        return cls()

    @classmethod
    def average(cls, scores: list["GraduatedTruthScores"]) -> "GraduatedTruthScores":
        """Per-axis mean of several score sets."""
        if not scores:
            return cls()
        count = len(scores)
        return cls(
            objective_truth=sum(s.objective_truth for s in scores) / count,
            practical_truth=sum(s.practical_truth for s in scores) / count,
            completeness=sum(s.completeness for s in scores) / count,
            contextual_scope=sum(s.contextual_scope for s in scores) / count,
        )


class NoveltyResult(BaseModel):
    """Per-channel result."""

    agent_type: AgentType
    is_novel: bool
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    findings: list[NoveltyFinding] = Field(default_factory=list)
    summary: str = ""
    truth_scores: GraduatedTruthScores = Field(default_factory=GraduatedTruthScores)
    search_query_used: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        return _clamp_unit(value)

    @property
    def max_similarity(self) -> float:
        return max((f.similarity_score for f in self.findings), default=0.0)


class ChannelSuccess(BaseModel):
    """A channel that produced data (possibly zero findings)."""

    status: Literal["success"] = "success"
    result: NoveltyResult

    @property
    def failed(self) -> bool:
        # A successful call can still carry the completeness sentinel
        return self.result.truth_scores.completeness == 0


class ChannelFailure(BaseModel):
    """A channel whose data acquisition failed or was never attempted."""

    status: Literal["failed"] = "failed"
    reason: FailureReason
    message: str
    result: NoveltyResult

    @model_validator(mode="after")
    def _enforce_sentinel(self) -> "ChannelFailure":
        if self.result.truth_scores.completeness != 0:
            raise ValueError("failed channel result must carry completeness == 0")
        return self

    @property
    def failed(self) -> bool:
        return True


ChannelOutcome = Union[ChannelSuccess, ChannelFailure]


class ChannelStatus(BaseModel):
    """Per-channel status reported alongside the aggregate response."""

    agent_type: AgentType
    failed: bool
    reason: FailureReason | None = None
    message: str | None = None


class NoveltyCheckResponse(BaseModel):
    """Aggregate verdict across the three channels."""

    overall_novelty_score: float = Field(..., ge=0.0, le=1.0)
    risk_level: RiskLevel
    web_search_result: NoveltyResult
    retail_search_result: NoveltyResult
    patent_search_result: NoveltyResult
    recommendation: str
    next_steps: list[str]
    truth_scores: GraduatedTruthScores
    channel_status: list[ChannelStatus] = Field(default_factory=list)


class CompletionResult(BaseModel):
    """Text returned by the AI gateway and which provider produced it."""

    text: str
    provider: Literal["anthropic", "openai"]
    model: str


__all__ = [
    "AgentType",
    "ChannelFailure",
    "ChannelOutcome",
    "ChannelStatus",
    "ChannelSuccess",
    "CompletionResult",
    "ExpandedInvention",
    "FailureReason",
    "GraduatedTruthScores",
    "NoveltyCheckRequest",
    "NoveltyCheckResponse",
    "NoveltyFinding",
    "NoveltyResult",
    "RiskLevel",
]
