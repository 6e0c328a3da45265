"""Shared two-phase machinery for the channel agents.

Phase 1 fetches raw items from a channel client. Phase 2 sends them to the
AI gateway for similarity scoring. Phase 1 failures become ``ChannelFailure``
(completeness 0); Phase 2 failures degrade to unscored findings.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

import structlog
from pydantic import BaseModel, Field

from ..core.exceptions import (
    AIConfigurationError,
    SearchAuthenticationError,
    SearchBadRequestError,
    SearchClientError,
    SearchNotConfiguredError,
    SearchRateLimitError,
    SearchUpstreamError,
)
from ..models.novelty import (
    AgentType,
    ChannelFailure,
    ChannelOutcome,
    ChannelSuccess,
    FailureReason,
    GraduatedTruthScores,
    NoveltyCheckRequest,
    NoveltyFinding,
    NoveltyResult,
)
from ..services.llm.ai_gateway import AIGateway
from ..utils.llm_json import ParseError, parse_model_output

logger = structlog.get_logger(__name__)

AnalysisT = TypeVar("AnalysisT", bound=BaseModel)

MAX_FINDINGS = 10

# Real data was fetched but the model could not score it
UNSCORED_TRUTH = GraduatedTruthScores(
    objective_truth=0.6, practical_truth=0.5, completeness=0.4, contextual_scope=0.5
)
UNSCORED_CONFIDENCE = 0.3

ANTI_HALLUCINATION = (
    "CRITICAL: Base your analysis ONLY on the results provided above. Do not invent or "
    "imagine products or patents that aren't in the results. Be honest about what the "
    "results do and don't tell us."
)

TRUTH_SCORES_SCHEMA = """  "truth_scores": {
    "objective_truth": number (0-1, based on verifiable search data),
    "practical_truth": number (0-1, how actionable for the inventor),
    "completeness": number (0-1, how well search results cover the space),
    "contextual_scope": number (0-1, relevance to user's specific context)
  }"""


class AnalysisBase(BaseModel):
    """Fields every channel analysis reply carries."""

    is_novel: bool
    confidence: float = Field(default=0.5)
    summary: str = ""
    truth_scores: GraduatedTruthScores


_REASONS: tuple[tuple[type[SearchClientError], FailureReason], ...] = (
    (SearchNotConfiguredError, FailureReason.NOT_CONFIGURED),
    (SearchAuthenticationError, FailureReason.AUTHENTICATION),
    (SearchRateLimitError, FailureReason.RATE_LIMITED),
    (SearchBadRequestError, FailureReason.BAD_REQUEST),
    (SearchUpstreamError, FailureReason.UPSTREAM),
)


def failure_reason(error: BaseException | None) -> FailureReason:
    for error_type, reason in _REASONS:
        if isinstance(error, error_type):
            return reason
    return FailureReason.UNKNOWN


def format_invention(request: NoveltyCheckRequest) -> str:
    """Markdown block describing the invention for analysis prompts."""
    features = ", ".join(request.key_features) or "Not provided"
    return (
        f"- **Name**: {request.invention_name}\n"
        f"- **Description**: {request.description}\n"
        f"- **Problem Statement**: {request.problem_statement or 'Not provided'}\n"
        f"- **Target Audience**: {request.target_audience or 'Not provided'}\n"
        f"- **Key Features**: {features}"
    )


def format_queries(queries: Sequence[str]) -> str:
    return "\n".join(f'{i}. "{q}"' for i, q in enumerate(queries, start=1))


def rank_findings(findings: list[NoveltyFinding], limit: int = MAX_FINDINGS) -> list[NoveltyFinding]:
    """Most similar first, capped at ``limit``."""
    return sorted(findings, key=lambda f: f.similarity_score, reverse=True)[:limit]


class ChannelAgent:
    """Base class for web, retail and patent agents.

    Subclasses set ``AGENT_TYPE`` and implement ``run``.
    """

    AGENT_TYPE: AgentType
    MODEL = "claude-3-haiku-20240307"
    MAX_TOKENS = 2048

    def __init__(self, gateway: AIGateway) -> None:
        self.gateway = gateway

    async def run(self, request: NoveltyCheckRequest, queries: Sequence[str] | None = None) -> ChannelOutcome:
        raise NotImplementedError

    def _failure(
        self,
        reason: FailureReason,
        message: str,
        summary: str,
        query_used: str,
    ) -> ChannelFailure:
        logger.warning(
            "channel_failed", agent=self.AGENT_TYPE.value, reason=reason.value, message=message
        )
        return ChannelFailure(
            reason=reason,
            message=message,
            result=NoveltyResult(
                agent_type=self.AGENT_TYPE,
                is_novel=False,
                confidence=0.0,
                findings=[],
                summary=summary,
                truth_scores=GraduatedTruthScores.failed(),
                search_query_used=query_used,
            ),
        )

    def _search_failure(
        self, error: SearchClientError | None, summary_prefix: str, query_used: str
    ) -> ChannelFailure:
        message = str(error) if error is not None else "unknown error"
        return self._failure(
            failure_reason(error), message, f"{summary_prefix}: {message}", query_used
        )

    def _success(
        self,
        *,
        is_novel: bool,
        confidence: float,
        findings: list[NoveltyFinding],
        summary: str,
        truth_scores: GraduatedTruthScores,
        query_used: str,
    ) -> ChannelSuccess:
        return ChannelSuccess(
            result=NoveltyResult(
                agent_type=self.AGENT_TYPE,
                is_novel=is_novel,
                confidence=confidence,
                findings=findings,
                summary=summary,
                truth_scores=truth_scores,
                search_query_used=query_used,
            )
        )

    def _unscored(self, findings: list[NoveltyFinding], summary: str, query_used: str) -> ChannelSuccess:
        """Findings without model scores, used when analysis fails."""
        return self._success(
            is_novel=False,
            confidence=UNSCORED_CONFIDENCE,
            findings=findings[:MAX_FINDINGS],
            summary=summary,
            truth_scores=UNSCORED_TRUTH,
            query_used=query_used,
        )

    async def _analyze(self, prompt: str, schema: type[AnalysisT]) -> AnalysisT | ParseError:
        """Run the Phase 2 analysis prompt.

        Provider errors are reported as ``ParseError`` so callers take the
        unscored path. Only ``AIConfigurationError`` propagates.
        """
        try:
            response = await self.gateway.create_completion(
                prompt, model=self.MODEL, max_tokens=self.MAX_TOKENS
            )
        except AIConfigurationError:
            raise
        except Exception as e:
            logger.error("channel_analysis_failed", agent=self.AGENT_TYPE.value, error=str(e))
            return ParseError(reason=f"completion failed: {e}")

        logger.info(
            "channel_analysis_completed",
            agent=self.AGENT_TYPE.value,
            provider=response.provider,
            model=response.model,
        )
        return parse_model_output(response.text, schema)


__all__ = [
    "ANTI_HALLUCINATION",
    "AnalysisBase",
    "ChannelAgent",
    "MAX_FINDINGS",
    "TRUTH_SCORES_SCHEMA",
    "UNSCORED_CONFIDENCE",
    "UNSCORED_TRUTH",
    "failure_reason",
    "format_invention",
    "format_queries",
    "rank_findings",
]
