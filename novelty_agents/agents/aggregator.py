"""Novelty aggregator: run the three channel agents and derive one verdict.

Scoring:
    channel score = 0.5 if the channel failed, 1.0 if novel,
                    else 1 - max similarity of its findings
    overall       = 0.3 * web + 0.3 * retail + 0.4 * patent

Risk level is priority ordered, not a score threshold. A high-similarity
finding wins even when other channels failed; missing channels only matter
once no finding crosses the high threshold.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import RiskThresholds, settings
from ..core.exceptions import AIConfigurationError
from ..database.repositories.ai_memory_repository import AIMemoryRepository
from ..models.novelty import (
    AgentType,
    ChannelFailure,
    ChannelOutcome,
    ChannelStatus,
    ExpandedInvention,
    FailureReason,
    GraduatedTruthScores,
    NoveltyCheckRequest,
    NoveltyCheckResponse,
    NoveltyResult,
    RiskLevel,
)
from ..services.cache.search_cache import SearchCache
from ..services.llm.ai_gateway import AIGateway
from ..services.search.ebay_client import EbayClient
from ..services.search.patent_search import PatentSearchService
from ..services.search.patentsview_client import PatentsViewClient
from ..services.search.ptab_client import PTABClient
from ..services.search.tavily_client import TavilyClient
from .base import ChannelAgent
from .patent_agent import PatentSearchAgent
from .query_expander import QueryExpander
from .retail_agent import RetailSearchAgent
from .web_agent import WebSearchAgent

logger = structlog.get_logger(__name__)

CHANNEL_WEIGHTS: dict[AgentType, float] = {
    AgentType.WEB: 0.3,
    AgentType.RETAIL: 0.3,
    AgentType.PATENT: 0.4,
}
UNKNOWN_CHANNEL_SCORE = 0.5

RECOMMENDATIONS: dict[RiskLevel, tuple[str, list[str]]] = {
    RiskLevel.HIGH_RISK: (
        "Significant prior art or existing products found. At least one result closely "
        "matches your invention, so proceeding as-is carries real risk.",
        [
            "Review the highest-similarity findings in detail",
            "Consult a patent attorney before investing further",
            "Identify features that clearly differentiate your invention",
            "Consider pivoting to an underserved niche or alternative approach",
        ],
    ),
    RiskLevel.MODERATE_RISK: (
        "Some similar products or patents exist. There may still be room for a "
        "differentiated version of your invention.",
        [
            "Analyze the closest matches to find differentiation angles",
            "Document what makes your invention unique",
            "Conduct a professional prior art search",
            "Validate the differentiated concept with target users",
        ],
    ),
    RiskLevel.LOW_RISK: (
        "Your invention appears to be novel. No strong prior art or existing products "
        "were found across web, retail and patent searches.",
        [
            "Consider filing a provisional patent application",
            "Conduct a professional prior art search with a patent attorney",
            "Start prototyping and testing with target users",
            "Validate market demand through an MVP",
        ],
    ),
    RiskLevel.INCOMPLETE: (
        "We couldn't complete all searches, so this assessment is partial. Treat the "
        "results below as preliminary.",
        [
            "Retry the novelty check later",
            "Check that API credentials are configured for every search channel",
            "Search Google Patents manually for related patents",
            "Search major retail sites manually for similar products",
        ],
    ),
}


def channel_score(outcome: ChannelOutcome) -> float:
    if outcome.failed:
        return UNKNOWN_CHANNEL_SCORE
    result = outcome.result
    return 1.0 if result.is_novel else 1.0 - result.max_similarity


def overall_novelty_score(outcomes: dict[AgentType, ChannelOutcome]) -> float:
    score = sum(CHANNEL_WEIGHTS[agent] * channel_score(o) for agent, o in outcomes.items())
    return min(max(score, 0.0), 1.0)


def determine_risk_level(
    outcomes: Sequence[ChannelOutcome], thresholds: RiskThresholds | None = None
) -> RiskLevel:
    """Priority-ordered risk decision.

    1. any finding >= high threshold          -> high_risk
    2. a channel failed, no findings at all   -> incomplete
    3. a channel failed, max >= moderate      -> moderate_risk
    4. a channel failed                       -> incomplete
    5. max >= moderate                        -> moderate_risk
    6. otherwise                              -> low_risk
    """
    thresholds = thresholds or RiskThresholds()
    findings = [f for o in outcomes for f in o.result.findings]
    max_similarity = max((f.similarity_score for f in findings), default=0.0)
    any_failed = any(o.failed for o in outcomes)

    if max_similarity >= thresholds.high:
        return RiskLevel.HIGH_RISK
    if any_failed:
        if not findings:
            return RiskLevel.INCOMPLETE
        if max_similarity >= thresholds.moderate:
            return RiskLevel.MODERATE_RISK
        return RiskLevel.INCOMPLETE
    if max_similarity >= thresholds.moderate:
        return RiskLevel.MODERATE_RISK
    return RiskLevel.LOW_RISK


def channel_status(outcome: ChannelOutcome) -> ChannelStatus:
    if isinstance(outcome, ChannelFailure):
        return ChannelStatus(
            agent_type=outcome.result.agent_type,
            failed=True,
            reason=outcome.reason,
            message=outcome.message,
        )
    return ChannelStatus(
        agent_type=outcome.result.agent_type,
        failed=outcome.failed,
        reason=FailureReason.UNKNOWN if outcome.failed else None,
        message=outcome.result.summary if outcome.failed else None,
    )


def aggregate(
    web: ChannelOutcome,
    retail: ChannelOutcome,
    patent: ChannelOutcome,
    thresholds: RiskThresholds | None = None,
) -> NoveltyCheckResponse:
    """Combine three channel outcomes into the final response."""
    outcomes = {AgentType.WEB: web, AgentType.RETAIL: retail, AgentType.PATENT: patent}
    risk_level = determine_risk_level(list(outcomes.values()), thresholds)
    recommendation, next_steps = RECOMMENDATIONS[risk_level]

    return NoveltyCheckResponse(
        overall_novelty_score=overall_novelty_score(outcomes),
        risk_level=risk_level,
        web_search_result=web.result,
        retail_search_result=retail.result,
        patent_search_result=patent.result,
        recommendation=recommendation,
        next_steps=list(next_steps),
        truth_scores=GraduatedTruthScores.average([o.result.truth_scores for o in outcomes.values()]),
        channel_status=[channel_status(o) for o in outcomes.values()],
    )


class NoveltyPipeline:
    """End-to-end novelty check: expansion, three channel agents, aggregation.

    Args:
        gateway: AI completion gateway shared by every model call
        web_agent: Web channel agent
        retail_agent: Retail channel agent
        patent_agent: Patent channel agent
        expander: Query expander (defaults to one over ``gateway``)
        thresholds: Risk thresholds (defaults to settings)
        session_factory: Enables the AI memory log when given

    Example:
        >>> pipeline = NoveltyPipeline.from_settings()
        >>> response = await pipeline.run_novelty_check(request, project_id="p-1", user_id="u-1")
        >>> response.risk_level
        <RiskLevel.LOW_RISK: 'low_risk'>
    """

    def __init__(
        self,
        gateway: AIGateway,
        web_agent: WebSearchAgent,
        retail_agent: RetailSearchAgent,
        patent_agent: PatentSearchAgent,
        *,
        expander: QueryExpander | None = None,
        thresholds: RiskThresholds | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        cache: SearchCache | None = None,
    ) -> None:
        self.gateway = gateway
        self.web_agent = web_agent
        self.retail_agent = retail_agent
        self.patent_agent = patent_agent
        self.expander = expander or QueryExpander(gateway)
        self.thresholds = thresholds or settings.risk_thresholds
        self._session_factory = session_factory
        self.cache = cache

    @classmethod
    def from_settings(
        cls, session_factory: async_sessionmaker[AsyncSession] | None = None
    ) -> "NoveltyPipeline":
        """Wire process-wide clients once from environment settings."""
        if session_factory is None:
            from ..database.session import AsyncSessionLocal

            session_factory = AsyncSessionLocal

        cache = SearchCache(session_factory)
        gateway = AIGateway.from_settings()
        patent_service = PatentSearchService(
            PatentsViewClient.from_settings(),
            PTABClient.from_settings(),
            cache=cache,
        )
        return cls(
            gateway,
            WebSearchAgent(TavilyClient.from_settings(cache=cache), gateway),
            RetailSearchAgent(EbayClient.from_settings(cache=cache), gateway),
            PatentSearchAgent(patent_service, gateway),
            session_factory=session_factory,
            cache=cache,
        )

    async def close(self) -> None:
        await self.web_agent.client.close()
        await self.retail_agent.client.close()
        await self.patent_agent.service.close()

    async def expand(self, request: NoveltyCheckRequest) -> ExpandedInvention:
        return await self.expander.expand(request)

    async def run_novelty_check(
        self,
        request: NoveltyCheckRequest,
        expanded: ExpandedInvention | None = None,
        *,
        user_id: str | None = None,
        project_id: str | None = None,
    ) -> NoveltyCheckResponse:
        """Run all three channels concurrently and aggregate.

        Raises:
            AIConfigurationError: If no AI provider is configured
        """
        if not self.gateway.available_providers():
            raise AIConfigurationError(
                "Both Anthropic and OpenAI are unavailable. "
                "Check API keys: ANTHROPIC_API_KEY and OPENAI_API_KEY"
            )

        logger.info(
            "novelty_check_started",
            invention=request.invention_name,
            expanded=expanded is not None,
        )
        web, retail, patent = await asyncio.gather(
            self._run_agent(self.web_agent, request, expanded.web_queries if expanded else None),
            self._run_agent(
                self.retail_agent, request, expanded.retail_queries if expanded else None
            ),
            self._run_agent(
                self.patent_agent, request, expanded.patent_queries if expanded else None
            ),
        )
        response = aggregate(web, retail, patent, self.thresholds)

        logger.info(
            "novelty_check_completed",
            risk_level=response.risk_level.value,
            overall_score=round(response.overall_novelty_score, 3),
            failed_channels=[s.agent_type.value for s in response.channel_status if s.failed],
        )

        if project_id and user_id:
            await self._record_memory(user_id, project_id, response)
        elif project_id:
            logger.info(
                "novelty_check_record_skipped", project_id=project_id, reason="missing user_id"
            )
        return response

    async def _run_agent(
        self,
        agent: ChannelAgent,
        request: NoveltyCheckRequest,
        queries: Sequence[str] | None,
    ) -> ChannelOutcome:
        """Contain unexpected agent errors at the channel boundary."""
        try:
            return await agent.run(request, queries)
        except AIConfigurationError:
            raise
        except Exception as e:
            logger.exception("channel_agent_crashed", agent=agent.AGENT_TYPE.value)
            return ChannelFailure(
                reason=FailureReason.UNKNOWN,
                message=str(e),
                result=NoveltyResult(
                    agent_type=agent.AGENT_TYPE,
                    is_novel=False,
                    summary=f"Error during {agent.AGENT_TYPE.value.replace('_', ' ')} analysis: {e}",
                    truth_scores=GraduatedTruthScores.failed(),
                    search_query_used=request.invention_name,
                ),
            )

    async def _record_memory(
        self, user_id: str, project_id: str, response: NoveltyCheckResponse
    ) -> None:
        if self._session_factory is None:
            return
        try:
            async with self._session_factory() as session:
                await AIMemoryRepository(session).record_novelty_check(user_id, project_id, response)
        except SQLAlchemyError as e:
            logger.error("novelty_check_record_failed", project_id=project_id, error=str(e))
        except Exception as e:
            logger.error(
                "novelty_check_record_unexpected_error", project_id=project_id, error=str(e)
            )


__all__ = [
    "CHANNEL_WEIGHTS",
    "RECOMMENDATIONS",
    "NoveltyPipeline",
    "aggregate",
    "channel_score",
    "channel_status",
    "determine_risk_level",
    "overall_novelty_score",
]
