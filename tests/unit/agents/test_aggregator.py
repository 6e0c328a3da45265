"""Unit tests for novelty aggregation and NoveltyPipeline."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select
from structlog.testing import capture_logs

from novelty_agents.agents.aggregator import (
    RECOMMENDATIONS,
    NoveltyPipeline,
    aggregate,
    channel_score,
    determine_risk_level,
    overall_novelty_score,
)
from novelty_agents.core.config import RiskThresholds
from novelty_agents.core.exceptions import AIConfigurationError
from novelty_agents.database.models import AIMemory
from novelty_agents.models.novelty import (
    AgentType,
    ChannelFailure,
    ChannelSuccess,
    ExpandedInvention,
    FailureReason,
    GraduatedTruthScores,
    NoveltyFinding,
    NoveltyResult,
    RiskLevel,
)

NO_DATA_TRUTH = GraduatedTruthScores(
    objective_truth=0.7, practical_truth=0.6, completeness=0.4, contextual_scope=0.5
)


def success(agent_type: AgentType, similarities=(), is_novel: bool | None = None):
    findings = [
        NoveltyFinding(title=f"Finding {i}", similarity_score=s, source="test")
        for i, s in enumerate(similarities)
    ]
    return ChannelSuccess(
        result=NoveltyResult(
            agent_type=agent_type,
            is_novel=not findings if is_novel is None else is_novel,
            confidence=0.8,
            findings=findings,
            summary="ok",
            truth_scores=NO_DATA_TRUTH,
        )
    )


def failure(agent_type: AgentType, reason: FailureReason = FailureReason.NOT_CONFIGURED):
    return ChannelFailure(
        reason=reason,
        message="not configured",
        result=NoveltyResult(
            agent_type=agent_type,
            is_novel=False,
            summary="skipped",
            truth_scores=GraduatedTruthScores.failed(),
        ),
    )


class TestChannelScore:
    """Test per-channel novelty scores."""

    def test_failed_channel_is_unknown(self):
        """Test failed channels score 0.5."""
        assert channel_score(failure(AgentType.WEB)) == 0.5

    def test_novel_channel(self):
        """Test novel channels score 1.0 regardless of findings."""
        assert channel_score(success(AgentType.WEB, [0.4], is_novel=True)) == 1.0

    def test_not_novel_uses_max_similarity(self):
        """Test not-novel channels score 1 - max similarity."""
        assert channel_score(success(AgentType.RETAIL, [0.2, 0.7])) == pytest.approx(0.3)

    def test_weighted_overall(self):
        """Test weights 0.3 / 0.3 / 0.4."""
        outcomes = {
            AgentType.WEB: success(AgentType.WEB),
            AgentType.RETAIL: failure(AgentType.RETAIL),
            AgentType.PATENT: success(AgentType.PATENT, [0.75]),
        }

        assert overall_novelty_score(outcomes) == pytest.approx(0.3 + 0.15 + 0.1)


class TestDetermineRiskLevel:
    """Test the priority-ordered risk decision."""

    def test_high_similarity_beats_failures(self):
        """Test a 0.85 retail finding is high risk even when web and patent failed."""
        outcomes = [
            failure(AgentType.WEB),
            success(AgentType.RETAIL, [0.85]),
            failure(AgentType.PATENT),
        ]

        assert determine_risk_level(outcomes) == RiskLevel.HIGH_RISK

    def test_all_failed_incomplete(self):
        """Test three failed channels without findings are incomplete."""
        outcomes = [failure(AgentType.WEB), failure(AgentType.RETAIL), failure(AgentType.PATENT)]

        assert determine_risk_level(outcomes) == RiskLevel.INCOMPLETE

    def test_all_succeed_no_findings_low_risk(self):
        """Test clean success across channels is low risk."""
        outcomes = [success(AgentType.WEB), success(AgentType.RETAIL), success(AgentType.PATENT)]

        assert determine_risk_level(outcomes) == RiskLevel.LOW_RISK

    def test_failure_with_moderate_finding(self):
        """Test a moderate finding with a failed channel is moderate risk."""
        outcomes = [
            success(AgentType.WEB, [0.6]),
            success(AgentType.RETAIL),
            failure(AgentType.PATENT),
        ]

        assert determine_risk_level(outcomes) == RiskLevel.MODERATE_RISK

    def test_failure_with_weak_findings_incomplete(self):
        """Test weak findings do not hide a failed channel."""
        outcomes = [
            success(AgentType.WEB, [0.3]),
            success(AgentType.RETAIL),
            failure(AgentType.PATENT),
        ]

        assert determine_risk_level(outcomes) == RiskLevel.INCOMPLETE

    def test_moderate_without_failures(self):
        """Test max similarity in [0.5, 0.8) is moderate risk."""
        outcomes = [success(AgentType.WEB, [0.5]), success(AgentType.RETAIL), success(AgentType.PATENT)]

        assert determine_risk_level(outcomes) == RiskLevel.MODERATE_RISK

    def test_custom_thresholds(self):
        """Test thresholds are configurable."""
        outcomes = [success(AgentType.WEB, [0.7]), success(AgentType.RETAIL), success(AgentType.PATENT)]

        assert determine_risk_level(outcomes, RiskThresholds(high=0.65, moderate=0.4)) == RiskLevel.HIGH_RISK

    def test_successful_call_with_zero_completeness_counts_as_failed(self):
        """Test the completeness sentinel marks a channel failed."""
        zero = success(AgentType.PATENT)
        zero.result.truth_scores = GraduatedTruthScores.failed()

        outcomes = [success(AgentType.WEB), success(AgentType.RETAIL), zero]

        assert determine_risk_level(outcomes) == RiskLevel.INCOMPLETE


class TestAggregate:
    """Test the aggregate response."""

    def test_unique_puzzle_toy_low_risk(self):
        """Test zero findings everywhere gives low risk and score 1.0."""
        response = aggregate(success(AgentType.WEB), success(AgentType.RETAIL), success(AgentType.PATENT))

        assert response.risk_level == RiskLevel.LOW_RISK
        assert response.overall_novelty_score == pytest.approx(1.0)
        assert response.recommendation == RECOMMENDATIONS[RiskLevel.LOW_RISK][0]
        assert len(response.next_steps) == 4

    def test_foldable_solar_charger_high_risk(self):
        """Test one 0.9 web finding is high risk whatever the other channels say."""
        response = aggregate(
            success(AgentType.WEB, [0.9]),
            success(AgentType.RETAIL, [0.1]),
            success(AgentType.PATENT),
        )

        assert response.risk_level == RiskLevel.HIGH_RISK

    def test_patent_not_configured_incomplete(self):
        """Test a missing patent channel leaves the verdict incomplete."""
        response = aggregate(success(AgentType.WEB), success(AgentType.RETAIL), failure(AgentType.PATENT))

        assert response.risk_level == RiskLevel.INCOMPLETE
        assert response.patent_search_result.truth_scores.completeness == 0
        status = {s.agent_type: s for s in response.channel_status}
        assert status[AgentType.PATENT].failed is True
        assert status[AgentType.PATENT].reason == FailureReason.NOT_CONFIGURED
        assert status[AgentType.WEB].failed is False

    def test_truth_scores_averaged(self):
        """Test aggregate truth scores are the per-axis mean."""
        response = aggregate(success(AgentType.WEB), success(AgentType.RETAIL), failure(AgentType.PATENT))

        assert response.truth_scores.objective_truth == pytest.approx(0.7 * 2 / 3)
        assert response.truth_scores.completeness == pytest.approx(0.4 * 2 / 3)


@pytest.fixture
def agents():
    """Channel agent doubles returning clean successes."""
    web, retail, patent = MagicMock(), MagicMock(), MagicMock()
    for agent, agent_type in ((web, AgentType.WEB), (retail, AgentType.RETAIL), (patent, AgentType.PATENT)):
        agent.AGENT_TYPE = agent_type
        agent.run = AsyncMock(return_value=success(agent_type))
    return web, retail, patent


class TestNoveltyPipeline:
    """Test the end-to-end pipeline orchestration."""

    @pytest.mark.asyncio
    async def test_runs_all_channels_with_expanded_queries(self, agents, mock_gateway, solar_charger_request):
        """Test each agent receives its own expanded query set."""
        web, retail, patent = agents
        expanded = ExpandedInvention(
            expanded_description="desc",
            web_queries=["w1"],
            retail_queries=["r1"],
            patent_queries=["p1"],
        )
        pipeline = NoveltyPipeline(mock_gateway, web, retail, patent, thresholds=RiskThresholds())

        response = await pipeline.run_novelty_check(solar_charger_request, expanded)

        web.run.assert_awaited_once_with(solar_charger_request, ["w1"])
        retail.run.assert_awaited_once_with(solar_charger_request, ["r1"])
        patent.run.assert_awaited_once_with(solar_charger_request, ["p1"])
        assert response.risk_level == RiskLevel.LOW_RISK

    @pytest.mark.asyncio
    async def test_without_expansion_agents_generate_queries(self, agents, mock_gateway, solar_charger_request):
        """Test agents get no queries when no expansion is supplied."""
        web, retail, patent = agents
        pipeline = NoveltyPipeline(mock_gateway, web, retail, patent, thresholds=RiskThresholds())

        await pipeline.run_novelty_check(solar_charger_request)

        web.run.assert_awaited_once_with(solar_charger_request, None)

    @pytest.mark.asyncio
    async def test_no_ai_provider_raises(self, agents, mock_gateway, solar_charger_request):
        """Test missing AI providers abort before any channel runs."""
        web, retail, patent = agents
        mock_gateway.available_providers.return_value = []
        pipeline = NoveltyPipeline(mock_gateway, web, retail, patent, thresholds=RiskThresholds())

        with pytest.raises(AIConfigurationError):
            await pipeline.run_novelty_check(solar_charger_request)

        web.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_crashed_agent_contained(self, agents, mock_gateway, solar_charger_request):
        """Test an unexpected agent error becomes a failed channel."""
        web, retail, patent = agents
        web.run.side_effect = RuntimeError("boom")
        pipeline = NoveltyPipeline(mock_gateway, web, retail, patent, thresholds=RiskThresholds())

        response = await pipeline.run_novelty_check(solar_charger_request)

        assert response.web_search_result.summary == "Error during web search analysis: boom"
        assert response.web_search_result.truth_scores.completeness == 0
        assert response.risk_level == RiskLevel.INCOMPLETE

    @pytest.mark.asyncio
    async def test_memory_recorded_with_project(self, agents, mock_gateway, solar_charger_request, session_factory):
        """Test a result is logged to AI memory when user and project are given."""
        web, retail, patent = agents
        pipeline = NoveltyPipeline(
            mock_gateway,
            web,
            retail,
            patent,
            thresholds=RiskThresholds(),
            session_factory=session_factory,
        )

        await pipeline.run_novelty_check(solar_charger_request, user_id="user-1", project_id="project-9")

        async with session_factory() as session:
            memories = (await session.execute(select(AIMemory))).scalars().all()
        assert len(memories) == 1
        assert memories[0].summary == "Novelty check: low_risk"

    @pytest.mark.asyncio
    async def test_memory_skipped_without_project(self, agents, mock_gateway, solar_charger_request, session_factory):
        """Test nothing is logged without a project id."""
        web, retail, patent = agents
        pipeline = NoveltyPipeline(
            mock_gateway,
            web,
            retail,
            patent,
            thresholds=RiskThresholds(),
            session_factory=session_factory,
        )

        await pipeline.run_novelty_check(solar_charger_request, user_id="user-1")

        async with session_factory() as session:
            memories = (await session.execute(select(AIMemory))).scalars().all()
        assert memories == []

    @pytest.mark.asyncio
    async def test_memory_skip_logged_without_user(self, agents, mock_gateway, solar_charger_request, session_factory):
        """Test a project without a user id is skipped with a log event."""
        web, retail, patent = agents
        pipeline = NoveltyPipeline(
            mock_gateway, web, retail, patent, thresholds=RiskThresholds(), session_factory=session_factory
        )

        with capture_logs() as logs:
            await pipeline.run_novelty_check(solar_charger_request, project_id="project-9")

        skipped = [e for e in logs if e["event"] == "novelty_check_record_skipped"]
        assert len(skipped) == 1
        assert skipped[0]["reason"] == "missing user_id"

    @pytest.mark.asyncio
    async def test_memory_failure_leaves_response_unchanged(self, agents, mock_gateway, solar_charger_request):
        """Test an unreachable database does not affect the returned verdict."""
        web, retail, patent = agents

        def unreachable_factory():
            raise ConnectionRefusedError(111, "Connect call failed")

        pipeline = NoveltyPipeline(
            mock_gateway, web, retail, patent, thresholds=RiskThresholds(), session_factory=unreachable_factory
        )
        expected = await NoveltyPipeline(
            mock_gateway, web, retail, patent, thresholds=RiskThresholds()
        ).run_novelty_check(solar_charger_request)

        response = await pipeline.run_novelty_check(
            solar_charger_request, user_id="user-1", project_id="project-9"
        )

        assert response == expected
        assert response.risk_level == RiskLevel.LOW_RISK

    @pytest.mark.asyncio
    async def test_expand_delegates(self, agents, mock_gateway, solar_charger_request):
        """Test expand() uses the configured expander."""
        web, retail, patent = agents
        expander = MagicMock()
        expander.expand = AsyncMock(return_value="expanded")
        pipeline = NoveltyPipeline(mock_gateway, web, retail, patent, expander=expander)

        assert await pipeline.expand(solar_charger_request) == "expanded"
