"""Unit tests for WebSearchAgent."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from novelty_agents.agents.base import UNSCORED_TRUTH
from novelty_agents.agents.web_agent import WebSearchAgent
from novelty_agents.core.exceptions import AIConfigurationError, SearchAuthenticationError
from novelty_agents.models.novelty import AgentType, ChannelFailure, ChannelSuccess, FailureReason
from novelty_agents.services.search.base import SearchBatch
from novelty_agents.services.search.tavily_client import NOT_CONFIGURED_MESSAGE, TavilyResult

RESULTS = [
    TavilyResult(title="SunPack Foldable Charger", url="https://a.com", description="28W", score=0.9),
    TavilyResult(title="Solar Hiking Guide", url="https://b.com", description="Blog", score=0.7),
    TavilyResult(title="Desk Lamp", url="https://c.com", description="Lamp", score=0.6),
]

TRUTH = {
    "objective_truth": 0.8,
    "practical_truth": 0.7,
    "completeness": 0.6,
    "contextual_scope": 0.7,
}


@pytest.fixture
def tavily():
    """Tavily client double."""
    client = MagicMock()
    client.PROVIDER = "Tavily"
    client.is_configured = True
    client.run_multiple_searches = AsyncMock(
        return_value=SearchBatch(queries=["foldable solar charger"], results=list(RESULTS))
    )
    return client


class TestWebSearchAgent:
    """Test the web channel."""

    @pytest.mark.asyncio
    async def test_not_configured(self, tavily, mock_gateway, solar_charger_request):
        """Test a missing key fails the channel with completeness 0."""
        tavily.is_configured = False
        agent = WebSearchAgent(tavily, mock_gateway)

        outcome = await agent.run(solar_charger_request, ["foldable solar charger"])

        assert isinstance(outcome, ChannelFailure)
        assert outcome.reason == FailureReason.NOT_CONFIGURED
        assert outcome.message == NOT_CONFIGURED_MESSAGE
        assert outcome.result.summary == f"Web search skipped: {NOT_CONFIGURED_MESSAGE}"
        assert outcome.result.truth_scores.completeness == 0
        assert outcome.result.search_query_used == "N/A - Tavily not configured"
        tavily.run_multiple_searches.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_search_failure(self, tavily, mock_gateway, solar_charger_request):
        """Test a failed batch maps the error onto a failure reason."""
        tavily.run_multiple_searches.return_value = SearchBatch(
            queries=["q"],
            error=SearchAuthenticationError("Tavily", "Tavily API authentication failed", 401),
        )
        agent = WebSearchAgent(tavily, mock_gateway)

        outcome = await agent.run(solar_charger_request, ["q"])

        assert isinstance(outcome, ChannelFailure)
        assert outcome.reason == FailureReason.AUTHENTICATION
        assert outcome.result.agent_type == AgentType.WEB
        mock_gateway.create_completion.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_results_suggests_novel(self, tavily, mock_gateway, solar_charger_request):
        """Test an empty search is a success that leans novel."""
        tavily.run_multiple_searches.return_value = SearchBatch(queries=["q"])
        agent = WebSearchAgent(tavily, mock_gateway)

        outcome = await agent.run(solar_charger_request, ["q"])

        assert isinstance(outcome, ChannelSuccess)
        assert outcome.result.is_novel is True
        assert outcome.result.confidence == 0.6
        assert outcome.result.truth_scores.completeness == 0.4
        assert outcome.failed is False

    @pytest.mark.asyncio
    async def test_scored_findings_ranked(self, tavily, mock_gateway, completion, solar_charger_request):
        """Test model scores attach by index and unmentioned results get 0.3."""
        reply = {
            "is_novel": False,
            "confidence": 0.85,
            "analyzed_findings": [
                {"result_index": 2, "similarity_score": 0.1, "relevance_explanation": "Unrelated"},
                {"result_index": 0, "similarity_score": 0.9, "relevance_explanation": "Same product"},
            ],
            "summary": "A near-identical foldable charger is already sold.",
            "truth_scores": TRUTH,
        }
        mock_gateway.create_completion.return_value = completion(json.dumps(reply))
        agent = WebSearchAgent(tavily, mock_gateway)

        outcome = await agent.run(solar_charger_request, ["foldable solar charger"])

        assert isinstance(outcome, ChannelSuccess)
        findings = outcome.result.findings
        assert [f.url for f in findings] == ["https://a.com", "https://b.com", "https://c.com"]
        assert [f.similarity_score for f in findings] == [0.9, 0.3, 0.1]
        assert findings[0].source == "Tavily Search"
        assert findings[0].metadata["relevance_explanation"] == "Same product"
        assert outcome.result.is_novel is False
        assert outcome.result.truth_scores.objective_truth == 0.8
        assert outcome.result.search_query_used == "foldable solar charger"

    @pytest.mark.asyncio
    async def test_prompt_contains_real_results(self, tavily, mock_gateway, solar_charger_request):
        """Test the analysis prompt lists every result and the anti-hallucination guard."""
        agent = WebSearchAgent(tavily, mock_gateway)

        await agent.run(solar_charger_request, ["foldable solar charger"])

        prompt = mock_gateway.create_completion.await_args.args[0]
        assert "[Result 0]" in prompt
        assert "URL: https://c.com" in prompt
        assert "Base your analysis ONLY on the results provided above" in prompt
        assert "**Name**: Foldable Solar Charger" in prompt

    @pytest.mark.asyncio
    async def test_unparseable_analysis_degrades(self, tavily, mock_gateway, completion, solar_charger_request):
        """Test a malformed reply keeps findings unscored."""
        mock_gateway.create_completion.return_value = completion("not json at all")
        agent = WebSearchAgent(tavily, mock_gateway)

        outcome = await agent.run(solar_charger_request, ["foldable solar charger"])

        assert isinstance(outcome, ChannelSuccess)
        assert outcome.result.is_novel is False
        assert outcome.result.confidence == 0.3
        assert outcome.result.truth_scores == UNSCORED_TRUTH
        assert all(f.similarity_score == 0.0 for f in outcome.result.findings)
        assert "analysis failed" in outcome.result.summary

    @pytest.mark.asyncio
    async def test_provider_error_degrades(self, tavily, mock_gateway, solar_charger_request):
        """Test a provider failure during analysis degrades instead of failing."""
        mock_gateway.create_completion.side_effect = RuntimeError("connection reset")
        agent = WebSearchAgent(tavily, mock_gateway)

        outcome = await agent.run(solar_charger_request, ["foldable solar charger"])

        assert isinstance(outcome, ChannelSuccess)
        assert len(outcome.result.findings) == 3

    @pytest.mark.asyncio
    async def test_ai_configuration_error_propagates(self, tavily, mock_gateway, solar_charger_request):
        """Test missing AI configuration is not swallowed."""
        mock_gateway.create_completion.side_effect = AIConfigurationError("no providers")
        agent = WebSearchAgent(tavily, mock_gateway)

        with pytest.raises(AIConfigurationError):
            await agent.run(solar_charger_request, ["foldable solar charger"])

    @pytest.mark.asyncio
    async def test_generates_queries_without_expansion(self, tavily, mock_gateway, solar_charger_request):
        """Test keyword queries are generated when none are supplied."""
        agent = WebSearchAgent(tavily, mock_gateway)

        await agent.run(solar_charger_request)

        queries = tavily.run_multiple_searches.await_args.args[0]
        assert queries[0] == "foldable solar charger"
        assert len(queries) <= 5
