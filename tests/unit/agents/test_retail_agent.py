"""Unit tests for RetailSearchAgent."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from novelty_agents.agents.retail_agent import RetailSearchAgent
from novelty_agents.core.exceptions import SearchRateLimitError
from novelty_agents.models.novelty import ChannelFailure, ChannelSuccess, FailureReason
from novelty_agents.services.search.base import SearchBatch
from novelty_agents.services.search.ebay_client import NOT_CONFIGURED_MESSAGE, EbayProduct

PRODUCTS = [
    EbayProduct(item_id="v1|1|0", title="Solar Power Bank", price="USD 25.00", condition="New"),
    EbayProduct(
        item_id="v1|2|0",
        title="Foldable 28W Solar Charger",
        price="USD 39.99",
        condition="New",
        url="https://www.ebay.com/itm/2",
        categories=["Solar Panels"],
    ),
]


@pytest.fixture
def ebay():
    """eBay client double."""
    client = MagicMock()
    client.PROVIDER = "eBay"
    client.is_configured = True
    client.search_similar_products = AsyncMock(
        return_value=SearchBatch(queries=["solar charger", "foldable solar"], results=list(PRODUCTS))
    )
    return client


def analysis_reply(**overrides) -> str:
    reply = {
        "is_novel": False,
        "confidence": 0.9,
        "product_analyses": [
            {"item_id": "v1|2|0", "similarity_score": 0.85, "analysis": "Same foldable charger"},
        ],
        "summary": "A foldable solar charger is already sold on eBay.",
        "truth_scores": {
            "objective_truth": 0.9,
            "practical_truth": 0.8,
            "completeness": 0.6,
            "contextual_scope": 0.8,
        },
    }
    reply.update(overrides)
    return json.dumps(reply)


class TestRetailSearchAgent:
    """Test the retail channel."""

    @pytest.mark.asyncio
    async def test_not_configured(self, ebay, mock_gateway, solar_charger_request):
        """Test missing eBay credentials fail the channel with setup guidance."""
        ebay.is_configured = False
        agent = RetailSearchAgent(ebay, mock_gateway)

        outcome = await agent.run(solar_charger_request, ["solar charger"])

        assert isinstance(outcome, ChannelFailure)
        assert outcome.reason == FailureReason.NOT_CONFIGURED
        assert outcome.message == NOT_CONFIGURED_MESSAGE
        assert outcome.result.summary == f"Retail search skipped: {NOT_CONFIGURED_MESSAGE}"
        assert outcome.result.search_query_used == "N/A - eBay not configured"
        ebay.search_similar_products.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_api_error(self, ebay, mock_gateway, solar_charger_request):
        """Test an eBay API failure is reported as a failed channel."""
        ebay.search_similar_products.return_value = SearchBatch(
            queries=["solar charger"],
            error=SearchRateLimitError("eBay", "eBay API rate limit exceeded (429)", 429),
        )
        agent = RetailSearchAgent(ebay, mock_gateway)

        outcome = await agent.run(solar_charger_request, ["solar charger"])

        assert isinstance(outcome, ChannelFailure)
        assert outcome.reason == FailureReason.RATE_LIMITED
        assert outcome.result.summary.startswith("eBay API error: ")
        assert outcome.result.truth_scores.completeness == 0

    @pytest.mark.asyncio
    async def test_no_products(self, ebay, mock_gateway, solar_charger_request):
        """Test an empty marketplace leans novel with partial completeness."""
        ebay.search_similar_products.return_value = SearchBatch(queries=["solar charger"])
        agent = RetailSearchAgent(ebay, mock_gateway)

        outcome = await agent.run(solar_charger_request, ["solar charger"])

        assert isinstance(outcome, ChannelSuccess)
        assert outcome.result.is_novel is True
        assert outcome.result.confidence == 0.7
        assert outcome.result.truth_scores.completeness == 0.5
        assert '"solar charger"' in outcome.result.summary

    @pytest.mark.asyncio
    async def test_scored_by_item_id(self, ebay, mock_gateway, completion, solar_charger_request):
        """Test scores attach by item id and unmentioned products score 0."""
        mock_gateway.create_completion.return_value = completion(analysis_reply())
        agent = RetailSearchAgent(ebay, mock_gateway)

        outcome = await agent.run(solar_charger_request, ["solar charger", "foldable solar"])

        findings = outcome.result.findings
        assert [f.metadata["item_id"] for f in findings] == ["v1|2|0", "v1|1|0"]
        assert [f.similarity_score for f in findings] == [0.85, 0.0]
        assert findings[0].description == "Same foldable charger"
        assert findings[0].source == "eBay"
        assert findings[0].metadata["price"] == "USD 39.99"
        assert findings[0].metadata["categories"] == "Solar Panels"
        assert outcome.result.search_query_used == "solar charger | foldable solar"
        assert mock_gateway.create_completion.await_args.kwargs["max_tokens"] == 4096

    @pytest.mark.asyncio
    async def test_unscored_fallback(self, ebay, mock_gateway, completion, solar_charger_request):
        """Test a malformed reply keeps products with default descriptions."""
        mock_gateway.create_completion.return_value = completion('{"summary": "truncated')
        agent = RetailSearchAgent(ebay, mock_gateway)

        outcome = await agent.run(solar_charger_request, ["solar charger"])

        assert isinstance(outcome, ChannelSuccess)
        assert outcome.result.confidence == 0.3
        assert outcome.result.findings[0].description == "New - Solar Power Bank"
        assert "analysis failed" in outcome.result.summary

    @pytest.mark.asyncio
    async def test_findings_capped_at_ten(self, ebay, mock_gateway, completion, solar_charger_request):
        """Test at most ten findings are returned."""
        many = [EbayProduct(item_id=f"v1|{i}|0", title=f"Item {i}") for i in range(15)]
        ebay.search_similar_products.return_value = SearchBatch(queries=["q"], results=many)
        mock_gateway.create_completion.return_value = completion(
            analysis_reply(product_analyses=[])
        )
        agent = RetailSearchAgent(ebay, mock_gateway)

        outcome = await agent.run(solar_charger_request, ["q"])

        assert len(outcome.result.findings) == 10
