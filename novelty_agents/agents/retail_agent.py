"""Retail channel agent: eBay listings scored for similarity by the AI gateway."""

from __future__ import annotations

from collections.abc import Sequence

import structlog
from pydantic import BaseModel, Field

from ..models.novelty import (
    AgentType,
    ChannelOutcome,
    FailureReason,
    GraduatedTruthScores,
    NoveltyCheckRequest,
    NoveltyFinding,
)
from ..services.llm.ai_gateway import AIGateway
from ..services.search.ebay_client import NOT_CONFIGURED_MESSAGE, EbayClient, EbayProduct
from ..utils.keyword_extractor import generate_search_queries
from ..utils.llm_json import ParseError
from .base import (
    ANTI_HALLUCINATION,
    TRUTH_SCORES_SCHEMA,
    AnalysisBase,
    ChannelAgent,
    format_invention,
    rank_findings,
)

logger = structlog.get_logger(__name__)

NO_RESULTS_TRUTH = GraduatedTruthScores(
    objective_truth=0.8,
    practical_truth=0.7,
    completeness=0.5,  # Only eBay was checked
    contextual_scope=0.8,
)

RETAIL_ANALYSIS_PROMPT = """You are a retail market analyst specializing in product discovery. You analyze real eBay product listings to determine if similar products already exist commercially.

Given an invention description and actual eBay search results, analyze how novel the invention is compared to what's already available for purchase.

## How to Analyze:
1. Review the invention details (name, description, problem it solves, key features)
2. Analyze each eBay product listing to determine similarity to the invention
3. For each product, assess:
   - Feature overlap (how many key features are shared)
   - Problem-solving approach (does it solve the same problem?)
   - Target use case (is it for the same audience/purpose?)
4. Assign similarity scores (0-1) to each product:
   - 0.8-1.0: Essentially the same product, near-identical
   - 0.6-0.8: Very similar, solves same problem similarly
   - 0.4-0.6: Moderately similar, some overlap
   - 0.2-0.4: Somewhat related, different approach
   - 0.0-0.2: Barely related, only superficial similarity
5. Determine overall novelty based on highest similarity found
6. Consider market positioning and differentiation opportunities

## Invention to Check:
{invention}

## Real eBay Products Found ({count} results):
{products}

Return ONLY valid JSON (no markdown, no explanation) with this structure:
{{
  "is_novel": boolean,
  "confidence": number,
  "product_analyses": [
    {{
      "item_id": "string (from input)",
      "similarity_score": number,
      "analysis": "1-2 sentence explanation"
    }}
  ],
  "summary": "2-3 sentences on retail availability and competition",
{truth_scores}
}}

{guard}
Products with higher similarity scores indicate the invention is LESS novel."""


class ProductAnalysis(BaseModel):
    item_id: str
    similarity_score: float | None = None
    analysis: str | None = None


class RetailAnalysis(AnalysisBase):
    product_analyses: list[ProductAnalysis] = Field(default_factory=list)


def format_products(products: Sequence[EbayProduct]) -> str:
    return "\n".join(
        f"{i}. **{p.title}**\n"
        f"   - Item ID: {p.item_id}\n"
        f"   - Price: {p.price or 'N/A'}\n"
        f"   - Condition: {p.condition or 'Not specified'}\n"
        f"   - URL: {p.url or 'N/A'}\n"
        f"   - Categories: {', '.join(p.categories) or 'N/A'}"
        for i, p in enumerate(products, start=1)
    )


def to_finding(product: EbayProduct, analysis: ProductAnalysis | None = None) -> NoveltyFinding:
    similarity = analysis.similarity_score if analysis else None
    return NoveltyFinding(
        title=product.title,
        description=(analysis.analysis if analysis and analysis.analysis else None)
        or f"{product.condition or 'New'} - {product.title}",
        url=product.url,
        similarity_score=similarity or 0.0,
        source="eBay",
        metadata={
            "item_id": product.item_id,
            "price": product.price or "Price not available",
            "condition": product.condition,
            "image_url": product.image_url,
            "seller_username": product.seller_username,
            "seller_feedback": product.seller_feedback,
            "categories": ", ".join(product.categories) or None,
            "location": product.location,
        },
    )


class RetailSearchAgent(ChannelAgent):
    """Search eBay listings for products already on sale."""

    AGENT_TYPE = AgentType.RETAIL
    MAX_TOKENS = 4096

    def __init__(self, client: EbayClient, gateway: AIGateway, limit: int = 10) -> None:
        super().__init__(gateway)
        self.client = client
        self.limit = limit

    async def run(
        self, request: NoveltyCheckRequest, queries: Sequence[str] | None = None
    ) -> ChannelOutcome:
        if not self.client.is_configured:
            return self._failure(
                FailureReason.NOT_CONFIGURED,
                NOT_CONFIGURED_MESSAGE,
                f"Retail search skipped: {NOT_CONFIGURED_MESSAGE}",
                "N/A - eBay not configured",
            )

        search_queries = list(queries or []) or generate_search_queries(
            request.invention_name,
            request.description,
            key_features=request.key_features,
        ) or [request.invention_name]

        batch = await self.client.search_similar_products(search_queries, limit=self.limit)
        query_label = batch.query_label

        if batch.failed:
            return self._search_failure(batch.error, "eBay API error", query_label)

        if not batch.results:
            return self._success(
                is_novel=True,
                confidence=0.7,
                findings=[],
                summary=(
                    f'No similar products found on eBay for "{query_label}". This suggests the '
                    "invention may be novel in the retail marketplace, though further research "
                    "on other platforms is recommended."
                ),
                truth_scores=NO_RESULTS_TRUTH,
                query_used=query_label,
            )

        prompt = RETAIL_ANALYSIS_PROMPT.format(
            invention=format_invention(request),
            count=len(batch.results),
            products=format_products(batch.results),
            truth_scores=TRUTH_SCORES_SCHEMA,
            guard=ANTI_HALLUCINATION,
        )
        analysis = await self._analyze(prompt, RetailAnalysis)

        if isinstance(analysis, ParseError):
            return self._unscored(
                [to_finding(p) for p in batch.results],
                f"Found {len(batch.results)} potentially similar products on eBay, but analysis "
                "failed. Manual review recommended.",
                query_label,
            )

        by_item: dict[str, ProductAnalysis] = {}
        for item in analysis.product_analyses:
            by_item.setdefault(item.item_id, item)

        findings = [to_finding(p, by_item.get(p.item_id)) for p in batch.results]
        logger.info(
            "retail_agent_completed",
            products=len(batch.results),
            scored=len(by_item),
            from_cache=batch.from_cache,
        )
        return self._success(
            is_novel=analysis.is_novel,
            confidence=analysis.confidence,
            findings=rank_findings(findings),
            summary=analysis.summary,
            truth_scores=analysis.truth_scores,
            query_used=query_label,
        )


__all__ = ["RetailAnalysis", "RetailSearchAgent", "format_products", "to_finding"]
