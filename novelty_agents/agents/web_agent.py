"""Web channel agent: Tavily results scored for similarity by the AI gateway."""

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
from ..services.search.tavily_client import NOT_CONFIGURED_MESSAGE, TavilyClient, TavilyResult
from ..utils.keyword_extractor import generate_search_queries
from ..utils.llm_json import ParseError
from .base import (
    ANTI_HALLUCINATION,
    TRUTH_SCORES_SCHEMA,
    AnalysisBase,
    ChannelAgent,
    format_invention,
    format_queries,
    rank_findings,
)

logger = structlog.get_logger(__name__)

# Similarity for results the model did not mention
UNMENTIONED_SIMILARITY = 0.3

NO_RESULTS_SUMMARY = (
    "No similar products found in web search. This suggests the invention may be novel, "
    "but further research (retail and patent searches) is recommended."
)
NO_RESULTS_TRUTH = GraduatedTruthScores(
    objective_truth=0.7, practical_truth=0.6, completeness=0.4, contextual_scope=0.5
)

WEB_ANALYSIS_PROMPT = """You are a market research specialist focused on product novelty assessment. You analyze real web search results to determine if similar products already exist.

Given an invention idea and REAL search results from the web, assess whether similar products already exist. Your analysis must be based solely on the provided search results - do not hallucinate or invent findings.

## How to Analyze:
1. Review the invention name, description, problem statement, and key features
2. Carefully analyze each search result provided
3. For each result, assess how similar it is to the proposed invention (0-1 scale)
4. Identify which results represent direct competitors vs partial solutions
5. Calculate overall novelty based on the closest matching results
6. If no results match closely, the invention may be novel
7. Provide honest confidence scores based on result quality

## Invention Details:
{invention}

## Search Queries Used:
{queries}

## REAL Search Results ({count} total):
{results}

Return a JSON object with this exact structure:
{{
  "is_novel": boolean (true if no close matches found in results),
  "confidence": number (0-1, based on result quality and coverage),
  "analyzed_findings": [
    {{
      "result_index": number (which search result this refers to),
      "similarity_score": number (0-1, how similar to the invention),
      "relevance_explanation": "Why this result is or isn't similar"
    }}
  ],
  "summary": "2-3 sentence summary based ONLY on the actual search results",
{truth_scores},
  "recommended_next_searches": ["optional additional search queries if results were inconclusive"]
}}

{guard}"""


class AnalyzedResult(BaseModel):
    result_index: int
    similarity_score: float | None = None
    relevance_explanation: str | None = None


class WebAnalysis(AnalysisBase):
    analyzed_findings: list[AnalyzedResult] = Field(default_factory=list)
    recommended_next_searches: list[str] = Field(default_factory=list)


def format_results(results: Sequence[TavilyResult]) -> str:
    blocks = []
    for index, result in enumerate(results):
        lines = [
            f"[Result {index}]",
            f"Title: {result.title}",
            f"URL: {result.url}",
            f"Description: {result.description}",
        ]
        if result.age:
            lines.append(f"Age: {result.age}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def to_finding(
    result: TavilyResult,
    analysis: AnalyzedResult | None,
    default_similarity: float = UNMENTIONED_SIMILARITY,
) -> NoveltyFinding:
    return NoveltyFinding(
        title=result.title,
        description=result.description,
        url=result.url,
        similarity_score=(
            analysis.similarity_score
            if analysis and analysis.similarity_score is not None
            else default_similarity
        ),
        source="Tavily Search",
        metadata={
            "relevance_explanation": analysis.relevance_explanation if analysis else None,
            "relevance_score": result.score,
            "age": result.age,
        },
    )


class WebSearchAgent(ChannelAgent):
    """Search the open web for existing products.

    Example:
        >>> agent = WebSearchAgent(TavilyClient.from_settings(), gateway)
        >>> outcome = await agent.run(request, expanded.web_queries)
        >>> outcome.result.max_similarity
    """

    AGENT_TYPE = AgentType.WEB

    def __init__(self, client: TavilyClient, gateway: AIGateway, results_per_query: int = 5) -> None:
        super().__init__(gateway)
        self.client = client
        self.results_per_query = results_per_query

    async def run(
        self, request: NoveltyCheckRequest, queries: Sequence[str] | None = None
    ) -> ChannelOutcome:
        search_queries = list(queries or []) or generate_search_queries(
            request.invention_name,
            request.description,
            request.problem_statement,
            request.key_features,
        ) or [request.invention_name]
        logger.info(
            "web_agent_started",
            source="expanded" if queries else "extracted",
            queries=search_queries,
        )

        if not self.client.is_configured:
            return self._failure(
                FailureReason.NOT_CONFIGURED,
                NOT_CONFIGURED_MESSAGE,
                f"Web search skipped: {NOT_CONFIGURED_MESSAGE}",
                "N/A - Tavily not configured",
            )

        batch = await self.client.run_multiple_searches(search_queries, self.results_per_query)
        query_label = batch.query_label

        if batch.failed:
            return self._search_failure(batch.error, "Search failed", search_queries[0])

        if not batch.results:
            return self._success(
                is_novel=True,
                confidence=0.6,
                findings=[],
                summary=NO_RESULTS_SUMMARY,
                truth_scores=NO_RESULTS_TRUTH,
                query_used=query_label,
            )

        prompt = WEB_ANALYSIS_PROMPT.format(
            invention=format_invention(request),
            queries=format_queries(search_queries),
            count=len(batch.results),
            results=format_results(batch.results),
            truth_scores=TRUTH_SCORES_SCHEMA,
            guard=ANTI_HALLUCINATION,
        )
        analysis = await self._analyze(prompt, WebAnalysis)

        if isinstance(analysis, ParseError):
            findings = [to_finding(r, None, default_similarity=0.0) for r in batch.results]
            return self._unscored(
                findings,
                f"Found {len(findings)} potentially similar results on the web, but analysis "
                "failed. Manual review recommended.",
                query_label,
            )

        # First mention wins when the model repeats an index
        by_index: dict[int, AnalyzedResult] = {}
        for item in analysis.analyzed_findings:
            by_index.setdefault(item.result_index, item)

        findings = [to_finding(r, by_index.get(i)) for i, r in enumerate(batch.results)]
        return self._success(
            is_novel=analysis.is_novel,
            confidence=analysis.confidence,
            findings=rank_findings(findings),
            summary=analysis.summary,
            truth_scores=analysis.truth_scores,
            query_used=query_label,
        )


__all__ = ["WebAnalysis", "WebSearchAgent", "format_results", "to_finding"]
