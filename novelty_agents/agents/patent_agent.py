"""Patent channel agent.

Queries come from the expanded invention when available, otherwise from an
AI query generator that phrases the invention as functions and mechanisms
(patent vocabulary), with frequency-ranked keywords as the last resort.
Retrieved patents are then scored for similarity by the AI gateway.
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog
from pydantic import BaseModel, Field

from ..core.exceptions import AIConfigurationError
from ..models.novelty import (
    AgentType,
    ChannelOutcome,
    FailureReason,
    GraduatedTruthScores,
    NoveltyCheckRequest,
    NoveltyFinding,
)
from ..services.llm.ai_gateway import AIGateway
from ..services.search.patent_reference import PatentReference, normalize_patent_number
from ..services.search.patent_search import PatentSearchService
from ..services.search.patentsview_client import NOT_CONFIGURED_MESSAGE
from ..utils.keyword_extractor import extract_patent_keywords
from ..utils.llm_json import ParseError, parse_model_output
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

MAX_GENERATED_QUERIES = 10
FALLBACK_QUERY_COUNT = 6
ABSTRACT_PREVIEW_CHARS = 500

NO_RESULTS_SUMMARY = (
    "No related granted or challenged patents found in USPTO data for these queries. "
    "This is a positive signal, but it is not a professional prior art search; patent "
    "attorney review is still recommended."
)
NO_RESULTS_TRUTH = GraduatedTruthScores(
    objective_truth=0.7, practical_truth=0.6, completeness=0.4, contextual_scope=0.6
)

QUERY_GENERATION_PROMPT = """You are a patent search specialist. Analyze this invention and generate optimized patent search queries.

## Invention
Name: {invention_name}
Description: {description}
{problem}{features}
## Your Task
Generate search queries optimized for patent databases (USPTO, Google Patents).

CRITICAL: Think in terms of FUNCTIONS and MECHANISMS, not product names.
- "portable bidet" -> "personal hygiene fluid dispenser", "handheld cleaning apparatus"
- "smart pet feeder" -> "automated animal feeding device", "programmable food dispensing system"

## Output Format
Return a JSON object with these arrays (2-3 queries each, max 10 total):

{{
  "functionQueries": ["queries describing what it DOES (verb + object)"],
  "problemQueries": ["queries framing the PROBLEM it solves"],
  "mechanismQueries": ["queries about HOW it works (materials, components)"],
  "synonymQueries": ["alternative technical terms for same concepts"]
}}

Keep queries 2-5 words. Use patent-style terminology (apparatus, device, system, method, assembly).
Return ONLY the JSON object, no explanation."""

PATENT_ANALYSIS_PROMPT = """You are a patent research specialist with expertise in prior art searches. You analyze REAL patent records retrieved from USPTO data to assess whether an invention appears to have patentable novelty.

## How to Assess:
1. Review the invention details carefully
2. Identify the core technical innovation
3. For each patent below, compare its title and abstract to the invention:
   - Exact technology matches
   - Similar mechanisms or methods
   - Patents solving the same problem differently
   - Broader patents that might cover this invention
4. Patents marked CHALLENGED have been disputed at the Patent Trial and Appeal Board;
   treat a close challenged patent as a strong prior art signal
5. Assign each patent a similarity score (0-1):
   - >0.8: strong prior art conflict
   - 0.5-0.8: potential prior art that needs professional review
   - <0.5: likely patentable with proper claims drafting

## Invention to Analyze:
{invention}

## Patent Queries Used:
{queries}

## REAL Patent Records ({count} total):
{patents}

Return a JSON object with this exact structure:
{{
  "is_novel": boolean (true if likely patentable, no strong prior art in these records),
  "confidence": number (0-1, confidence in assessment),
  "patent_analyses": [
    {{
      "patent_number": "string (from input)",
      "similarity_score": number (0-1),
      "analysis": "1-2 sentences on how the claims might overlap"
    }}
  ],
  "summary": "2-3 sentences on the patent landscape based ONLY on these records",
{truth_scores},
  "patentability_assessment": "brief assessment of likelihood of getting a patent"
}}

{guard}
Be conservative: err on the side of finding prior art. This is NOT a professional patent search."""


class PatentQuerySet(BaseModel):
    """AI-generated patent query groups."""

    functionQueries: list[str] = Field(default_factory=list)
    problemQueries: list[str] = Field(default_factory=list)
    mechanismQueries: list[str] = Field(default_factory=list)
    synonymQueries: list[str] = Field(default_factory=list)

    def all_queries(self, limit: int = MAX_GENERATED_QUERIES) -> list[str]:
        combined = [
            *self.functionQueries,
            *self.problemQueries,
            *self.mechanismQueries,
            *self.synonymQueries,
        ]
        return list(dict.fromkeys(q.strip() for q in combined if q and q.strip()))[:limit]


class PatentAnalysisItem(BaseModel):
    patent_number: str
    similarity_score: float | None = None
    analysis: str | None = None


class PatentAnalysis(AnalysisBase):
    patent_analyses: list[PatentAnalysisItem] = Field(default_factory=list)
    patentability_assessment: str | None = None


def fallback_patent_queries(request: NoveltyCheckRequest) -> list[str]:
    keywords = extract_patent_keywords(
        request.invention_name, request.description, request.key_features
    )
    return keywords[:FALLBACK_QUERY_COUNT] or [request.invention_name]


class PatentQueryGenerator:
    """Turn an invention into function-, problem-, mechanism- and synonym-style queries."""

    MODEL = "claude-3-haiku-20240307"
    MAX_TOKENS = 1024
    TEMPERATURE = 0.3

    def __init__(self, gateway: AIGateway) -> None:
        self.gateway = gateway

    async def generate(self, request: NoveltyCheckRequest) -> list[str]:
        prompt = QUERY_GENERATION_PROMPT.format(
            invention_name=request.invention_name,
            description=request.description,
            problem=(
                f"Problem it solves: {request.problem_statement}\n"
                if request.problem_statement
                else ""
            ),
            features=(
                f"Key features: {', '.join(request.key_features)}\n" if request.key_features else ""
            ),
        )
        try:
            response = await self.gateway.create_completion(
                prompt,
                model=self.MODEL,
                max_tokens=self.MAX_TOKENS,
                temperature=self.TEMPERATURE,
            )
        except AIConfigurationError:
            raise
        except Exception as e:
            logger.warning("patent_query_generation_failed", error=str(e), fallback=True)
            return fallback_patent_queries(request)

        parsed = parse_model_output(response.text, PatentQuerySet)
        queries = [] if isinstance(parsed, ParseError) else parsed.all_queries()
        if not queries:
            logger.warning("patent_query_generation_empty", fallback=True)
            return fallback_patent_queries(request)

        logger.info("patent_queries_generated", count=len(queries), provider=response.provider)
        return queries


def format_patents(patents: Sequence[PatentReference]) -> str:
    blocks = []
    for index, patent in enumerate(patents, start=1):
        label = " [CHALLENGED]" if patent.is_challenged else ""
        lines = [
            f"{index}. **{patent.title}**{label}",
            f"   - Patent Number: {patent.patent_number}",
            f"   - Date: {patent.filing_date or 'Unknown'}",
            f"   - Status: {patent.status}",
        ]
        if patent.assignee:
            lines.append(f"   - Assignee: {patent.assignee}")
        if patent.abstract:
            lines.append(f"   - Abstract: {patent.abstract[:ABSTRACT_PREVIEW_CHARS]}")
        elif patent.relevance_context:
            lines.append(f"   - Context: {patent.relevance_context}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def to_finding(patent: PatentReference, analysis: PatentAnalysisItem | None = None) -> NoveltyFinding:
    description = (
        (analysis.analysis if analysis else None)
        or (patent.abstract[:ABSTRACT_PREVIEW_CHARS] if patent.abstract else None)
        or patent.relevance_context
        or ""
    )
    return NoveltyFinding(
        title=f"{patent.title} ({patent.patent_number})",
        description=description,
        url=patent.url,
        similarity_score=(analysis.similarity_score if analysis else None) or 0.0,
        source=patent.source,
        metadata={
            "patent_number": patent.patent_number,
            "filing_date": patent.filing_date,
            "status": patent.status,
            "assignee": patent.assignee,
            "trial_type": patent.trial_type,
            "is_challenged": patent.is_challenged,
            "relevance_context": patent.relevance_context,
        },
    )


class PatentSearchAgent(ChannelAgent):
    """Search granted and challenged US patents for prior art.

    Example:
        >>> agent = PatentSearchAgent(service, gateway)
        >>> outcome = await agent.run(request)  # generates its own queries
    """

    AGENT_TYPE = AgentType.PATENT
    MAX_TOKENS = 4096

    def __init__(
        self,
        service: PatentSearchService,
        gateway: AIGateway,
        query_generator: PatentQueryGenerator | None = None,
        max_results_per_query: int = 10,
    ) -> None:
        super().__init__(gateway)
        self.service = service
        self.query_generator = query_generator or PatentQueryGenerator(gateway)
        self.max_results_per_query = max_results_per_query

    async def run(
        self, request: NoveltyCheckRequest, queries: Sequence[str] | None = None
    ) -> ChannelOutcome:
        if not self.service.is_configured:
            return self._failure(
                FailureReason.NOT_CONFIGURED,
                NOT_CONFIGURED_MESSAGE,
                f"Patent search skipped: {NOT_CONFIGURED_MESSAGE}",
                "N/A - PatentsView not configured",
            )

        search_queries = list(queries or []) or await self.query_generator.generate(request)
        batch = await self.service.search(search_queries, self.max_results_per_query)
        query_label = batch.query_label

        if batch.failed:
            return self._search_failure(batch.error, "Patent search failed", query_label)

        if not batch.results:
            return self._success(
                is_novel=True,
                confidence=0.6,
                findings=[],
                summary=NO_RESULTS_SUMMARY,
                truth_scores=NO_RESULTS_TRUTH,
                query_used=query_label,
            )

        prompt = PATENT_ANALYSIS_PROMPT.format(
            invention=format_invention(request),
            queries=format_queries(batch.queries),
            count=len(batch.results),
            patents=format_patents(batch.results),
            truth_scores=TRUTH_SCORES_SCHEMA,
            guard=ANTI_HALLUCINATION,
        )
        analysis = await self._analyze(prompt, PatentAnalysis)

        if isinstance(analysis, ParseError):
            return self._unscored(
                [to_finding(p) for p in batch.results],
                f"Found {len(batch.results)} potentially related patents, but analysis failed. "
                "Manual review by a patent professional recommended.",
                query_label,
            )

        by_number: dict[str, PatentAnalysisItem] = {}
        for item in analysis.patent_analyses:
            by_number.setdefault(normalize_patent_number(item.patent_number), item)

        findings = [
            to_finding(p, by_number.get(normalize_patent_number(p.patent_number)))
            for p in batch.results
        ]
        summary = analysis.summary
        if analysis.patentability_assessment:
            summary = f"{summary} {analysis.patentability_assessment}".strip()

        return self._success(
            is_novel=analysis.is_novel,
            confidence=analysis.confidence,
            findings=rank_findings(findings),
            summary=summary,
            truth_scores=analysis.truth_scores,
            query_used=query_label,
        )


__all__ = [
    "PatentAnalysis",
    "PatentQueryGenerator",
    "PatentQuerySet",
    "PatentSearchAgent",
    "fallback_patent_queries",
    "format_patents",
    "to_finding",
]
