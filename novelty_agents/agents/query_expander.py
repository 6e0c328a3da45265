"""AI query expander: brief invention description -> search-ready profile.

The expander never raises. Any model failure (provider error, malformed JSON,
missing required fields) drops to a deterministic keyword expansion so the
novelty pipeline can always proceed.
"""

from __future__ import annotations

import re

import structlog
from pydantic import Field

from ..models.novelty import ExpandedInvention, NoveltyCheckRequest
from ..services.llm.ai_gateway import AIGateway
from ..utils.llm_json import ParseError, parse_model_output

logger = structlog.get_logger(__name__)

EXPANSION_PROMPT = """You are a product analyst specializing in invention assessment and search optimization.

## Task
Transform a brief invention description into a comprehensive, search-ready profile. Your goal is to:
1. Understand what the invention actually does
2. Extract the key differentiating features
3. Generate optimized search queries for finding similar products

## Input
Name: {invention_name}
Description: {description}
Problem: {problem_statement}
Audience: {target_audience}

## Output (JSON only, no markdown code blocks)
{{
  "expanded_description": "2-3 sentence technical description that clearly explains what the invention does and how",
  "key_features": ["feature1", "feature2", "feature3", "feature4", "feature5"],
  "product_category": "Single category like 'Kitchen Products' or 'Pet Supplies'",
  "differentiators": ["what makes this unique vs existing products"],
  "web_queries": ["3-5 queries for finding similar products online"],
  "retail_queries": ["3-5 queries for Amazon/eBay product search"],
  "patent_queries": ["3-5 technical queries for patent databases"]
}}

## Guidelines
- Rewrite colloquial phrasing as technical, functional language. Patent databases match
  mechanisms and functions, not marketing copy.
- key_features: Extract 5 specific, concrete features (not vague like "innovative" or "smart")
- web_queries: Use natural language, product-focused terms
- retail_queries: Use shopping-style keywords that would appear in product titles
- patent_queries: Use technical/functional language (apparatus, device, method, mechanism)
- differentiators: Focus on what's NOVEL - what existing products don't do

## Example
Input:
Name: Spice Buddies
Description: spice set for children that has authentic smells but doesnt leak the spice out

Output:
{{
  "expanded_description": "A child-safe spice exploration kit featuring sealed containers with smell-permeable membranes that allow authentic spice aromas to be experienced without exposing children to actual spices. Designed for sensory education and safe kitchen exploration.",
  "key_features": [
    "Smell-permeable sealed containers",
    "Child-safe design preventing spice access",
    "Authentic spice aromas preserved",
    "Educational sensory experience",
    "Leak-proof spill-resistant construction"
  ],
  "product_category": "Children's Educational Toys",
  "differentiators": [
    "Smell without exposure - existing spice kits give direct access to spices",
    "Specifically designed for young children's sensory education",
    "Safety-first approach with sealed aromatic chambers"
  ],
  "web_queries": [
    "kids sensory spice learning kit",
    "children smell education toys",
    "child safe cooking education set",
    "sensory play kitchen toys"
  ],
  "retail_queries": [
    "kids sensory toys smell",
    "children cooking learning set",
    "sensory play kit toddler",
    "pretend play spice set kids"
  ],
  "patent_queries": [
    "aromatic container smell permeable child safe",
    "sealed spice dispenser educational apparatus",
    "olfactory learning device children",
    "scent release container safety mechanism"
  ]
}}"""


class ExpansionReply(ExpandedInvention):
    """Model reply schema: key_features must be present, unlike the profile itself."""

    key_features: list[str] = Field(...)


def build_expansion_prompt(request: NoveltyCheckRequest) -> str:
    return EXPANSION_PROMPT.format(
        invention_name=request.invention_name,
        description=request.description,
        problem_statement=request.problem_statement or "Not provided",
        target_audience=request.target_audience or "Not provided",
    )


def fallback_expansion(request: NoveltyCheckRequest) -> ExpandedInvention:
    """Deterministic expansion from the raw request fields.

    Example:
        >>> fallback_expansion(NoveltyCheckRequest(invention_name="Solar Charger",
        ...     description="Foldable panels charge phones")).web_queries
        ["Solar Charger foldable panels charge", "Solar Charger"]
    """
    words = re.sub(r"[^a-z0-9\s]", " ", request.description.lower()).split()
    keywords = [w for w in words if len(w) > 3][:5]
    basic_query = " ".join([request.invention_name, *keywords[:3]])

    return ExpandedInvention(
        expanded_description=request.description,
        key_features=list(request.key_features),
        product_category="General",
        differentiators=[],
        web_queries=[basic_query, request.invention_name],
        retail_queries=[request.invention_name, basic_query],
        patent_queries=[request.invention_name],
    )


class QueryExpander:
    """Expand an invention into per-channel query sets via the AI gateway.

    Example:
        >>> expander = QueryExpander(AIGateway.from_settings())
        >>> expanded = await expander.expand(request)
        >>> expanded.patent_queries
    """

    MODEL = "claude-3-haiku-20240307"
    MAX_TOKENS = 1500
    TEMPERATURE = 0.3  # Slight variety in query wording

    def __init__(self, gateway: AIGateway) -> None:
        self.gateway = gateway

    async def expand(self, request: NoveltyCheckRequest) -> ExpandedInvention:
        try:
            response = await self.gateway.create_completion(
                build_expansion_prompt(request),
                model=self.MODEL,
                max_tokens=self.MAX_TOKENS,
                temperature=self.TEMPERATURE,
            )
        except Exception as e:
            logger.warning("query_expansion_failed", error=str(e), fallback=True)
            return fallback_expansion(request)

        parsed = parse_model_output(response.text, ExpansionReply)
        if isinstance(parsed, ParseError):
            logger.warning("query_expansion_unparseable", reason=parsed.reason, fallback=True)
            return fallback_expansion(request)

        logger.info(
            "query_expansion_completed",
            provider=response.provider,
            model=response.model,
            web_queries=len(parsed.web_queries),
            patent_queries=len(parsed.patent_queries),
        )
        return ExpandedInvention.model_validate(parsed.model_dump())


__all__ = [
    "EXPANSION_PROMPT",
    "ExpansionReply",
    "QueryExpander",
    "build_expansion_prompt",
    "fallback_expansion",
]
