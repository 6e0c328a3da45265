"""Novelty assessment agents package."""

from novelty_agents.agents.aggregator import (
    NoveltyPipeline,
    aggregate,
    determine_risk_level,
)
from novelty_agents.agents.patent_agent import PatentQueryGenerator, PatentSearchAgent
from novelty_agents.agents.query_expander import QueryExpander, fallback_expansion
from novelty_agents.agents.retail_agent import RetailSearchAgent
from novelty_agents.agents.web_agent import WebSearchAgent

__all__ = [
    # Pipeline
    "NoveltyPipeline",
    "aggregate",
    "determine_risk_level",
    # Query expansion
    "QueryExpander",
    "fallback_expansion",
    # Channel agents
    "PatentQueryGenerator",
    "PatentSearchAgent",
    "RetailSearchAgent",
    "WebSearchAgent",
]
