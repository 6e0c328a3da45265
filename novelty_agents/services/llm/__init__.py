"""AI completion gateway (Anthropic primary, OpenAI fallback)."""

from .ai_gateway import MODEL_MAPPING, AIGateway, map_model, should_fallback

__all__ = [
    "AIGateway",
    "MODEL_MAPPING",
    "map_model",
    "should_fallback",
]
