"""Schemas for the AI completion gateway."""

from typing import Literal

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """Single chat message (system prompts are passed separately)."""

    role: Literal["user", "assistant"] = Field(..., description="Message role")
    content: str = Field(..., description="Message content")


class CompletionOptions(BaseModel):
    """Per-call completion options.

    ``model`` is always a primary-provider (Anthropic) model name; the
    gateway translates it when falling back.
    """

    model: str = Field(default="claude-3-haiku-20240307", description="Primary model name")
    max_tokens: int = Field(default=2048, ge=1, le=32000, description="Maximum tokens to generate")
    temperature: float = Field(default=0.0, ge=0.0, le=2.0, description="Sampling temperature")

    model_config = {"frozen": True}


class ProviderStatus(BaseModel):
    """Which providers the gateway can use."""

    anthropic: bool = Field(..., description="Anthropic (primary) configured")
    openai: bool = Field(..., description="OpenAI (fallback) configured")
    primary: Literal["anthropic", "openai"] | None = Field(
        default=None, description="Provider tried first"
    )
