"""AI completion gateway with provider failover.

Anthropic is the primary provider and OpenAI the fallback. A failed primary
call is retried on the fallback only for error classes that the fallback can
plausibly survive (exhausted credit, rate limiting, overload, unavailable
model). Anything else, e.g. a malformed prompt, would fail identically on the
second provider and is raised immediately.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any

import anthropic
import openai
import structlog

from ...core.config import settings
from ...core.exceptions import AIConfigurationError
from ...models.novelty import CompletionResult
from .schemas import ChatMessage, CompletionOptions, ProviderStatus

logger = structlog.get_logger(__name__)

# Primary-provider model -> fallback-provider model
MODEL_MAPPING: dict[str, str] = {
    "claude-3-haiku-20240307": "gpt-4o-mini",
    "claude-3-sonnet-20240229": "gpt-4o",
    "claude-3-opus-20240229": "gpt-4o",
    "claude-3-5-sonnet-20241022": "gpt-4o",
}

_FALLBACK_PATTERNS = re.compile(
    r"credit|billing|balance|rate.?limit|\b429\b|overloaded|\b503\b|\b529\b", re.IGNORECASE
)
_MODEL_UNAVAILABLE = re.compile(
    r"model.*(not.?found|not available|unavailable|does not exist|deprecated)",
    re.IGNORECASE,
)


def map_model(model: str, default: str | None = None) -> str:
    """Translate a primary-provider model name for the fallback provider."""
    return MODEL_MAPPING.get(model, default or settings.AI_FALLBACK_DEFAULT_MODEL)


def should_fallback(error: BaseException) -> bool:
    """Return True if a primary-provider error warrants trying the fallback.

    Example:
        >>> should_fallback(anthropic.RateLimitError(...))
        True
        >>> should_fallback(anthropic.BadRequestError("prompt too long", ...))
        False
    """
    if isinstance(error, (anthropic.RateLimitError, anthropic.InternalServerError)):
        return True

    message = str(error)
    status = getattr(error, "status_code", None)
    if status in (429, 503, 529) or _FALLBACK_PATTERNS.search(message):
        return True

    is_bad_request = isinstance(error, anthropic.BadRequestError) or status == 400
    return is_bad_request and bool(_MODEL_UNAVAILABLE.search(message))


class AIGateway:
    """Completion client routing between Anthropic and OpenAI.

    Clients are created once per gateway instance; pass pre-built clients in
    tests.

    Example:
        >>> gateway = AIGateway(anthropic_api_key="sk-ant-...", openai_api_key="sk-...")
        >>> result = await gateway.create_completion("Summarize this", max_tokens=512)
        >>> result.provider
        'anthropic'
    """

    def __init__(
        self,
        anthropic_api_key: str | None = None,
        openai_api_key: str | None = None,
        *,
        anthropic_client: anthropic.AsyncAnthropic | None = None,
        openai_client: openai.AsyncOpenAI | None = None,
        timeout: float | None = None,
    ) -> None:
        timeout = timeout or settings.AI_TIMEOUT_SECONDS

        self._anthropic = anthropic_client
        if self._anthropic is None and anthropic_api_key:
            self._anthropic = anthropic.AsyncAnthropic(api_key=anthropic_api_key, timeout=timeout)

        self._openai = openai_client
        if self._openai is None and openai_api_key:
            self._openai = openai.AsyncOpenAI(api_key=openai_api_key, timeout=timeout)

    @classmethod
    def from_settings(cls) -> "AIGateway":
        return cls(
            anthropic_api_key=settings.ANTHROPIC_API_KEY,
            openai_api_key=settings.OPENAI_API_KEY,
        )

    def available_providers(self) -> list[str]:
        providers = []
        if self._anthropic is not None:
            providers.append("anthropic")
        if self._openai is not None:
            providers.append("openai")
        return providers

    def provider_status(self) -> ProviderStatus:
        providers = self.available_providers()
        return ProviderStatus(
            anthropic="anthropic" in providers,
            openai="openai" in providers,
            primary=providers[0] if providers else None,  # type: ignore[arg-type]
        )

    async def create_completion(
        self,
        prompt: str,
        system_prompt: str | None = None,
        *,
        model: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.0,
    ) -> CompletionResult:
        """Single-prompt completion.

        Args:
            prompt: User prompt
            system_prompt: Optional system instruction
            model: Primary-provider model name (defaults to AI_DEFAULT_MODEL)
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature

        Returns:
            CompletionResult with text, provider and the model actually used

        Raises:
            AIConfigurationError: If no provider is configured
            Exception: Primary error that does not warrant fallback, or the
                fallback provider's error
        """
        return await self.create_chat_completion(
            [ChatMessage(role="user", content=prompt)],
            system_prompt,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
        )

    async def create_chat_completion(
        self,
        messages: Sequence[ChatMessage | dict[str, str]],
        system_prompt: str | None = None,
        *,
        model: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.0,
    ) -> CompletionResult:
        """Multi-message completion with the same failover rules."""
        options = CompletionOptions(
            model=model or settings.AI_DEFAULT_MODEL,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        chat = [m if isinstance(m, ChatMessage) else ChatMessage(**m) for m in messages]

        if self._anthropic is None and self._openai is None:
            raise AIConfigurationError(
                "Both Anthropic and OpenAI are unavailable. "
                "Check API keys: ANTHROPIC_API_KEY and OPENAI_API_KEY"
            )

        if self._anthropic is None:
            logger.info("ai_primary_not_configured", fallback="openai")
            return await self._openai_completion(chat, system_prompt, options)

        try:
            return await self._anthropic_completion(chat, system_prompt, options)
        except Exception as e:
            if self._openai is None or not should_fallback(e):
                logger.error("ai_completion_failed", provider="anthropic", error=str(e))
                raise
            logger.warning(
                "ai_fallback_triggered",
                provider="anthropic",
                fallback_model=map_model(options.model),
                error=str(e),
            )
            return await self._openai_completion(chat, system_prompt, options)

    async def _anthropic_completion(
        self,
        messages: list[ChatMessage],
        system_prompt: str | None,
        options: CompletionOptions,
    ) -> CompletionResult:
        assert self._anthropic is not None
        params: dict[str, Any] = {
            "model": options.model,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "messages": [m.model_dump() for m in messages],
        }
        if system_prompt:
            params["system"] = system_prompt

        response = await self._anthropic.messages.create(**params)
        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        logger.info("ai_completion_succeeded", provider="anthropic", model=options.model)
        return CompletionResult(text=text, provider="anthropic", model=options.model)

    async def _openai_completion(
        self,
        messages: list[ChatMessage],
        system_prompt: str | None,
        options: CompletionOptions,
    ) -> CompletionResult:
        assert self._openai is not None
        model = map_model(options.model)
        chat: list[dict[str, str]] = []
        if system_prompt:
            chat.append({"role": "system", "content": system_prompt})
        chat.extend(m.model_dump() for m in messages)

        response = await self._openai.chat.completions.create(
            model=model,
            messages=chat,  # type: ignore[arg-type]
            max_tokens=options.max_tokens,
            temperature=options.temperature,
        )
        text = response.choices[0].message.content or ""
        logger.info("ai_completion_succeeded", provider="openai", model=model)
        return CompletionResult(text=text, provider="openai", model=model)


__all__ = ["AIGateway", "MODEL_MAPPING", "map_model", "should_fallback"]
