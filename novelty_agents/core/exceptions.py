"""Exception taxonomy and error classifiers for outbound calls.

Search providers raise typed ``SearchClientError`` subclasses so callers can
tell a missing credential from a rejected one, a throttled call from a
malformed query. Untyped errors (transport failures, SDK errors) are
classified by type first and by message text second.
"""

from __future__ import annotations

import re

import httpx


class NoveltyError(Exception):
    """Base exception for the novelty assessment service."""

    pass


class AIConfigurationError(NoveltyError):
    """Raised when no AI provider is configured."""

    pass


class SearchClientError(NoveltyError):
    """Base error for channel search clients.

    Attributes:
        provider: Provider label (e.g. "Tavily", "eBay", "PatentsView")
        status_code: HTTP status code, when the error came from a response
    """

    def __init__(self, provider: str, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.message = message
        self.status_code = status_code


class SearchNotConfiguredError(SearchClientError):
    """Provider credentials are missing."""


class SearchAuthenticationError(SearchClientError):
    """Provider rejected the credentials (401/403)."""


class SearchRateLimitError(SearchClientError):
    """Provider quota exceeded (429)."""


class SearchBadRequestError(SearchClientError):
    """Provider rejected the query (400)."""


class SearchUpstreamError(SearchClientError):
    """Provider returned a 5xx or an unexpected status."""


_RETRYABLE_PATTERNS = re.compile(
    r"\b5\d\d\b|network|timeout|timed out|econnreset|econnrefused|socket hang up|\b429\b|rate limit",
    re.IGNORECASE,
)
_FATAL_PATTERNS = re.compile(r"\b401\b|\b403\b|unauthorized|forbidden", re.IGNORECASE)


def is_non_retryable_error(error: BaseException) -> bool:
    """Return True for errors that must abort retries immediately.

    Configuration, authentication and malformed-request errors would fail the
    same way on every attempt.
    """
    if isinstance(
        error, (SearchNotConfiguredError, SearchAuthenticationError, SearchBadRequestError)
    ):
        return True
    if isinstance(error, SearchClientError):
        return False

    message = str(error).lower()
    if _FATAL_PATTERNS.search(message):
        return True
    return bool(re.search(r"\b400\b", message)) and "rate" not in message


def is_retryable_error(error: BaseException) -> bool:
    """Return True for transient errors worth another attempt.

    Example:
        >>> is_retryable_error(SearchRateLimitError("Tavily", "quota", 429))
        True
        >>> is_retryable_error(SearchAuthenticationError("Tavily", "bad key", 401))
        False
    """
    if isinstance(error, (SearchRateLimitError, SearchUpstreamError)):
        return True
    if isinstance(error, SearchClientError):
        return False
    if isinstance(error, (httpx.TransportError, TimeoutError)):
        return True
    return bool(_RETRYABLE_PATTERNS.search(str(error)))


__all__ = [
    "AIConfigurationError",
    "NoveltyError",
    "SearchAuthenticationError",
    "SearchBadRequestError",
    "SearchClientError",
    "SearchNotConfiguredError",
    "SearchRateLimitError",
    "SearchUpstreamError",
    "is_non_retryable_error",
    "is_retryable_error",
]
