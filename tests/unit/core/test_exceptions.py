"""Unit tests for error classification."""

import httpx
import pytest

from novelty_agents.core.exceptions import (
    SearchAuthenticationError,
    SearchBadRequestError,
    SearchNotConfiguredError,
    SearchRateLimitError,
    SearchUpstreamError,
    is_non_retryable_error,
    is_retryable_error,
)


class TestTypedErrors:
    """Typed search errors are classified by type."""

    @pytest.mark.parametrize(
        "error",
        [
            SearchRateLimitError("Tavily", "quota", 429),
            SearchUpstreamError("eBay", "boom", 502),
        ],
    )
    def test_transient_errors_retryable(self, error):
        """Test 429 and 5xx errors are retried."""
        assert is_retryable_error(error) is True
        assert is_non_retryable_error(error) is False

    @pytest.mark.parametrize(
        "error",
        [
            SearchNotConfiguredError("Tavily", "no key"),
            SearchAuthenticationError("eBay", "bad key", 401),
            SearchBadRequestError("PatentsView", "bad query", 400),
        ],
    )
    def test_fatal_errors_not_retryable(self, error):
        """Test configuration, auth and bad-request errors abort retries."""
        assert is_non_retryable_error(error) is True
        assert is_retryable_error(error) is False


class TestUntypedErrors:
    """Untyped errors fall back to type and message matching."""

    def test_transport_error_retryable(self):
        """Test httpx transport failures are retried."""
        error = httpx.ConnectError("connection refused")

        assert is_retryable_error(error) is True

    def test_timeout_message_retryable(self):
        """Test messages mentioning timeouts are retried."""
        assert is_retryable_error(RuntimeError("Request timed out")) is True

    def test_unauthorized_message_fatal(self):
        """Test 401 in the message marks the error fatal."""
        assert is_non_retryable_error(RuntimeError("HTTP 401 Unauthorized")) is True

    def test_400_with_rate_text_not_fatal(self):
        """Test a 400 that mentions rate limiting is not treated as fatal."""
        assert is_non_retryable_error(RuntimeError("400 rate limit reached")) is False

    def test_unknown_error_neither(self):
        """Test an unrelated error is neither retried nor fatal."""
        error = ValueError("unexpected payload")

        assert is_retryable_error(error) is False
        assert is_non_retryable_error(error) is False
