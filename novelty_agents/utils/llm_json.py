"""Strict parsing of language-model JSON output.

Model replies are validated against a pydantic schema immediately after the
call. Callers receive either the validated model or a ``ParseError`` and take
their fallback path only on the latter.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import TypeVar

import structlog
from pydantic import BaseModel, ValidationError

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE = re.compile(r"```(?:json)?\s*\n(.*?)\n?```", re.DOTALL | re.IGNORECASE)


@dataclass(frozen=True)
class ParseError:
    """Model output that could not be turned into the expected schema."""

    reason: str
    raw_text: str = ""


def extract_json_from_markdown(content: str) -> str:
    """Extract JSON from markdown code blocks.

    Some models wrap JSON responses in ```json...``` or ```...``` blocks, or
    add prose around a bare object.

    Args:
        content: Raw LLM response text

    Returns:
        Cleaned JSON string
    """
    text = content.strip()
    match = _FENCE.search(text)
    if match:
        return match.group(1).strip()
    if text.startswith("{") or text.startswith("["):
        return text

    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        return text[start : end + 1]
    return text


def parse_model_output(content: str, schema: type[ModelT]) -> ModelT | ParseError:
    """Parse and validate an LLM reply against ``schema``.

    Example:
        >>> parsed = parse_model_output(reply.text, WebAnalysis)
        >>> if isinstance(parsed, ParseError):
        ...     return degraded_result()
    """
    json_text = extract_json_from_markdown(content)
    try:
        payload = json.loads(json_text)
    except json.JSONDecodeError as e:
        logger.warning("llm_json_decode_failed", schema=schema.__name__, error=str(e))
        return ParseError(reason=f"invalid JSON: {e}", raw_text=content)

    if not isinstance(payload, dict):
        return ParseError(reason="expected a JSON object", raw_text=content)

    try:
        return schema.model_validate(payload)
    except ValidationError as e:
        logger.warning(
            "llm_json_validation_failed", schema=schema.__name__, errors=e.error_count()
        )
        return ParseError(reason=f"schema mismatch: {e.error_count()} errors", raw_text=content)


__all__ = ["ParseError", "extract_json_from_markdown", "parse_model_output"]
