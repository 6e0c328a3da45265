"""Unit tests for strict model-output parsing."""

from pydantic import BaseModel

from novelty_agents.utils.llm_json import ParseError, extract_json_from_markdown, parse_model_output


class Verdict(BaseModel):
    is_novel: bool
    confidence: float


class TestExtractJson:
    """Test JSON extraction from model replies."""

    def test_fenced_json_block(self):
        """Test ```json fences are stripped."""
        content = 'Here you go:\n```json\n{"is_novel": true}\n```'

        assert extract_json_from_markdown(content) == '{"is_novel": true}'

    def test_bare_fence(self):
        """Test plain ``` fences are stripped."""
        assert extract_json_from_markdown('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_prose_around_object(self):
        """Test surrounding prose is trimmed to the outer braces."""
        content = 'Analysis follows {"a": {"b": 2}} hope this helps'

        assert extract_json_from_markdown(content) == '{"a": {"b": 2}}'

    def test_plain_json_untouched(self):
        """Test a plain JSON reply passes through."""
        assert extract_json_from_markdown('  {"a": 1}  ') == '{"a": 1}'


class TestParseModelOutput:
    """Test validation against a schema."""

    def test_valid_reply(self):
        """Test a valid reply returns the validated model."""
        parsed = parse_model_output('{"is_novel": false, "confidence": 0.8}', Verdict)

        assert isinstance(parsed, Verdict)
        assert parsed.confidence == 0.8

    def test_invalid_json(self):
        """Test undecodable text yields a ParseError."""
        parsed = parse_model_output("I could not find anything.", Verdict)

        assert isinstance(parsed, ParseError)
        assert parsed.reason.startswith("invalid JSON")
        assert parsed.raw_text == "I could not find anything."

    def test_schema_mismatch(self):
        """Test missing required fields yield a ParseError."""
        parsed = parse_model_output('{"confidence": 0.8}', Verdict)

        assert isinstance(parsed, ParseError)
        assert parsed.reason.startswith("schema mismatch")

    def test_non_object_payload(self):
        """Test a JSON array is rejected."""
        parsed = parse_model_output("[1, 2, 3]", Verdict)

        assert isinstance(parsed, ParseError)
        assert parsed.reason == "expected a JSON object"
