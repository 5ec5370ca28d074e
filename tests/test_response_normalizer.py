"""
Tests for the AI-JSON response normalizer.

Covers:
- Valid JSON passes through untouched (including non-object values)
- Fence stripping, prose removal, first-balanced-object truncation
- Braces inside JSON strings
- Regex fallback over the raw text
- MalformedAIResponse shape (code, 100-char excerpt)
- require_keys / SchemaMismatch
- Model attribution scrubbing
"""

import json

import pytest

from mindforge.core.errors import MindforgeError
from mindforge.services.response_normalizer import (
    MalformedAIResponse,
    SchemaMismatch,
    clean_json_text,
    normalize,
    require_keys,
    scrub_model_references,
)


class TestValidJson:
    @pytest.mark.parametrize(
        "raw",
        [
            '{"a": 1}',
            '{"projectName": "X", "features": [{"id": "f1", "title": "Login"}]}',
            "[1, 2, 3]",
            '"just a string"',
            "42",
            "  {\"padded\": true}  \n",
        ],
    )
    def test_matches_json_loads(self, raw):
        """Already-valid JSON returns exactly what json.loads returns."""
        assert normalize(raw) == json.loads(raw)

    def test_no_stripping_of_valid_json_string_content(self):
        """Fence-like text inside a valid document is preserved."""
        raw = '{"snippet": "```json\\n{}\\n```"}'
        assert normalize(raw) == {"snippet": "```json\n{}\n```"}


class TestFences:
    def test_json_fence(self):
        """```json ... ``` normalizes like the unwrapped contents."""
        inner = '{"a": 1, "b": [true, null]}'
        assert normalize(f"```json\n{inner}\n```") == normalize(inner)

    def test_bare_fence(self):
        inner = '{"a": {"b": 2}}'
        assert normalize(f"```\n{inner}\n```") == json.loads(inner)

    def test_fence_with_surrounding_whitespace(self):
        assert normalize('\n\n  ```json\n{"a": 1}\n```  \n') == {"a": 1}

    def test_prose_around_fence(self):
        """Prose before and after a fenced object is discarded."""
        raw = 'Sure! Here is the JSON:\n```json\n{"a":1}\n```\nLet me know if you need changes.'
        assert normalize(raw) == {"a": 1}


class TestTrailingContent:
    def test_first_balanced_object_wins(self):
        """A second object after the first is ignored."""
        assert normalize('{"a":1}{"b":2} extra') == {"a": 1}

    def test_trailing_prose(self):
        raw = '{"projectName": "Todo", "features": []}\n\nI hope this helps! {let me know}'
        assert normalize(raw) == {"projectName": "Todo", "features": []}

    def test_leading_prose(self):
        raw = 'Here is your mindmap: {"projectName": "Todo"}'
        assert normalize(raw) == {"projectName": "Todo"}

    def test_braces_inside_strings_do_not_end_object(self):
        """String contents are skipped when counting depth."""
        raw = '{"code": "function f() { return \\"}\\"; }", "n": 1} trailing }'
        assert normalize(raw) == {"code": 'function f() { return "}"; }', "n": 1}

    def test_nested_objects(self):
        raw = 'text {"a": {"b": {"c": [1, {"d": 2}]}}} more {"x": 1}'
        assert normalize(raw) == {"a": {"b": {"c": [1, {"d": 2}]}}}


class TestCleanJsonText:
    def test_returns_cleaned_slice(self):
        assert clean_json_text('```json\n{"a": 1}\n``` bye') == '{"a": 1}'

    def test_without_braces_returns_stripped_text(self):
        assert clean_json_text("```\nhello\n```") == "hello"


class TestMalformed:
    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "I'm sorry, I can't help with that.",
            "```json\nnot json\n```",
            "[1, 2",
            "}{",
        ],
    )
    def test_no_object_span_raises_malformed(self, raw):
        """No parseable {...} span yields MalformedAIResponse, nothing else."""
        with pytest.raises(MalformedAIResponse):
            normalize(raw)

    def test_unparseable_braces_raise_malformed(self):
        with pytest.raises(MalformedAIResponse):
            normalize('{"a": 1,, "b": }')

    def test_error_carries_100_char_excerpt(self):
        raw = "x" * 250
        with pytest.raises(MalformedAIResponse) as exc_info:
            normalize(raw, context="mindmap")
        err = exc_info.value
        assert err.raw_excerpt == "x" * 100
        assert err.code == "MF-LLM-002"
        assert err.payload == {"rawExcerpt": "x" * 100}
        assert "mindmap" in err.detail

    def test_is_mindforge_error(self):
        with pytest.raises(MindforgeError):
            normalize("nope")

    @pytest.mark.parametrize("value", [None, 123, b'{"a": 1}', {"a": 1}])
    def test_non_string_input(self, value):
        """Non-string input is reported as malformed, not a TypeError."""
        with pytest.raises(MalformedAIResponse):
            normalize(value)

    def test_deeply_nested_array_raises_malformed(self):
        """Nesting past the parser's recursion limit is still malformed."""
        raw = "[" * 100000
        with pytest.raises(MalformedAIResponse) as exc_info:
            normalize(raw)
        assert exc_info.value.raw_excerpt == "[" * 100

    def test_deeply_nested_object_raises_malformed(self):
        raw = "prefix " + '{"a":' * 100000 + "1" + "}" * 100000
        with pytest.raises(MalformedAIResponse) as exc_info:
            normalize(raw, context="mindmap")
        assert exc_info.value.raw_excerpt.startswith('prefix {"a":')


class TestRequireKeys:
    def test_passes_through(self):
        parsed = {"projectName": "X", "features": [], "extra": 1}
        assert require_keys(parsed, ["projectName", "features"]) is parsed

    def test_missing_keys_listed(self):
        with pytest.raises(SchemaMismatch) as exc_info:
            require_keys({"projectName": "X"}, ["projectName", "features", "description"])
        assert exc_info.value.missing_keys == ["features", "description"]
        assert exc_info.value.code == "MF-LLM-003"
        assert exc_info.value.payload == {"missingKeys": ["features", "description"]}

    def test_non_object_rejected(self):
        with pytest.raises(SchemaMismatch) as exc_info:
            require_keys([1, 2], ["files"], context="code")
        assert exc_info.value.missing_keys == ["files"]
        assert "list" in exc_info.value.detail

    def test_no_required_keys_accepts_any_object(self):
        assert require_keys({}, []) == {}


class TestScrubModelReferences:
    def test_removes_attribution_lines(self):
        text = "# Overview\n## Model: claude-sonnet-4\nBody text\nGenerated by Claude on Monday\nEnd"
        assert scrub_model_references(text) == "# Overview\nBody text\nEnd"

    def test_recurses_into_containers(self):
        value = {
            "overview": "Intro\nModel: claude-3\nRest",
            "userStories": ["As a user\n### Generated by: AI", 3],
            "meta": {"note": "uses claude-sonnet-4-20250514 here\nkeep"},
            "count": 2,
        }
        assert scrub_model_references(value) == {
            "overview": "Intro\nRest",
            "userStories": ["As a user\n", 3],
            "meta": {"note": "keep"},
            "count": 2,
        }

    def test_leaves_clean_text_alone(self):
        assert scrub_model_references("Plain PRD text") == "Plain PRD text"
