"""
Response Normalizer
===================

PURPOSE:
    Turn the free-form text an LLM returns when asked for "only JSON" into
    a parsed object. Models routinely wrap the object in code fences, prepend
    "Here is your JSON:", or append an explanation (sometimes a second
    object). ``normalize`` strips that noise on a best-effort basis and
    never fabricates data: it either returns what a JSON parser produced
    from some slice of the input, or raises ``MalformedAIResponse``.

STEPS (first successful parse wins, later steps never "improve" a result):
    1. Parse the text as-is.
    2. Strip a leading fence (```, ```json) and a trailing fence; trim.
    3. Slice from the first "{" to the last "}".
    4. Walk forward counting brace depth (ignoring braces inside JSON
       strings) and cut where depth first returns to zero.
    5. Parse the result of 4; failing that, regex-search the ORIGINAL
       text for a "{...}" span and parse that.

SHAPE CHECK:
    ``require_keys`` layers a minimal shape check on top: the result must be
    a JSON object containing the caller's required top-level keys, otherwise
    ``SchemaMismatch``.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable, Optional

from mindforge.core.errors import MindforgeError

logger = logging.getLogger(__name__)

__all__ = [
    "JSON_ONLY_INSTRUCTION",
    "MalformedAIResponse",
    "SchemaMismatch",
    "clean_json_text",
    "normalize",
    "require_keys",
    "scrub_model_references",
]

RAW_EXCERPT_CHARS = 100
LOG_SNIPPET_CHARS = 500

JSON_ONLY_INSTRUCTION = """CRITICAL JSON FORMATTING RULES:
- Return ONLY a valid JSON object
- No markdown, no code blocks, no backticks
- No explanation before or after the JSON
- Start your response with { and end with }
- Do not wrap the JSON in ```json or ```
- Ensure all strings are properly escaped
- Ensure all property names are double-quoted"""

_LEADING_FENCE = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*\r?\n?")
_TRAILING_FENCE = re.compile(r"\r?\n?[ \t]*```\s*$")
_FALLBACK_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class MalformedAIResponse(MindforgeError):
    """No normalization step produced parseable JSON."""

    def __init__(self, raw_text: str, context: str = "AI response", reason: str | None = None) -> None:
        self.raw_excerpt = raw_text[:RAW_EXCERPT_CHARS]
        super().__init__(
            "MF-LLM-002",
            detail=(
                f"Failed to parse JSON response for {context}. "
                f'Raw response started with: "{self.raw_excerpt}..."'
            ),
            context={"context": context, "reason": reason, "raw_length": len(raw_text)},
            payload={"rawExcerpt": self.raw_excerpt},
        )


class SchemaMismatch(MindforgeError):
    """Parsed JSON is not an object, or lacks required top-level keys."""

    def __init__(self, missing_keys: list[str], context: str = "AI response", found_type: str = "object") -> None:
        self.missing_keys = missing_keys
        super().__init__(
            "MF-LLM-003",
            detail=f"{context}: expected JSON object with keys {missing_keys}, got {found_type}",
            context={"context": context, "found_type": found_type},
            payload={"missingKeys": missing_keys},
        )


# ---------------------------------------------------------------------------
# Cleanup
# ---------------------------------------------------------------------------

def _strip_fences(text: str) -> str:
    text = _LEADING_FENCE.sub("", text.strip(), count=1)
    text = _TRAILING_FENCE.sub("", text, count=1)
    return text.strip()


def _bound_braces(text: str) -> str:
    first = text.find("{")
    last = text.rfind("}")
    if first != -1 and last > first:
        return text[first:last + 1]
    return text


def _truncate_balanced(text: str) -> str:
    """Cut ``text`` right after the first top-level object closes."""
    depth = 0
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = depth > 0
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[:i + 1]
    return text


def clean_json_text(raw_text: str) -> str:
    """Apply fence stripping, brace bounding and balanced truncation."""
    cleaned = _strip_fences(raw_text)
    cleaned = _bound_braces(cleaned)
    cleaned = _truncate_balanced(cleaned)
    return cleaned.strip()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def normalize(raw_text: str, context: str = "AI response") -> Any:
    """Parse ``raw_text`` as JSON, recovering from common LLM wrapping.

    Raises:
        MalformedAIResponse: if every step fails. Carries the first
            100 characters of the raw text.
    """
    if not isinstance(raw_text, str):
        raise MalformedAIResponse(repr(raw_text), context=context, reason="not a string")

    # Fast path: well-behaved models
    try:
        return json.loads(raw_text)
    except (ValueError, RecursionError):
        pass

    cleaned = clean_json_text(raw_text)
    try:
        return json.loads(cleaned)
    except (ValueError, RecursionError) as parse_error:
        logger.error(
            "ai_json_parse_failed",
            extra={
                "parse.context": context,
                "parse.error": str(parse_error),
                "parse.raw_head": raw_text[:LOG_SNIPPET_CHARS],
                "parse.raw_tail": raw_text[-LOG_SNIPPET_CHARS:],
                "parse.cleaned_head": cleaned[:LOG_SNIPPET_CHARS],
            },
        )
        last_error: Optional[str] = str(parse_error)

    # Last resort: greedy object search over the original text
    match = _FALLBACK_OBJECT.search(raw_text)
    if match:
        try:
            result = json.loads(match.group(0))
            logger.info("ai_json_fallback_recovered", extra={"parse.context": context})
            return result
        except (ValueError, RecursionError) as fallback_error:
            last_error = str(fallback_error)
            logger.error(
                "ai_json_fallback_failed",
                extra={"parse.context": context, "parse.error": last_error},
            )

    raise MalformedAIResponse(raw_text, context=context, reason=last_error)


def require_keys(parsed: Any, keys: Iterable[str], context: str = "AI response") -> dict:
    """Return ``parsed`` if it is a dict holding every key in ``keys``."""
    keys = list(keys)
    if not isinstance(parsed, dict):
        raise SchemaMismatch(keys, context=context, found_type=type(parsed).__name__)
    missing = [k for k in keys if k not in parsed]
    if missing:
        raise SchemaMismatch(missing, context=context)
    return parsed


# ---------------------------------------------------------------------------
# Model attribution scrubbing
# ---------------------------------------------------------------------------

_ATTRIBUTION_PATTERNS = [
    re.compile(r"#{1,6}\s*Model:?[^\n]*\n?", re.IGNORECASE),
    re.compile(r"#{1,6}\s*Generated by:?[^\n]*\n?", re.IGNORECASE),
    re.compile(r"Model:\s*claude[^\n]*\n?", re.IGNORECASE),
    re.compile(r"Generated by Claude[^\n]*\n?", re.IGNORECASE),
]


def _scrub_text(text: str) -> str:
    for pattern in _ATTRIBUTION_PATTERNS:
        text = pattern.sub("", text)
    if "claude-sonnet" in text.lower():
        text = "\n".join(line for line in text.split("\n") if "claude-sonnet" not in line.lower())
    return text


def scrub_model_references(value: Any) -> Any:
    """Recursively remove model attribution lines from every string."""
    if isinstance(value, str):
        return _scrub_text(value)
    if isinstance(value, list):
        return [scrub_model_references(v) for v in value]
    if isinstance(value, dict):
        return {k: scrub_model_references(v) for k, v in value.items()}
    return value
