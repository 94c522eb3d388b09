"""Parsing of loosely-structured JSON returned by completion services.

Models are asked for JSON but do not reliably return it: replies may be wrapped
in markdown code fences, may be a bare list, or may be prose. Every reply is
reduced to one of three results so the pipeline never handles raw text.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Union

from memoir.models.conversation_analysis import SkipReason

_FENCED_BLOCK = re.compile(r"```[a-zA-Z]*\s*(.*?)\s*```", re.DOTALL)
_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*\s*")


@dataclass(frozen=True)
class Insights:
    """Structured data extracted or merged by the model."""

    data: dict[str, Any]


@dataclass(frozen=True)
class Skip:
    """The model decided the conversation carries nothing worth remembering."""

    reason: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ParseFailure:
    """The reply could not be interpreted as a JSON object."""

    raw_text: str
    error: str


ParsedResponse = Union[Insights, Skip, ParseFailure]


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` (or bare ```) fence."""
    cleaned = text.strip()
    if "```" not in cleaned:
        return cleaned
    match = _FENCED_BLOCK.search(cleaned)
    if match:
        return match.group(1).strip()
    # Unterminated fence
    return _FENCE_OPEN.sub("", cleaned).strip()


def _load_object(text: str | None) -> dict[str, Any] | ParseFailure:
    raw = text or ""
    cleaned = strip_code_fences(raw)
    if not cleaned:
        return ParseFailure(raw_text=raw, error="empty response")
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        return ParseFailure(raw_text=raw, error=f"invalid JSON: {exc}")
    if not isinstance(data, dict):
        return ParseFailure(raw_text=raw, error=f"expected JSON object, got {type(data).__name__}")
    return data


def parse_extraction_response(text: str | None) -> ParsedResponse:
    """Interpret a per-conversation extraction reply."""
    data = _load_object(text)
    if isinstance(data, ParseFailure):
        return data
    if data.get("skipped") is True or data.get("skip") is True:
        reason = data.get("reason") or SkipReason.INSUFFICIENT_QUALITY.value
        return Skip(reason=str(reason), payload=data)
    return Insights(data=data)


def parse_merge_response(text: str | None) -> Insights | ParseFailure:
    """Interpret a profile merge reply. Skip markers are not meaningful here."""
    data = _load_object(text)
    if isinstance(data, ParseFailure):
        return data
    return Insights(data=data)
