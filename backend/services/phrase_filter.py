# backend/services/phrase_filter.py
"""
Phrase filter model and the one predicate every read path evaluates.

The search-index path (after verification) and the primary-store fallback both
call `evaluate` on text produced by `get_stack_trace_text` / `get_details_text`,
so the two paths cannot disagree about what a filter accepts.
"""
import json
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field


class MatchType(str, Enum):
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"


class Operator(str, Enum):
    AND = "AND"
    OR = "OR"


class TextSurface(str, Enum):
    """Logical text field a phrase filter is applied to"""
    DOCUMENT = "document"
    MESSAGE = "message"
    STACK_TRACE = "stackTrace"
    DETAILS = "details"


class MatchCondition(BaseModel):
    phrase: str = Field(min_length=1)
    matchType: MatchType = MatchType.CONTAINS


class PhraseFilter(BaseModel):
    operator: Operator = Operator.AND
    conditions: List[MatchCondition] = Field(min_length=1)


class DocFilter(MatchCondition):
    """Single condition applied across message, stack trace and details"""


def matches(text: Optional[str], condition: MatchCondition) -> bool:
    """Case-insensitive phrase test; no trimming or Unicode normalisation."""
    haystack = (text or "").lower()
    needle = condition.phrase.lower()

    if condition.matchType == MatchType.STARTS_WITH:
        return haystack.startswith(needle)
    if condition.matchType == MatchType.ENDS_WITH:
        return haystack.endswith(needle)
    return needle in haystack


def evaluate(text: Optional[str], phrase_filter: PhraseFilter) -> bool:
    """AND/OR combination of conditions; no conditions is vacuously true."""
    if not phrase_filter.conditions:
        return True

    if phrase_filter.operator == Operator.AND:
        return all(matches(text, c) for c in phrase_filter.conditions)
    return any(matches(text, c) for c in phrase_filter.conditions)


def get_stack_trace_text(source: Mapping[str, Any]) -> str:
    """Raw stack trace if present, else frame fields joined with ' | '."""
    raw = source.get("raw_stack_trace")
    if isinstance(raw, str) and raw:
        return raw

    frames = source.get("stack_trace") or []
    if not isinstance(frames, list):
        return ""

    rendered = []
    for frame in frames:
        if not isinstance(frame, Mapping):
            continue
        parts = [frame.get(key) for key in ("message", "line", "file", "function")]
        rendered.append(" ".join(str(p) for p in parts if p))
    return " | ".join(rendered)


def serialize_details(details: Optional[Dict[str, Any]]) -> str:
    # Compact separators keep the string identical to the client-side JSON form
    return json.dumps(details or {}, separators=(",", ":"), ensure_ascii=False, default=str)


def get_details_text(source: Mapping[str, Any]) -> str:
    detail_string = source.get("detail_string")
    if isinstance(detail_string, str) and detail_string:
        return detail_string

    details = source.get("details")
    if isinstance(details, Mapping):
        return serialize_details(dict(details))
    return ""


def surface_texts(source: Mapping[str, Any], surface: TextSurface) -> List[str]:
    """The string(s) a filter on `surface` is evaluated against."""
    if surface == TextSurface.MESSAGE:
        return [source.get("message") or ""]
    if surface == TextSurface.STACK_TRACE:
        return [get_stack_trace_text(source)]
    if surface == TextSurface.DETAILS:
        return [get_details_text(source)]
    return [
        source.get("message") or "",
        get_stack_trace_text(source),
        get_details_text(source),
    ]


def record_matches(source: Mapping[str, Any], surface: TextSurface, phrase_filter: PhraseFilter) -> bool:
    """Apply a filter to a stored record or index document.

    A document-wide filter accepts the record when any one surface satisfies it.
    """
    return any(evaluate(text, phrase_filter) for text in surface_texts(source, surface))
