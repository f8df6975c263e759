# backend/services/query_translator.py
"""
Builds search-index queries from the log filter model.

A query has three parts: a free-text query string (one phrase filter, at most),
a conjunctive structured clause (project scope, equality filters, time bounds)
and the field selection the text query runs against. `to_opensearch_body`
renders all three as an OpenSearch bool query.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

from services.errors import InputError
from services.phrase_filter import (
    DocFilter,
    MatchCondition,
    MatchType,
    Operator,
    PhraseFilter,
    TextSurface,
)

logger = logging.getLogger(__name__)

StrOrList = Union[str, List[str]]

# Index fields each text surface is queried against
SURFACE_FIELDS: Dict[TextSurface, List[str]] = {
    TextSurface.DOCUMENT: ["message", "stack_trace_text", "detail_string"],
    TextSurface.MESSAGE: ["message"],
    TextSurface.STACK_TRACE: ["stack_trace_text"],
    TextSurface.DETAILS: ["detail_string"],
}

SORTABLE_FIELDS = {"timestamp_ms", "created_at", "level", "environment"}
DEFAULT_SORT = "timestamp_ms:desc"

# Reserved by the query_string syntax
RESERVED_CHARACTERS = re.compile(r'([+\-=&|><!(){}\[\]^"~*?:\\/])')


class LogSearchParams(BaseModel):
    project_id: str
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=50, ge=1)  # upper bound enforced by the request layer
    level: Optional[StrOrList] = None
    environment: Optional[StrOrList] = None
    hostname: Optional[StrOrList] = None
    log_type: Optional[str] = None
    min_timestamp_ms: Optional[int] = None
    max_timestamp_ms: Optional[int] = None
    doc_filter: Optional[DocFilter] = None
    message_filter: Optional[PhraseFilter] = None
    stack_trace_filter: Optional[PhraseFilter] = None
    details_filter: Optional[PhraseFilter] = None
    sort_by: Optional[str] = None


@dataclass
class TextFilter:
    surface: TextSurface
    phrase_filter: PhraseFilter


@dataclass
class SearchQuery:
    q: str = "*"
    query_by: List[str] = field(default_factory=list)
    filter_by: List[Tuple[str, Any]] = field(default_factory=list)
    range_by: List[Tuple[str, str, int]] = field(default_factory=list)
    sort_by: Optional[str] = DEFAULT_SORT
    page: int = 1
    per_page: int = 50
    use_boolean_and: Optional[bool] = None
    text_filter: Optional[TextFilter] = None

    @property
    def has_text_query(self) -> bool:
        return self.text_filter is not None

    def filter_clause(self) -> str:
        """Human-readable form of the structured clause, e.g. `level:[ERROR,WARN]`"""
        parts = []
        for name, value in self.filter_by:
            if isinstance(value, list):
                parts.append(f"{name}:[{','.join(str(v) for v in value)}]")
            else:
                parts.append(f"{name}:{value}")
        for name, op, bound in self.range_by:
            parts.append(f"{name}:{op}{bound}")
        return " && ".join(parts)

    def to_opensearch_body(self, page: Optional[int] = None, per_page: Optional[int] = None) -> Dict[str, Any]:
        page = page or self.page
        per_page = per_page or self.per_page

        filters: List[Dict[str, Any]] = []
        for name, value in self.filter_by:
            if isinstance(value, list):
                filters.append({"terms": {name: value}})
            else:
                filters.append({"term": {name: value}})

        ranges: Dict[str, Dict[str, int]] = {}
        for name, op, bound in self.range_by:
            ranges.setdefault(name, {})["gte" if op == ">=" else "lte"] = bound
        for name, bounds in ranges.items():
            filters.append({"range": {name: bounds}})

        must: List[Dict[str, Any]] = [{"match_all": {}}]
        if self.has_text_query:
            must = [{
                "query_string": {
                    "query": self.q,
                    "fields": self.query_by,
                    "default_operator": "AND" if self.use_boolean_and else "OR",
                    "analyze_wildcard": True,
                    "allow_leading_wildcard": True,
                }
            }]

        body: Dict[str, Any] = {
            "query": {"bool": {"must": must, "filter": filters}},
            "from": (page - 1) * per_page,
            "size": per_page,
            "track_total_hits": True,
        }

        # Relevance order when a text query is active
        if self.sort_by and not self.has_text_query:
            sort_field, direction = self.sort_by.split(":")
            body["sort"] = [{sort_field: {"order": direction}}]

        return body


def escape_term(term: str) -> str:
    return RESERVED_CHARACTERS.sub(r"\\\1", term)


def condition_to_query(condition: MatchCondition) -> str:
    """contains -> quoted phrase; startsWith -> trailing wildcard; endsWith -> leading wildcard."""
    if condition.matchType == MatchType.CONTAINS:
        return '"' + condition.phrase.replace("\\", "\\\\").replace('"', '\\"') + '"'

    words = [escape_term(w) for w in condition.phrase.split()] or [escape_term(condition.phrase)]
    if condition.matchType == MatchType.STARTS_WITH:
        words[-1] = words[-1] + "*"
    else:
        words[0] = "*" + words[0]

    if len(words) == 1:
        return words[0]
    return "(" + " AND ".join(words) + ")"


def build_text_query(phrase_filter: PhraseFilter) -> Tuple[str, bool]:
    parts = [condition_to_query(c) for c in phrase_filter.conditions]
    return " ".join(parts), phrase_filter.operator == Operator.AND


def select_text_filter(params: LogSearchParams) -> Optional[TextFilter]:
    """Highest-priority filter wins: document, message, stack trace, details."""
    narrower = [params.message_filter, params.stack_trace_filter, params.details_filter]

    if params.doc_filter is not None:
        if any(f is not None for f in narrower):
            logger.warning(
                f"⚠ docFilter supersedes message/stackTrace/details filters for project {params.project_id}"
            )
        condition = MatchCondition(phrase=params.doc_filter.phrase, matchType=params.doc_filter.matchType)
        return TextFilter(TextSurface.DOCUMENT, PhraseFilter(operator=Operator.AND, conditions=[condition]))

    for surface, phrase_filter in zip(
        (TextSurface.MESSAGE, TextSurface.STACK_TRACE, TextSurface.DETAILS), narrower
    ):
        if phrase_filter is not None and phrase_filter.conditions:
            return TextFilter(surface, phrase_filter)
    return None


def validate_sort(sort_by: Optional[str]) -> str:
    if not sort_by:
        return DEFAULT_SORT

    parts = sort_by.split(":")
    if len(parts) != 2 or parts[0] not in SORTABLE_FIELDS or parts[1] not in ("asc", "desc"):
        raise InputError(f"Invalid sort directive: {sort_by}")
    return sort_by


def _equality_value(value: StrOrList) -> Union[str, List[str]]:
    if isinstance(value, list):
        return [v for v in value if v]
    return value


def translate(params: LogSearchParams) -> SearchQuery:
    query = SearchQuery(page=params.page, per_page=params.page_size)

    query.filter_by.append(("project_id", params.project_id))
    for name, value in (
        ("level", params.level),
        ("environment", params.environment),
        ("hostname", params.hostname),
        ("log_type", params.log_type),
    ):
        value = _equality_value(value) if value else None
        if value:
            query.filter_by.append((name, value))

    if params.min_timestamp_ms is not None:
        query.range_by.append(("timestamp_ms", ">=", params.min_timestamp_ms))
    if params.max_timestamp_ms is not None:
        query.range_by.append(("timestamp_ms", "<=", params.max_timestamp_ms))

    text_filter = select_text_filter(params)
    if text_filter is None:
        query.sort_by = validate_sort(params.sort_by)
        return query

    query.q, query.use_boolean_and = build_text_query(text_filter.phrase_filter)
    query.query_by = SURFACE_FIELDS[text_filter.surface]
    query.text_filter = text_filter
    query.sort_by = None
    return query
