# backend/services/log_query.py
"""
Log search over the search index, with the primary store as fallback.

Index path: translate the filter model, fetch candidates, then re-apply the
phrase predicate to each hit (the index is typo-tolerant and tokenised, so it
can return hits that do not satisfy exact substring semantics). When a text
filter is active all candidate pages are scanned and verified before paginating,
so `total` counts verified records only.

Fallback path: read the project's records from the primary store and apply the
same predicate in memory. It is the reference semantics for the index path.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from services.errors import IndexUnavailableError
from services.log_store import LogStore, ProjectStore
from services.opensearch_client import SearchIndexClient
from services.phrase_filter import record_matches
from services.query_translator import LogSearchParams, SearchQuery, TextFilter, select_text_filter, translate, validate_sort

logger = logging.getLogger(__name__)


@dataclass
class LogPage:
    logs: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 50
    source: str = "index"

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "logs": self.logs,
            "pagination": {
                "page": self.page,
                "pageSize": self.page_size,
                "total": self.total,
                "totalPages": self.total_pages,
            },
        }


def verify_hits(hits: List[Mapping[str, Any]], text_filter: Optional[TextFilter]) -> List[Mapping[str, Any]]:
    """Drop hits whose real field values do not satisfy the phrase filter"""
    if text_filter is None:
        return list(hits)
    return [
        hit for hit in hits
        if record_matches(hit, text_filter.surface, text_filter.phrase_filter)
    ]


def paginate(items: List[Any], page: int, page_size: int) -> List[Any]:
    start = (page - 1) * page_size
    return items[start:start + page_size]


class LogQueryService:
    def __init__(
        self,
        log_store: LogStore,
        project_store: ProjectStore,
        search_index: Optional[SearchIndexClient] = None,
        scan_page_size: int = 250,
        scan_max_hits: int = 10000,
    ):
        self.log_store = log_store
        self.project_store = project_store
        self.search_index = search_index
        self.scan_page_size = scan_page_size
        self.scan_max_hits = scan_max_hits

    async def search_logs(self, params: LogSearchParams) -> LogPage:
        # Unresolvable project is a hard precondition failure
        await self.project_store.get_project(params.project_id)

        if self.search_index is not None and self.search_index.is_available:
            try:
                return await self._search_index(params)
            except IndexUnavailableError as e:
                logger.warning(f"⚠ Search index unavailable, using primary store: {e.detail or e.message}")

        return await self.search_primary_store(params)

    async def _search_index(self, params: LogSearchParams) -> LogPage:
        query = translate(params)

        if not query.has_text_query:
            result = await self.search_index.search(query.to_opensearch_body())
            return LogPage(
                logs=result["hits"],
                total=result["total"],
                page=params.page,
                page_size=params.page_size,
            )

        candidates = await self._scan_candidates(query)
        verified = verify_hits(candidates, query.text_filter)
        return LogPage(
            logs=paginate(verified, params.page, params.page_size),
            total=len(verified),
            page=params.page,
            page_size=params.page_size,
        )

    async def _scan_candidates(self, query: SearchQuery) -> List[Dict[str, Any]]:
        candidates: List[Dict[str, Any]] = []
        page = 1

        while len(candidates) < self.scan_max_hits:
            result = await self.search_index.search(
                query.to_opensearch_body(page=page, per_page=self.scan_page_size)
            )
            hits = result["hits"]
            candidates.extend(hits)

            if not hits or page * self.scan_page_size >= result["total"]:
                break
            page += 1

        if len(candidates) >= self.scan_max_hits:
            logger.warning(f"⚠ Candidate scan capped at {self.scan_max_hits} hits")
        return candidates[:self.scan_max_hits]

    async def search_primary_store(self, params: LogSearchParams) -> LogPage:
        """Fallback evaluator: same predicate, applied in memory"""
        records = await self.log_store.find_logs(
            params.project_id,
            level=params.level,
            environment=params.environment,
            hostname=params.hostname,
            log_type=params.log_type,
            min_timestamp_ms=params.min_timestamp_ms,
            max_timestamp_ms=params.max_timestamp_ms,
        )
        logs = [record.to_dict() for record in records]

        text_filter = select_text_filter(params)
        if text_filter is not None:
            logger.info(f"Filtering {len(logs)} records client-side for project {params.project_id}")
            logs = verify_hits(logs, text_filter)
        elif params.sort_by:
            sort_field, direction = validate_sort(params.sort_by).split(":")
            present = [log for log in logs if log.get(sort_field) is not None]
            present.sort(key=lambda log: log[sort_field], reverse=direction == "desc")
            # Records without the field go last in either direction
            logs = present + [log for log in logs if log.get(sort_field) is None]

        return LogPage(
            logs=paginate(logs, params.page, params.page_size),
            total=len(logs),
            page=params.page,
            page_size=params.page_size,
            source="primary",
        )
