# backend/services/log_deletion.py
"""
Deletes logs from the primary store, then best-effort from the search index.

The primary store is authoritative: it is deleted in bounded batches (one
transaction per batch) and any failure there propagates. Only then is the
index mirror cleaned up; mirror failures are logged and never change the
returned count, which reflects the primary store alone. Re-running with the
same filters is safe: already-deleted records are simply not found again.
"""
import logging
from typing import List, Optional

from services.errors import MirrorInconsistencyError
from services.log_store import LogStore, ProjectStore
from services.opensearch_client import SearchIndexClient
from services.query_translator import SearchQuery
from services.time_window import require_time_filters

logger = logging.getLogger(__name__)


class LogDeletionCoordinator:
    def __init__(
        self,
        log_store: LogStore,
        project_store: ProjectStore,
        search_index: Optional[SearchIndexClient] = None,
        batch_size: int = 500,
        mirror_page_size: int = 250,
    ):
        self.log_store = log_store
        self.project_store = project_store
        self.search_index = search_index
        self.batch_size = batch_size
        self.mirror_page_size = mirror_page_size

    async def delete_logs(
        self,
        project_id: str,
        level: Optional[str] = None,
        environment: Optional[str] = None,
        min_timestamp_ms: Optional[int] = None,
        max_timestamp_ms: Optional[int] = None,
    ) -> int:
        await self.project_store.get_project(project_id)

        log_ids = await self.log_store.find_log_ids(
            project_id,
            level=level,
            environment=environment,
            min_timestamp_ms=min_timestamp_ms,
            max_timestamp_ms=max_timestamp_ms,
        )

        deleted_count = 0
        for start in range(0, len(log_ids), self.batch_size):
            deleted_count += await self.log_store.delete_batch(log_ids[start:start + self.batch_size])

        logger.info(f"✅ Deleted {deleted_count} logs from primary store for project {project_id}")

        query = SearchQuery(sort_by=None)
        query.filter_by.append(("project_id", project_id))
        if level:
            query.filter_by.append(("level", level))
        if environment:
            query.filter_by.append(("environment", environment))
        if min_timestamp_ms is not None:
            query.range_by.append(("timestamp_ms", ">=", min_timestamp_ms))
        if max_timestamp_ms is not None:
            query.range_by.append(("timestamp_ms", "<=", max_timestamp_ms))

        await self.delete_mirror(query)
        return deleted_count

    async def purge_logs(
        self,
        project_id: str,
        level: Optional[str] = None,
        environment: Optional[str] = None,
        lookback_time: Optional[str] = None,
        time_range: Optional[str] = None,
    ) -> int:
        """delete_logs with a lookback ("older than") or absolute range window"""
        bounds = require_time_filters(lookback_time, time_range)
        return await self.delete_logs(
            project_id,
            level=level,
            environment=environment,
            min_timestamp_ms=bounds.min_timestamp_ms,
            max_timestamp_ms=bounds.max_timestamp_ms,
        )

    async def delete_mirror(self, query: SearchQuery) -> int:
        """Best-effort index cleanup; returns the number of index documents removed"""
        if self.search_index is None or not self.search_index.is_available:
            return 0

        try:
            document_ids = await self._collect_mirror_ids(query)
        except Exception as e:
            error = MirrorInconsistencyError(f"Mirror cleanup skipped ({query.filter_clause()})", detail=str(e))
            logger.error(f"✗ {error.message}: {error.detail}")
            return 0

        removed = 0
        for document_id in document_ids:
            try:
                if await self.search_index.delete_document(document_id):
                    removed += 1
            except Exception as e:
                error = MirrorInconsistencyError(f"Failed to delete index document {document_id}", detail=str(e))
                logger.error(f"✗ {error.message}: {error.detail}")

        logger.info(f"Deleted {removed} documents from search index ({query.filter_clause()})")
        return removed

    async def _collect_mirror_ids(self, query: SearchQuery) -> List[str]:
        # Collect first so deleting does not shift later pages
        document_ids: List[str] = []
        page = 1

        while True:
            result = await self.search_index.search(
                query.to_opensearch_body(page=page, per_page=self.mirror_page_size)
            )
            hits = result["hits"]
            document_ids.extend(hit["id"] for hit in hits if hit.get("id"))

            if not hits or page * self.mirror_page_size >= result["total"]:
                break
            page += 1

        return document_ids
