# backend/services/log_ingestion.py
import logging
from typing import Any, Dict, Optional

from services.alarm_service import AlarmService
from services.log_processor import LogProcessor
from services.log_store import LogStore, ProjectStore
from services.opensearch_client import SearchIndexClient

logger = logging.getLogger(__name__)


class LogIngestionService:
    """Persist a log, mirror it into the search index, then evaluate alarms"""

    def __init__(
        self,
        log_store: LogStore,
        project_store: ProjectStore,
        processor: LogProcessor,
        search_index: Optional[SearchIndexClient] = None,
        alarm_service: Optional[AlarmService] = None,
    ):
        self.log_store = log_store
        self.project_store = project_store
        self.processor = processor
        self.search_index = search_index
        self.alarm_service = alarm_service

    async def store_log_message(self, raw_log: Dict[str, Any]) -> Dict[str, Any]:
        record = self.processor.process(raw_log)
        logger.info(f"📝 Processing log for project: {record['project_id']}, level: {record['level']}")

        project = await self.project_store.get_project(record['project_id'])
        record['project_object_id'] = project.id

        entry = await self.log_store.add_log(record)
        stored = entry.to_dict()

        await self._mirror(stored)
        await self._evaluate_alarms(stored)

        logger.info(f"✅ Log {stored['id']} processed successfully")
        return stored

    async def _mirror(self, stored: Dict[str, Any]):
        if self.search_index is None or not self.search_index.is_available:
            return
        try:
            await self.search_index.index_document(stored)
        except Exception as e:
            logger.error(f"✗ Search index mirror out of sync for log {stored['id']}: {e}")

    async def _evaluate_alarms(self, stored: Dict[str, Any]):
        if self.alarm_service is None:
            return
        try:
            await self.alarm_service.process_log_alarm(stored, stored['id'])
        except Exception:
            logger.exception(f"❌ Alarm evaluation failed for log {stored['id']}")
