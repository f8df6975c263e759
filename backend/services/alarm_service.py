# backend/services/alarm_service.py
import logging
from typing import Any, Dict, Mapping, Optional

from services.alarm_dispatcher import AlarmDispatcher, build_alarm_payload
from services.alarm_matcher import AlarmRule, debounce_key_for, rule_matches
from services.cache_service import CacheService
from services.log_store import ProjectStore

logger = logging.getLogger(__name__)


class AlarmService:
    """Evaluates a project's alarm rules against one stored log"""

    def __init__(
        self,
        project_store: ProjectStore,
        dispatcher: AlarmDispatcher,
        cache: Optional[CacheService] = None,
        debounce_ttl_seconds: int = 300,
        base_url: str = "",
    ):
        self.project_store = project_store
        self.dispatcher = dispatcher
        self.cache = cache
        self.debounce_ttl_seconds = debounce_ttl_seconds
        self.base_url = base_url

    @property
    def debouncing(self) -> bool:
        return self.cache is not None and self.cache.is_available

    async def process_log_alarm(self, log: Mapping[str, Any], log_id: str) -> int:
        """Returns the number of rules that dispatched"""
        project = await self.project_store.get_project(log["project_id"])
        rules = project.alarms or []
        if not rules:
            return 0

        payload: Optional[Dict[str, Any]] = None
        # Debounce is decided once per event signature, then shared by every matching rule
        suppressed: Optional[bool] = None
        dispatched = 0

        for index, raw_rule in enumerate(rules):
            try:
                rule = AlarmRule.model_validate(raw_rule)
                if not rule_matches(rule, log):
                    continue

                if suppressed is None:
                    suppressed = await self._is_debounced(log, log_id)
                if suppressed:
                    logger.info(f"Alarm {index} debounced for project {project.project_id}")
                    continue

                if payload is None:
                    payload = build_alarm_payload(log, log_id, project, self.base_url)

                await self.dispatcher.dispatch(rule, payload)
                dispatched += 1

            except Exception:
                logger.exception(f"❌ Alarm rule {index} failed for log {log_id}")

        return dispatched

    async def _is_debounced(self, log: Mapping[str, Any], log_id: str) -> bool:
        if not self.debouncing:
            return False

        acquired = await self.cache.set_if_absent(
            debounce_key_for(log), {"logId": log_id}, self.debounce_ttl_seconds
        )
        return not acquired
