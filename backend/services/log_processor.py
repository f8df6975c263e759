# backend/services/log_processor.py
from datetime import datetime, timezone
from typing import Dict, Any, Optional
import logging
import uuid

from services.errors import InputError
from services.phrase_filter import serialize_details

logger = logging.getLogger(__name__)

class LogProcessor:
    """Validate and normalise client log payloads"""

    REQUIRED_FIELDS = ('level', 'environment', 'projectId', 'message', 'timestampMS')
    LOG_TYPES = ('application', 'system')

    def process(self, raw_log: Dict[str, Any]) -> Dict[str, Any]:
        """Turn a raw payload (camelCase wire names) into a storable record"""
        if not isinstance(raw_log, dict):
            raise InputError("Log payload must be an object")

        missing = [name for name in self.REQUIRED_FIELDS if raw_log.get(name) in (None, '')]
        if missing:
            raise InputError(f"Missing required fields: {', '.join(missing)}")

        log_type = raw_log.get('logType') or 'application'
        if log_type not in self.LOG_TYPES:
            raise InputError(f"logType must be one of {', '.join(self.LOG_TYPES)}")

        details = raw_log.get('details') or {}
        if not isinstance(details, dict):
            raise InputError("details must be an object")

        stack_trace = raw_log.get('stackTrace') or []
        if not isinstance(stack_trace, list):
            raise InputError("stackTrace must be an array")

        return {
            'id': self._generate_log_id(),
            'project_id': str(raw_log['projectId']),
            'log_type': log_type,
            'level': str(raw_log['level']),
            'environment': str(raw_log['environment']),
            'hostname': raw_log.get('hostname'),
            'message': str(raw_log['message']),
            'stack_trace': stack_trace,
            'raw_stack_trace': raw_log.get('rawStackTrace'),
            'details': details,
            # Computed once; the text surface for details filtering
            'detail_string': raw_log.get('detailString') or serialize_details(details),
            'request': raw_log.get('request'),
            'timestamp_ms': self._extract_timestamp(raw_log),
            'created_at': datetime.now(timezone.utc),
        }

    def _generate_log_id(self) -> str:
        return uuid.uuid4().hex

    def _extract_timestamp(self, log: dict) -> int:
        ts: Optional[Any] = log.get('timestampMS')
        try:
            return int(ts)
        except (TypeError, ValueError):
            raise InputError("timestampMS must be an integer number of milliseconds")
