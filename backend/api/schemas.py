# backend/api/schemas.py
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from config.settings import get_settings
from services.phrase_filter import DocFilter, PhraseFilter
from services.query_translator import LogSearchParams
from services.time_window import TimeBounds

StrOrList = Union[str, List[str]]

settings = get_settings()


class LogSearchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page: int = Field(default=1, ge=1)
    pageSize: int = Field(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE)
    level: Optional[StrOrList] = None
    environment: Optional[StrOrList] = None
    hostname: Optional[StrOrList] = None
    logType: Optional[str] = None
    lookbackTime: Optional[str] = None
    timeRange: Optional[str] = None
    docFilter: Optional[DocFilter] = None
    message: Optional[PhraseFilter] = None
    stackTrace: Optional[PhraseFilter] = None
    details: Optional[PhraseFilter] = None
    sortBy: Optional[str] = None

    def to_params(self, project_id: str, bounds: TimeBounds) -> LogSearchParams:
        return LogSearchParams(
            project_id=project_id,
            page=self.page,
            page_size=self.pageSize,
            level=self.level,
            environment=self.environment,
            hostname=self.hostname,
            log_type=self.logType,
            min_timestamp_ms=bounds.min_timestamp_ms,
            max_timestamp_ms=bounds.max_timestamp_ms,
            doc_filter=self.docFilter,
            message_filter=self.message,
            stack_trace_filter=self.stackTrace,
            details_filter=self.details,
            sort_by=self.sortBy,
        )
