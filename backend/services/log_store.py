# backend/services/log_store.py
"""Primary record store access for projects and log records."""
import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from sqlalchemy import delete, select

from database.connection import Database
from database.models import LogRecord, Project
from services.errors import NotFoundError

logger = logging.getLogger(__name__)

StrOrList = Union[str, Sequence[str]]


class ProjectStore:
    """Resolves project slugs to project documents"""

    def __init__(self, database: Database):
        self.database = database

    async def get_project(self, project_id: str) -> Project:
        async with self.database.session() as session:
            result = await session.execute(
                select(Project).where(Project.project_id == project_id)
            )
            project = result.scalar_one_or_none()

        if project is None:
            raise NotFoundError(f"Project not found: {project_id}")
        return project

    async def add_project(self, project: Project) -> Project:
        async with self.database.session() as session:
            session.add(project)
            await session.commit()
        return project


def _apply_equality(stmt, column, value: Optional[StrOrList]):
    if not value:
        return stmt
    if isinstance(value, str):
        return stmt.where(column == value)
    return stmt.where(column.in_(list(value)))


class LogStore:
    """Authoritative store for log records"""

    def __init__(self, database: Database):
        self.database = database

    async def add_log(self, record: Dict[str, Any]) -> LogRecord:
        entry = LogRecord(**record)
        async with self.database.session() as session:
            session.add(entry)
            await session.commit()
        return entry

    async def get_log(self, log_id: str) -> Optional[LogRecord]:
        async with self.database.session() as session:
            return await session.get(LogRecord, log_id)

    def _filtered(
        self,
        stmt,
        project_id: str,
        level: Optional[StrOrList] = None,
        environment: Optional[StrOrList] = None,
        hostname: Optional[StrOrList] = None,
        log_type: Optional[str] = None,
        min_timestamp_ms: Optional[int] = None,
        max_timestamp_ms: Optional[int] = None,
    ):
        stmt = stmt.where(LogRecord.project_id == project_id)
        stmt = _apply_equality(stmt, LogRecord.level, level)
        stmt = _apply_equality(stmt, LogRecord.environment, environment)
        stmt = _apply_equality(stmt, LogRecord.hostname, hostname)
        stmt = _apply_equality(stmt, LogRecord.log_type, log_type)
        if min_timestamp_ms is not None:
            stmt = stmt.where(LogRecord.timestamp_ms >= min_timestamp_ms)
        if max_timestamp_ms is not None:
            stmt = stmt.where(LogRecord.timestamp_ms <= max_timestamp_ms)
        return stmt

    async def find_logs(self, project_id: str, **filters) -> List[LogRecord]:
        """All records for a project, equality and time filters pushed down, newest first"""
        stmt = self._filtered(select(LogRecord), project_id, **filters)
        stmt = stmt.order_by(LogRecord.timestamp_ms.desc())

        async with self.database.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def find_log_ids(self, project_id: str, **filters) -> List[str]:
        stmt = self._filtered(select(LogRecord.id), project_id, **filters)

        async with self.database.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def delete_batch(self, log_ids: Sequence[str]) -> int:
        """Delete one batch in a single transaction; missing ids are a no-op"""
        if not log_ids:
            return 0

        async with self.database.session() as session:
            async with session.begin():
                result = await session.execute(
                    delete(LogRecord)
                    .where(LogRecord.id.in_(list(log_ids)))
                    .execution_options(synchronize_session=False)
                )
        return result.rowcount or 0
