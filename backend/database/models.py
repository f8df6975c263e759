# backend/database/models.py
from sqlalchemy import Column, String, DateTime, Text, BigInteger, JSON, Index
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime, timezone

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Project(Base):
    __tablename__ = "projects"

    id = Column(String(32), primary_key=True)
    project_id = Column(String(100), unique=True, index=True, nullable=False)  # slug
    name = Column(String(255), nullable=False)
    alarms = Column(JSONType, default=list)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class LogRecord(Base):
    __tablename__ = "logs"

    id = Column(String(32), primary_key=True)
    project_id = Column(String(100), index=True, nullable=False)
    project_object_id = Column(String(32), nullable=False)
    log_type = Column(String(20), nullable=False, default="application")
    level = Column(String(20), index=True, nullable=False)
    environment = Column(String(50), index=True, nullable=False)
    hostname = Column(String(255))
    message = Column(Text, nullable=False)
    stack_trace = Column(JSONType, default=list)
    raw_stack_trace = Column(Text)
    details = Column(JSONType, default=dict)
    detail_string = Column(Text)
    request = Column(JSONType)
    timestamp_ms = Column(BigInteger, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("idx_logs_project_timestamp", "project_id", "timestamp_ms"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "project_object_id": self.project_object_id,
            "log_type": self.log_type,
            "level": self.level,
            "environment": self.environment,
            "hostname": self.hostname,
            "message": self.message,
            "stack_trace": self.stack_trace or [],
            "raw_stack_trace": self.raw_stack_trace,
            "details": self.details or {},
            "detail_string": self.detail_string,
            "request": self.request,
            "timestamp_ms": self.timestamp_ms,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
