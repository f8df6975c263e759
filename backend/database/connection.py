# backend/database/connection.py

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from typing import Optional
import logging

logger = logging.getLogger(__name__)


def normalize_database_url(database_url: str) -> str:
    """postgres:// and postgresql:// -> postgresql+asyncpg://"""
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    if database_url.startswith("postgresql://") and "+asyncpg" not in database_url:
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    return database_url


class Database:
    """Primary record store handle with an explicit connect/close lifecycle"""

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = normalize_database_url(database_url)
        self.echo = echo
        self.engine: Optional[AsyncEngine] = None
        self.session_maker: Optional[async_sessionmaker] = None

    async def connect(self):
        """Create the engine and session factory"""
        if self.engine is not None:
            return

        kwargs = {"echo": self.echo}
        if self.database_url.startswith("postgresql"):
            kwargs["poolclass"] = NullPool

        self.engine = create_async_engine(self.database_url, **kwargs)
        self.session_maker = async_sessionmaker(
            self.engine,
            expire_on_commit=False,
            class_=AsyncSession
        )
        logger.info("✓ Connected to primary store")

    async def init_models(self):
        """Create tables"""
        from database.models import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("✅ Database initialized")

    def session(self) -> AsyncSession:
        if self.session_maker is None:
            raise RuntimeError("Database not connected")
        return self.session_maker()

    async def close(self):
        """Dispose of the engine"""
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self.session_maker = None
            logger.info("✓ Closed primary store connection")
