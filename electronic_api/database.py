"""
Database access: async engine, session factory and schema management.

One Database instance exists per application; sessions are opened per
request by the request-scoped service container (see dependencies.py).
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from electronic_api.config import Settings
from electronic_api.models import Base

logger = structlog.get_logger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Wrapper around SQLAlchemy async engine/session creation."""

    def __init__(self, settings: Settings):
        url = make_url(settings.database_url)
        self.is_sqlite = url.get_backend_name() == "sqlite"

        engine_options = {
            "echo": settings.database_echo,
            "pool_pre_ping": True,
        }
        if not self.is_sqlite:
            engine_options.update(
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                pool_timeout=settings.database_pool_timeout,
                pool_recycle=settings.database_pool_recycle,
            )

        self._engine: AsyncEngine = create_async_engine(url, **engine_options)
        if self.is_sqlite:
            event.listen(self._engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        logger.info(
            "database_configured",
            backend=url.get_backend_name(),
            driver=url.get_driver_name(),
            database=url.database,
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Open a session; uncommitted work is rolled back on error."""
        async with self._session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> bool:
        async with self._engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    async def create_schema(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_schema_ensured", tables=sorted(Base.metadata.tables))

    async def dispose(self) -> None:
        await self._engine.dispose()
        logger.info("database_engine_disposed")
