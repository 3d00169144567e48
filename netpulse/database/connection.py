"""
Database Connection Management

Async SQLite engine with SQLAlchemy 2.0 over aiosqlite.
Implements session scoping, schema creation, health checks, and graceful shutdown.
"""

import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

import structlog
from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from netpulse.config.settings import DatabaseSettings
from netpulse.database.models import Base
from netpulse.errors import PipelineError, StorageError

logger = structlog.get_logger(__name__)


def _on_connect(dbapi_connection, connection_record) -> None:
    # Driver-level implicit BEGIN breaks SAVEPOINT; transactions are begun in _on_begin
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _on_begin(conn) -> None:
    # Take the write lock up front so concurrent writers queue on the busy timeout
    # instead of failing a SHARED -> RESERVED upgrade with "database is locked"
    conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """
    Owns the engine and session factory for one SQLite database.

    Every multi-step write runs inside ``session()``, which commits on success
    and rolls back on any exception.

    Example:
        db = Database(settings.database)
        await db.connect()
        async with db.session() as session:
            session.add(row)
    """

    def __init__(self, settings: DatabaseSettings):
        self.settings = settings
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def engine(self) -> AsyncEngine:
        """
        Get the database engine.

        Raises:
            RuntimeError: If database is not connected
        """
        if self._engine is None:
            raise RuntimeError("Database not initialized. Call connect() first.")
        return self._engine

    async def connect(self) -> AsyncEngine:
        """
        Create the engine, create the schema and verify the connection.

        Returns:
            AsyncEngine: The initialized database engine
        """
        if self._engine is not None:
            logger.warning("Database already initialized")
            return self._engine

        url = self.settings.get_url()
        if not self.settings.url and self.settings.path != ":memory:":
            Path(self.settings.path).parent.mkdir(parents=True, exist_ok=True)
        self._engine = create_async_engine(
            url,
            echo=self.settings.echo,
            poolclass=NullPool,
            connect_args={"timeout": self.settings.busy_timeout_seconds},
        )
        event.listen(self._engine.sync_engine, "connect", _on_connect)
        event.listen(self._engine.sync_engine, "begin", _on_begin)

        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
                await conn.execute(text("SELECT 1"))
            logger.info("Database connection established", url=url)
        except SQLAlchemyError as e:
            logger.error("Failed to connect to database", error=str(e))
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            raise StorageError("Failed to open database", {"url": url}) from e

        return self._engine

    async def close(self) -> None:
        """Dispose the engine and release its connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connection closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Open a transactional session.

        Commits when the block exits cleanly; rolls back and re-raises on any
        exception. SQLAlchemy failures are re-raised as StorageError.

        Yields:
            AsyncSession: Database session
        """
        if self._session_factory is None:
            logger.error("Database not initialized when session() called")
            raise RuntimeError("Database not initialized. Call connect() first.")

        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except PipelineError:
            await session.rollback()
            raise
        except SQLAlchemyError as e:
            logger.error("Database session error, rolling back", error=str(e), error_type=type(e).__name__)
            await session.rollback()
            raise StorageError(str(e), {"error_type": type(e).__name__}) from e
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def check_health(self) -> dict:
        """
        Check database health status.

        Returns:
            dict: Health status with latency information
        """
        try:
            start = time.perf_counter()
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
            latency_ms = (time.perf_counter() - start) * 1000

            return {
                "status": "healthy",
                "latency_ms": round(latency_ms, 2),
            }
        except (StorageError, RuntimeError) as e:
            return {
                "status": "unhealthy",
                "error": str(e),
            }
