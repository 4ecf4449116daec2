"""
Database Infrastructure & Connection Management
================================================
Async PostgreSQL client with:
- Connection pooling (SQLAlchemy + asyncpg)
- Health monitoring
- Session context managers
- Core-query helpers used by the repositories

Architecture: Repository Pattern + Unit of Work
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.sql import Executable

from config.settings import get_settings
from core.exceptions import DatabaseConnectionError, DatabaseQueryError


class DatabaseManager:
    """
    Centralized database connection and session management.

    One instance per process, created by the DI container and initialized
    in the application lifespan.
    """

    def __init__(self):
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None
        self._is_initialized: bool = False
        self._settings = get_settings()

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    async def initialize(self) -> None:
        """
        Initialize database engine and session factory.

        Must be called during application startup.
        """
        if self._is_initialized:
            logger.warning("Database already initialized")
            return

        db_settings = self._settings.database
        try:
            self._engine = create_async_engine(
                db_settings.async_url,
                echo=db_settings.echo_sql,
                pool_size=db_settings.pool_size,
                max_overflow=db_settings.max_overflow,
                pool_timeout=db_settings.pool_timeout,
                pool_recycle=db_settings.pool_recycle,
                pool_pre_ping=True,
            )

            self._session_factory = async_sessionmaker(
                self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )

            await self.health_check()

            self._is_initialized = True
            logger.info(f"Database initialized: {db_settings.host}/{db_settings.database}")

        except DatabaseConnectionError:
            raise
        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
            raise DatabaseConnectionError(
                "Failed to initialize database connection",
                host=db_settings.host,
                database=db_settings.database,
                cause=e,
            ) from e

    async def close(self) -> None:
        """Dispose the engine. Called during application shutdown."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            self._is_initialized = False
            logger.info("Database connections closed")

    async def health_check(self) -> bool:
        """
        Verify database connectivity.

        Returns:
            True if healthy, raises DatabaseConnectionError otherwise
        """
        if not self._engine:
            raise DatabaseConnectionError("Database engine not initialized")

        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(text("SELECT 1"))
                return result.scalar() == 1
        except (OperationalError, DBAPIError, OSError) as e:
            logger.error(f"Database health check failed: {e}")
            raise DatabaseConnectionError("Database health check failed", cause=e) from e

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide async database session with commit on success and rollback on error.

        Usage:
            async with db_manager.session() as session:
                await session.execute(query)
        """
        if not self._session_factory:
            raise DatabaseConnectionError("Database not initialized")

        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Session error, rolled back: {e}")
            raise
        finally:
            await session.close()

    async def execute(self, query: Executable) -> int:
        """
        Execute a write statement.

        Returns:
            Number of affected rows (-1 when the driver does not report it)
        """
        try:
            async with self.session() as session:
                result = await session.execute(query)
                return result.rowcount if result.rowcount is not None else -1
        except SQLAlchemyError as e:
            raise DatabaseQueryError("Statement execution failed", query_preview=str(query)[:200], cause=e) from e

    async def fetch_one(self, query: Executable) -> Optional[dict[str, Any]]:
        """Execute a select and return the first row as a mapping."""
        try:
            async with self.session() as session:
                result = await session.execute(query)
                row = result.mappings().first()
                return dict(row) if row is not None else None
        except SQLAlchemyError as e:
            raise DatabaseQueryError("Query execution failed", query_preview=str(query)[:200], cause=e) from e

    async def fetch_all(self, query: Executable) -> list[dict[str, Any]]:
        """Execute a select and return all rows as mappings."""
        try:
            async with self.session() as session:
                result = await session.execute(query)
                return [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as e:
            raise DatabaseQueryError("Query execution failed", query_preview=str(query)[:200], cause=e) from e

    async def fetch_scalar(self, query: Executable) -> Any:
        try:
            async with self.session() as session:
                result = await session.execute(query)
                return result.scalar()
        except SQLAlchemyError as e:
            raise DatabaseQueryError("Query execution failed", query_preview=str(query)[:200], cause=e) from e

    @property
    def engine(self) -> AsyncEngine:
        """Get database engine (raises if not initialized)."""
        if not self._engine:
            raise DatabaseConnectionError("Database engine not initialized")
        return self._engine


__all__ = ["DatabaseManager"]
