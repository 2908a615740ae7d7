"""
Database engine and session management for CityBridge.

A Database instance owns one async engine and its session maker. It is
created by the ApplicationContainer and handed to every repository, so tests
can build an isolated instance against a temporary SQLite file.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

from .config.models import DatabaseConfig
from .exceptions import DatabaseError, ValidationError
from .models.base import Base
from .structured_logging.enhanced_logging_config import get_logger
from .utils.error_logging import log_and_raise

logger = get_logger(__name__)


def normalize_database_url(database_url: str) -> str:
    """
    Convert a plain database URL into its async driver form.

    Args:
        database_url: URL starting with postgresql or sqlite

    Returns:
        URL using the asyncpg or aiosqlite driver

    Raises:
        ValidationError: For any other scheme
    """
    if database_url.startswith("postgresql+asyncpg") or database_url.startswith("sqlite+aiosqlite"):
        return database_url
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    log_and_raise(
        ValidationError,
        f"Unsupported database URL: {database_url[:50]}",
        field="database.url",
        user_friendly="Database configuration error",
    )


class Database:
    """Async SQLAlchemy engine plus session factory."""

    def __init__(self, database_url: str, *, echo: bool = False, pool_options: dict[str, Any] | None = None) -> None:
        self.database_url = normalize_database_url(database_url)

        engine_kwargs: dict[str, Any] = {"echo": echo}
        if self.database_url.startswith("sqlite"):
            if ":memory:" in self.database_url or self.database_url.rstrip("/").endswith("aiosqlite:"):
                # One shared connection keeps the in-memory schema alive
                engine_kwargs["poolclass"] = StaticPool
                engine_kwargs["connect_args"] = {"check_same_thread": False}
            else:
                engine_kwargs["poolclass"] = NullPool
            pool_type = engine_kwargs["poolclass"].__name__
        else:
            engine_kwargs["pool_pre_ping"] = True
            engine_kwargs.update(pool_options or {})
            pool_type = "AsyncAdaptedQueuePool"

        self.engine: AsyncEngine = create_async_engine(self.database_url, **engine_kwargs)
        self.session_maker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("Database engine created", pool_type=pool_type, dialect=self.engine.dialect.name)

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "Database":
        pool_options: dict[str, Any] = {}
        if not config.is_sqlite:
            pool_options = {
                "pool_size": config.pool_size,
                "max_overflow": config.max_overflow,
                "pool_timeout": config.pool_timeout,
            }
        return cls(config.url, echo=config.echo, pool_options=pool_options)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Open a session, rolling back if the block raises.

        Yields:
            AsyncSession bound to this database
        """
        async with self.session_maker() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """Create every table registered on the shared metadata."""
        # Importing the package registers all models on Base.metadata
        from . import models  # noqa: F401  # pylint: disable=import-outside-toplevel,unused-import

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Failed to create database schema: {e}",
                operation="create_all",
                user_friendly="Database initialization failed",
            )
        logger.info("Database schema ensured", tables=sorted(Base.metadata.tables))

    async def ping(self) -> bool:
        """Return True when a trivial query succeeds."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning("Database ping failed", error=str(e))
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Database engine disposed")
