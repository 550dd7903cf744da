"""
Async database session management.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool

from ksmbot.config import DEFAULT_DATABASE_URL
from ksmbot.database.models import (
    Base,
    SubscriptionDB,
    ValidatorSnapshotDB,
    WatchedTelemetryNodeDB,
    WatchedValidatorDB,
)
from ksmbot.errors import StorageFailure

logger = logging.getLogger(__name__)


class AsyncDatabaseManager:
    """Manages async database connections for both collections."""

    def __init__(
        self,
        database_url: Union[str, URL] = DEFAULT_DATABASE_URL,
        echo: bool = False,
        pool_size: int = 10,
        max_overflow: int = 10,
    ):
        """
        Initialize async database manager.

        Args:
            database_url: Database connection URL (async driver)
            echo: Whether to log SQL queries
            pool_size: Connection pool size
            max_overflow: Maximum overflow connections
        """
        self.database_url = make_url(database_url)

        # Configure engine based on database type
        if self.database_url.get_backend_name() == "sqlite":
            # SQLite doesn't support connection pooling well
            self.engine = create_async_engine(
                self.database_url,
                echo=echo,
                poolclass=NullPool,
                connect_args={"check_same_thread": False},
            )
        else:
            # PostgreSQL (asyncpg), MySQL (aiomysql), etc.
            self.engine = create_async_engine(
                self.database_url,
                echo=echo,
                poolclass=AsyncAdaptedQueuePool,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=True,  # Verify connections before using
            )

        self.AsyncSessionLocal = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        logger.info(
            "Async database manager initialized with URL: "
            f"{self.database_url.render_as_string(hide_password=True)}"
        )

    async def create_tables(self):
        """Create all tables in the database."""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StorageFailure(f"Failed to create tables: {e}") from e
        logger.info("Database tables created successfully")

    async def drop_tables(self):
        """Drop all tables in the database."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.info("Database tables dropped successfully")

    async def close(self):
        """Close database engine and connections."""
        await self.engine.dispose()
        logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """
        Get an async database session that commits on exit.

        SQLAlchemy errors are rolled back and re-raised as `StorageFailure`.

        Yields:
            AsyncSession instance
        """
        session = self.AsyncSessionLocal()
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database session error: {e}", exc_info=True)
            raise StorageFailure(str(e)) from e
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def get_statistics(self) -> dict:
        """
        Get database statistics asynchronously.

        Returns:
            Dictionary with row counts per collection
        """
        async with self.get_session() as session:
            subscriptions = await session.scalar(select(func.count(SubscriptionDB.id)))
            watched_validators = await session.scalar(
                select(func.count(WatchedValidatorDB.id))
            )
            watched_nodes = await session.scalar(
                select(func.count(WatchedTelemetryNodeDB.id))
            )
            snapshots = await session.scalar(
                select(func.count(ValidatorSnapshotDB.id))
            )

            return {
                "total_subscriptions": subscriptions or 0,
                "watched_validators": watched_validators or 0,
                "watched_telemetry_nodes": watched_nodes or 0,
                "validator_snapshots": snapshots or 0,
            }


# Singleton instance
_async_db_manager: Optional[AsyncDatabaseManager] = None


async def get_async_db_manager(
    database_url: Union[str, URL] = DEFAULT_DATABASE_URL,
    echo: bool = False,
) -> AsyncDatabaseManager:
    """
    Get or create the async database manager singleton.

    Args:
        database_url: Database connection URL (with async driver)
        echo: Whether to log SQL queries

    Returns:
        AsyncDatabaseManager instance
    """
    global _async_db_manager

    if _async_db_manager is None:
        _async_db_manager = AsyncDatabaseManager(database_url=database_url, echo=echo)
        await _async_db_manager.create_tables()

    return _async_db_manager
