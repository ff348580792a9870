"""Async SQLAlchemy engine, session factory and database client.

Nothing here is a process-wide singleton: the application lifespan builds
one engine and one session factory and hands the factory to the services
that need storage.
"""

from typing import Any, Dict

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from insurepulse.core.config import DatabaseSettings
from insurepulse.utils.logging import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def create_engine(db_settings: DatabaseSettings) -> AsyncEngine:
    """Create the async engine for the configured database.

    Args:
        db_settings: Database connection settings

    Returns:
        AsyncEngine: Engine bound to ``db_settings.url``
    """
    options: Dict[str, Any] = {"echo": db_settings.echo}

    if db_settings.url.startswith("postgresql"):
        options["pool_size"] = db_settings.pool_size
        options["max_overflow"] = db_settings.max_overflow
        options["pool_pre_ping"] = True
        if "+asyncpg" in db_settings.url:
            # Disable prepared statement cache for PgBouncer compatibility
            options["connect_args"] = {"statement_cache_size": 0}

    return create_async_engine(db_settings.url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory injected into repositories and services."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class DatabaseClient:
    """Database client with connection and schema management."""

    def __init__(self, engine: AsyncEngine):
        """Initialize database client.

        Args:
            engine: SQLAlchemy async engine
        """
        self.engine = engine
        self.session_factory = create_session_factory(engine)
        self._connected = False

    async def connect(self) -> bool:
        """Test database connection."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))

            self._connected = True
            LOGGER.info("Database connection successful")
            return True

        except Exception:
            self._connected = False
            LOGGER.error("Database connection failed", exc_info=True)
            raise

    async def disconnect(self) -> None:
        """Dispose of the connection pool."""
        await self.engine.dispose()
        self._connected = False
        LOGGER.info("Database connection closed")

    async def create_tables(self) -> None:
        """Create all tables that don't exist yet, without dropping anything."""
        # Register models on Base.metadata
        from insurepulse.database import models  # noqa: F401

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            LOGGER.info("Database tables created/verified successfully")

        except Exception as e:
            LOGGER.error(
                "Failed to create database tables",
                exc_info=True,
                extra={"error": str(e)},
            )
            raise

    async def health_check(self) -> dict:
        """Check database health."""
        try:
            async with self.engine.connect() as conn:
                val = await conn.scalar(text("SELECT 1"))

            self._connected = True

            return {
                "status": "healthy",
                "connected": True,
                "database": self.engine.dialect.name,
                "latency_test": "passed" if val == 1 else "failed",
            }

        except Exception as e:
            self._connected = False
            LOGGER.error("Database health check failed", extra={"error": str(e)})
            return {
                "status": "unhealthy",
                "connected": False,
                "error": str(e),
            }

    @property
    def is_connected(self) -> bool:
        """Check if database is connected."""
        return self._connected
