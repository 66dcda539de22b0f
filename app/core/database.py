"""Async SQLAlchemy engine, session factory and database client."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.core.config import settings
from app.utils.logging import get_logger
from app.utils.redaction import redact_error_message

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine, applying pool options only where the driver supports them."""
    if url.startswith("postgresql"):
        return create_async_engine(
            url,
            pool_size=settings.db.pool_size,
            max_overflow=settings.db.max_overflow,
            echo=echo,
            # Disable prepared statement cache for PgBouncer compatibility
            connect_args={"statement_cache_size": 0},
        )
    return create_async_engine(url, echo=echo)


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url, echo=settings.db.echo)

async_session_maker = build_session_maker(engine)


class DatabaseClient:
    """Database client with connection and schema management."""

    def __init__(self, engine: AsyncEngine):
        """Initialize database client.

        Args:
            engine: SQLAlchemy async engine
        """
        self.engine = engine

    async def connect(self) -> bool:
        """Test database connection."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            LOGGER.info("Database connection successful")
            return True
        except Exception:
            LOGGER.error("Database connection failed", exc_info=True)
            raise

    async def disconnect(self) -> None:
        """Dispose of the engine's connection pool."""
        await self.engine.dispose()
        LOGGER.info("Database connection closed")

    async def create_tables(self) -> None:
        """Create tables that don't exist yet without touching existing ones."""
        # Registers every model on Base.metadata
        from app.database import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        LOGGER.info("Database tables created/verified successfully")

    async def health_check(self) -> dict:
        """Check database health."""
        try:
            async with self.engine.connect() as conn:
                val = await conn.scalar(text("SELECT 1"))
            return {
                "status": "healthy",
                "connected": True,
                "database": self.engine.dialect.name,
                "latency_test": "passed" if val == 1 else "failed",
            }
        except Exception as e:
            LOGGER.error("Database health check failed", extra={"error": str(e)})
            return {
                "status": "unhealthy",
                "connected": False,
                "error": redact_error_message(e),
            }


db_client = DatabaseClient(engine)


async def init_database(auto_migrate: bool = True) -> None:
    """Initialize database connection and optionally create missing tables.

    Args:
        auto_migrate: Whether to create missing tables on startup
    """
    LOGGER.info("Initializing database connection...")
    await db_client.connect()
    if auto_migrate:
        await db_client.create_tables()
    LOGGER.info("Database initialization completed")


async def close_database() -> None:
    """Close database connection."""
    try:
        LOGGER.info("Closing database connection...")
        await db_client.disconnect()
    except Exception as e:
        LOGGER.error("Error closing database", exc_info=True, extra={"error": str(e)})
