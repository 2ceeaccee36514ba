"""Database lifecycle management used by the application lifespan."""

from typing import Any, Dict

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from app.database.base import Base, engine
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DatabaseClient:
    """Owns the async engine for startup, shutdown and health checks."""

    def __init__(self, db_engine: AsyncEngine):
        self.engine = db_engine

    async def init(self, auto_migrate: bool = False, drop_existing: bool = False) -> None:
        """Verify connectivity and optionally create missing tables.

        Args:
            auto_migrate: Create tables that do not exist yet
            drop_existing: Drop all tables first (development resets only)
        """
        # Import models so they register on Base.metadata
        from app.database import models  # noqa: F401

        async with self.engine.begin() as conn:
            if drop_existing:
                LOGGER.warning("Dropping all tables")
                await conn.run_sync(Base.metadata.drop_all)
            if auto_migrate:
                await conn.run_sync(Base.metadata.create_all)
            await conn.execute(text("SELECT 1"))

        LOGGER.info("Database connection established", extra={"auto_migrate": auto_migrate})

    async def close(self) -> None:
        """Dispose of pooled connections."""
        await self.engine.dispose()
        LOGGER.info("Database connections closed")

    async def health_check(self) -> Dict[str, Any]:
        """Run a trivial query and report status."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return {"status": "healthy"}
        except Exception as e:
            LOGGER.warning("Database health check failed", extra={"error": str(e)})
            return {"status": "unhealthy", "error": str(e)}


db_client = DatabaseClient(engine)


async def init_database(auto_migrate: bool = False, drop_existing: bool = False) -> None:
    """Initialize the shared database client."""
    await db_client.init(auto_migrate=auto_migrate, drop_existing=drop_existing)


async def close_database() -> None:
    """Close the shared database client."""
    await db_client.close()
