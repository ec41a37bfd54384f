# hairstyle_api/database.py
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from .config import Settings
from .logging_config import get_logger

logger = get_logger(__name__)

Base = declarative_base()


def _make_async_url(sync_url: str) -> str:
    """Convert sync database URL to its async driver equivalent"""
    if sync_url.startswith("postgresql://"):
        return sync_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if sync_url.startswith("sqlite://") and not sync_url.startswith("sqlite+aiosqlite://"):
        return sync_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return sync_url


class Database:
    """
    Owns the async engine and session factory.

    Constructed by the process entry point (app lifespan, sweep script,
    tests) and handed to components; nothing in the package creates a
    connection handle on first access.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = _make_async_url(url)
        self.engine: AsyncEngine = create_async_engine(self.url, **self._engine_options(echo))
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
            class_=AsyncSession,
        )

        logger.info(
            "Async database engine configured",
            extra={"extra_data": {
                "dialect": self.engine.dialect.name,
                "database": self.url.split("@")[-1],
            }}
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(settings.DATABASE_ASYNC_URL or settings.DATABASE_URL)

    def _engine_options(self, echo: bool) -> dict:
        options = {"echo": echo, "pool_pre_ping": True}
        if self.url.startswith("postgresql"):
            options.update(
                pool_size=10,
                max_overflow=5,
                pool_timeout=10,
                pool_recycle=3600,
            )
        return options

    async def create_all(self):
        """Create tables directly (tests and local development; production uses alembic)"""
        # Model modules must be imported so their tables are registered on Base
        from .users import models as users_models  # noqa: F401
        from .credits import models as credit_models  # noqa: F401
        from .generations import models as generation_models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self):
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def dispose(self):
        await self.engine.dispose()
        logger.info("All database connections closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.session_factory() as db:
            yield db


# ============================================================================
# DEPENDENCIES
# ============================================================================

async def get_async_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Async DB session dependency for FastAPI endpoints.

    The Database handle lives on app.state and is created by the lifespan.

    Usage:
        @router.get("/endpoint")
        async def endpoint(db: AsyncSession = Depends(get_async_db)):
            ...
    """
    database: Database = request.app.state.db
    async with database.session() as db:
        try:
            yield db
        except Exception:
            await db.rollback()
            raise


def upsert_insert(db: AsyncSession, table):
    """
    Dialect-specific INSERT construct supporting ON CONFLICT.

    Both PostgreSQL and SQLite implement INSERT ... ON CONFLICT ... RETURNING,
    which lets an additive upsert run as one atomic statement.
    """
    if db.get_bind().dialect.name == "sqlite":
        return sqlite.insert(table)
    return postgresql.insert(table)
