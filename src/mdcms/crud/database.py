"""Async database accessor: engine, session factory and schema setup"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from mdcms.config import Settings
from mdcms.errors import AppError, ErrorTag
import mdcms.crud.models  # noqa: F401  registers tables on SQLModel.metadata

logger = logging.getLogger(__name__)


def make_engine(db_url: str) -> AsyncEngine:
    return create_async_engine(db_url, echo=False, future=True)


class Database:
    """Owns one async engine and hands out sessions bound to it."""

    def __init__(self, url: Optional[str] = None, engine: Optional[AsyncEngine] = None):
        if engine is None and not url:
            raise AppError.internal("Database is not configured", tag=ErrorTag.DB)
        self.engine = engine if engine is not None else make_engine(url)
        self._sessions = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    def session(self) -> AsyncSession:
        return self._sessions()

    async def init(self, reset: bool = False) -> None:
        """Create all tables; drop them first when reset is set."""
        async with self.engine.begin() as conn:
            if reset:
                await conn.run_sync(SQLModel.metadata.drop_all)
                logger.info("dropped all tables")
            await conn.run_sync(SQLModel.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


def require_db(settings: Settings) -> Database:
    """Database for settings.db_url, or INTERNAL/DB when no URL is configured."""
    if not settings.db_url:
        raise AppError.internal("Database is not configured", tag=ErrorTag.DB)
    return Database(settings.db_url)
