from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import Settings


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""


@dataclass(slots=True)
class Database:
    """Data-access handle passed to the API, worker and scheduler.

    Opened once per process through :func:`lifespan` and disposed on exit.
    """

    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


def create_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(settings.database_url, echo=False, future=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def open_database(settings: Settings) -> Database:
    engine = create_engine(settings)
    return Database(engine=engine, session_factory=create_session_factory(engine))


@asynccontextmanager
async def lifespan(settings: Settings) -> AsyncIterator[Database]:
    database = open_database(settings)
    try:
        yield database
    finally:
        await database.dispose()


__all__ = ["Base", "Database", "create_engine", "create_session_factory", "open_database", "lifespan"]
