"""
Database management for the FastAPI application.

Wraps the async SQLAlchemy engine for the SQLite submissions store.
One ``Database`` is built per application from its settings and kept on
``app.state``; tables are created in the lifespan startup.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from audio_lti.models import Base


class Database:
    """Engine plus session factory for one database URL."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.is_memory = url in ("sqlite+aiosqlite://", "sqlite+aiosqlite:///:memory:")

        if self.is_memory:
            # A single shared connection, otherwise every checkout sees an
            # empty in-memory database.
            self.engine: AsyncEngine = create_async_engine(
                url,
                echo=echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        else:
            self.engine = create_async_engine(url, echo=echo, pool_pre_ping=True)

        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_path(cls, path: str, echo: bool = False) -> "Database":
        """Build from a filesystem path or ``:memory:``."""
        if path == ":memory:":
            return cls("sqlite+aiosqlite://", echo=echo)
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        return cls(f"sqlite+aiosqlite:///{path}", echo=echo)

    async def create_all(self) -> None:
        """Create the submissions table if it does not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Close the database engine and release all connections."""
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get a database session that commits on success.

        Usage:
            async with database.session() as session:
                result = await session.execute(...)
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
