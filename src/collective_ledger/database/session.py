"""Engines, sessions and the process-wide database used by the API."""

import logging
from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    create_async_engine as sa_create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.pool import StaticPool

from ..config import get_database_url
from . import models

logger = logging.getLogger(__name__)


def create_async_engine(
    database_url: Optional[str] = None,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
) -> AsyncEngine:
    """
    Create an async engine for the ledger database.

    Args:
        database_url: Connection URL; DATABASE_URL when omitted.
        echo: Log every SQL statement.
        pool_size: Pooled connections (ignored for SQLite).
        max_overflow: Connections allowed beyond pool_size (ignored for SQLite).
    """
    url = database_url or get_database_url()

    if url.startswith("sqlite"):
        # One shared connection; an in-memory database lives only as long as it
        return sa_create_async_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return sa_create_async_engine(url, echo=echo, pool_size=pool_size, max_overflow=max_overflow)


def get_async_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory for ``engine``. Objects stay usable after commit."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)


class DatabaseManager:
    """
    Owns one engine and hands out sessions that commit on a clean exit
    and roll back when the block raises.

    Example:
        manager = DatabaseManager("sqlite+aiosqlite:///./ledger.db")
        await manager.initialize()

        async with manager.session() as session:
            await OrderProcessor(session, SimulatorGateway()).process_order(1)

        await manager.shutdown()
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 10,
    ):
        self.database_url = database_url
        self.echo = echo
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    async def initialize(self, create_tables_on_init: bool = True) -> None:
        self._engine = create_async_engine(self.database_url, self.echo, self.pool_size, self.max_overflow)
        self._session_factory = get_async_session_factory(self._engine)
        if create_tables_on_init:
            await create_tables(self._engine)
        logger.info(f"Database ready ({self._engine.url.render_as_string(hide_password=True)})")

    async def shutdown(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connection closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        if self._session_factory is None:
            raise RuntimeError("DatabaseManager not initialized. Call initialize() first.")

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise


# Process-wide database behind init_db()/get_db()
_default_manager: Optional[DatabaseManager] = None


async def init_db(
    database_url: Optional[str] = None,
    echo: bool = False,
    create_tables_on_init: bool = True,
) -> DatabaseManager:
    """Open the process-wide database. Called from the API lifespan."""
    global _default_manager

    _default_manager = DatabaseManager(database_url, echo=echo)
    await _default_manager.initialize(create_tables_on_init)
    return _default_manager


async def close_db() -> None:
    global _default_manager

    if _default_manager is not None:
        await _default_manager.shutdown()
        _default_manager = None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding a session on the process-wide database.

    Example:
        @app.post("/orders/{order_id}/process")
        async def process(order_id: int, db: AsyncSession = Depends(get_db)):
            ...
    """
    if _default_manager is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    async with _default_manager.session() as session:
        yield session
