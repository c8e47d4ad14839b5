# envcache/db/session.py
# -----------------------------------------------------------------------------
# SQLAlchemy async engine / session factory / declarative base
# - services receive the session factory (in-memory SQLite in tests)
# - SQLite by default, switch to PostgreSQL by changing DATABASE_URL only
# -----------------------------------------------------------------------------
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from envcache.core.errors import StoreError

Base = declarative_base()


def make_engine(url: str) -> AsyncEngine:
    if url.startswith("sqlite") and (url.endswith("://") or ":memory:" in url):
        # a single shared connection keeps an in-memory database alive
        return create_async_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(url, echo=False, pool_pre_ping=True)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def store_session(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Unit of work; persistence failures surface as StoreError, never silently."""
    try:
        async with factory() as session:
            yield session
    except SQLAlchemyError as e:
        logger.error(f"[store] {type(e).__name__}: {e}")
        raise StoreError(f"persistence failure: {type(e).__name__}") from e


async def create_all(engine: AsyncEngine) -> None:
    # models must be imported so their tables are registered on Base
    from envcache.db import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
