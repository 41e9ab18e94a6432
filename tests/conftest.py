"""Shared test fixtures."""

from collections.abc import AsyncGenerator

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from src.db.redis_store import RedisTokenStore
from src.db.token_store import PostgresTokenStore
from src.models.base import Base
from tests.helpers import FakeRedis


@pytest_asyncio.fixture(scope="function")
async def sqlite_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine, one per test.

    StaticPool keeps the single in-memory database alive across sessions.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def primary_store(sqlite_engine: AsyncEngine) -> PostgresTokenStore:
    return PostgresTokenStore(sqlite_engine)


@pytest_asyncio.fixture
async def redis_store() -> RedisTokenStore:
    return RedisTokenStore(FakeRedis())  # type: ignore[arg-type]
