"""
Pytest configuration and shared fixtures.
"""

import os
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from batchq.api.main import create_app
from batchq.db import Base, build_engine, connection, create_session_factory
from batchq.db.repository import QueueRepository

# Point at a PostgreSQL database to exercise FOR UPDATE SKIP LOCKED;
# a throwaway SQLite file per test is used otherwise.
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """Get the test database URL."""
    return TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'batchq.db'}"


@pytest_asyncio.fixture
async def async_engine(database_url: str) -> AsyncGenerator[AsyncEngine]:
    """Create an engine with a fresh schema."""
    engine = build_engine(database_url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return create_session_factory(async_engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create a database session for tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def app(
    async_engine: AsyncEngine,
    session_factory: async_sessionmaker[AsyncSession],
    monkeypatch: pytest.MonkeyPatch,
) -> AsyncGenerator[FastAPI]:
    """Create a FastAPI app wired to the test database."""
    monkeypatch.setattr(connection, "_engine", async_engine)
    monkeypatch.setattr(connection, "AsyncSessionLocal", session_factory)

    yield create_app()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def sample_tasks() -> dict[str, Any]:
    """A small task mapping with assorted params shapes."""
    return {
        "a": {"n": 1},
        "b": {"n": 2, "tags": ["x", "y"]},
        "c": "plain string params",
    }


@pytest_asyncio.fixture
async def make_queue(session_factory: async_sessionmaker[AsyncSession]):
    """Factory fixture creating a committed queue and returning its id."""

    async def _make_queue(queue_type: str = "echo", options: dict[str, Any] | None = None) -> int:
        async with session_factory() as session:
            queue = await QueueRepository(session).create(queue_type, options or {})
            await session.commit()
            return queue.id

    return _make_queue
