"""Integration test fixtures using Docker.

Provides a containerized PostgreSQL for the relational provider. Tests
that need it are skipped when Docker is unavailable.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Iterator
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from lodestore.storage.postgres import LargeObjectProvider
from tests.integration.docker_utils import DockerService, get_docker_client, run_postgres


def pytest_collection_modifyitems(items):
    """Mark everything in this directory as an integration test."""
    for item in items:
        if "/integration/" in str(item.fspath).replace("\\", "/"):
            item.add_marker(pytest.mark.integration)


@pytest.fixture(scope="session")
def docker_client():
    """Create a Docker client or skip if Docker is unavailable."""
    try:
        client = get_docker_client()
        client.ping()
    except Exception as exc:
        pytest.skip(f"Docker not available: {exc}")
    yield client
    client.close()


@pytest.fixture(scope="session")
def postgres_container(docker_client) -> Iterator[DockerService]:
    """Start PostgreSQL container for the test session."""
    with run_postgres(docker_client) as postgres:
        yield postgres


@pytest.fixture(scope="session")
def database_url(postgres_container: DockerService) -> str:
    """Get the database URL for the test container."""
    host = postgres_container.host
    port = postgres_container.port(5432)
    return f"postgresql+asyncpg://lodestore:lodestore@{host}:{port}/lodestore"


@pytest_asyncio.fixture
async def db_engine(database_url: str) -> AsyncIterator[AsyncEngine]:
    """Create async database engine for tests."""
    engine = create_async_engine(database_url, echo=False, pool_size=5, max_overflow=0)
    await _wait_for_engine(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def pg_provider(db_engine: AsyncEngine) -> AsyncIterator[LargeObjectProvider]:
    """A relational provider on its own table, dropped after the test."""
    provider = LargeObjectProvider(
        db_engine, schema="public", table=f"files_{uuid4().hex[:8]}", chunk_size=1024
    )
    await provider.init()
    yield provider
    async with db_engine.begin() as conn:
        await conn.execute(
            text(f"SELECT lo_unlink(loid) FROM {provider.table.fullname}")
        )
        await conn.run_sync(provider.metadata.drop_all)


async def count_large_objects(engine: AsyncEngine) -> int:
    """Number of large objects in the database."""
    async with engine.connect() as conn:
        result = await conn.execute(text("SELECT count(*) FROM pg_largeobject_metadata"))
        return int(result.scalar_one())


async def _wait_for_engine(engine: AsyncEngine, timeout: float = 30.0) -> None:
    """Wait for the database engine to accept connections."""
    deadline = time.monotonic() + timeout
    while True:
        try:
            async with engine.connect():
                return
        except Exception:
            if time.monotonic() >= deadline:
                raise
            await asyncio.sleep(0.5)


@pytest.fixture
def lo_count(db_engine: AsyncEngine):
    """Async callable returning the current number of large objects."""

    async def _count() -> int:
        return await count_large_objects(db_engine)

    return _count
