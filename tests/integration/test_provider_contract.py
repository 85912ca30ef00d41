"""Behavior every storage provider must share.

Each test runs against the filesystem provider and the PostgreSQL large
object provider; the relational variant is skipped without Docker.
"""

from __future__ import annotations

import asyncio
import hashlib
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

import pytest
from sqlalchemy import text

from lodestore.errors import BackendFailure, NotFound
from lodestore.storage.core import FileStorage
from lodestore.storage.local import FilesystemProvider

HELLO_SHA256 = "a591a6d40bf420404a011733cfb7b190d62c65bf0bcda32b57b277d9ad9f146e"
EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


@dataclass
class Backend:
    """A storage facade plus a way to measure what it has persisted."""

    storage: FileStorage
    footprint: Callable[[], Awaitable[int]]


@pytest.fixture(params=["filesystem", "relational"])
def backend(request, tmp_path: Path) -> Backend:
    if request.param == "filesystem":
        provider = FilesystemProvider(base_dir=tmp_path, chunk_size=1024)

        async def footprint() -> int:
            return sum(1 for p in tmp_path.rglob("*") if p.is_file())

        return Backend(FileStorage(provider), footprint)

    pg_provider = request.getfixturevalue("pg_provider")

    async def pg_footprint() -> int:
        async with pg_provider.engine.connect() as conn:
            objects = await conn.execute(text("SELECT count(*) FROM pg_largeobject_metadata"))
            rows = await conn.execute(text(f"SELECT count(*) FROM {pg_provider.table.fullname}"))
            return int(objects.scalar_one()) + int(rows.scalar_one())

    return Backend(FileStorage(pg_provider), pg_footprint)


class TestProviderContract:
    """Store/get/delete semantics shared by all providers."""

    @pytest.mark.asyncio
    async def test_hello_world(self, backend: Backend) -> None:
        storage = backend.storage
        record = await storage.store(
            "Hello World",
            {"filename": "hello.txt", "contentType": "text/plain", "metadata": {"author": "Alice"}},
        )

        assert record.size == 11
        assert record.content_hash == HELLO_SHA256
        assert record.content_type == "text/plain"

        content = await storage.get(record.id, mode="buffer")
        assert content.payload == b"Hello World"
        assert content.meta.metadata == {"author": "Alice"}
        assert content.meta.size == 11
        assert content.meta.content_hash == HELLO_SHA256
        assert content.meta.filename == "hello.txt"

    @pytest.mark.asyncio
    async def test_record_round_trip(self, backend: Backend) -> None:
        storage = backend.storage
        record = await storage.store(
            b"{}",
            {
                "filename": "doc.json",
                "content_type": "application/json",
                "metadata": {"owner": "qa", "labels": {"env": "test"}, "n": 3},
            },
        )

        meta = (await storage.get(record.id, mode="buffer")).meta

        assert meta.id == record.id
        assert meta.filename == "doc.json"
        assert meta.content_type == "application/json"
        assert meta.metadata == {"owner": "qa", "labels": {"env": "test"}, "n": 3}
        assert meta.created_at == record.created_at
        assert meta.storage == storage.storage_name

    @pytest.mark.asyncio
    async def test_stream_round_trip(self, backend: Backend) -> None:
        storage = backend.storage
        data = os.urandom(100_000)

        record = await storage.store(iter([data[:40_000], data[40_000:]]))
        content = await storage.get(record.id)
        received = b"".join([chunk async for chunk in content.payload])

        assert received == data
        assert record.content_hash == hashlib.sha256(data).hexdigest()

    @pytest.mark.asyncio
    async def test_empty_payload(self, backend: Backend) -> None:
        storage = backend.storage
        record = await storage.store(b"")

        assert record.size == 0
        assert record.content_hash == EMPTY_SHA256
        assert (await storage.get(record.id, mode="buffer")).payload == b""

        content = await storage.get(record.id)
        assert [chunk async for chunk in content.payload] == []

    @pytest.mark.asyncio
    async def test_failed_store_persists_nothing(self, backend: Backend) -> None:
        before = await backend.footprint()

        async def failing():
            yield b"partial"
            raise RuntimeError("source failed")

        with pytest.raises(RuntimeError):
            await backend.storage.store(failing())

        assert await backend.footprint() == before

    @pytest.mark.asyncio
    async def test_unserializable_metadata(self, backend: Backend) -> None:
        """Both providers report metadata they cannot persist as a backend failure."""
        before = await backend.footprint()

        with pytest.raises(BackendFailure):
            await backend.storage.store(b"x", {"metadata": {"k": object()}})

        assert await backend.footprint() == before

    @pytest.mark.asyncio
    async def test_delete_removes_everything(self, backend: Backend) -> None:
        storage = backend.storage
        before = await backend.footprint()
        record = await storage.store(b"to be deleted")

        assert await storage.delete(record.id) == {"id": record.id, "deleted": True}

        assert await backend.footprint() == before
        with pytest.raises(NotFound):
            await storage.get(record.id, mode="buffer")
        with pytest.raises(NotFound):
            await storage.delete(record.id)

    @pytest.mark.asyncio
    async def test_unknown_id(self, backend: Backend) -> None:
        unknown = str(uuid4())
        with pytest.raises(NotFound):
            await backend.storage.get(unknown)
        with pytest.raises(NotFound):
            await backend.storage.delete(unknown)

    @pytest.mark.asyncio
    async def test_abandoned_stream_leaves_file_intact(self, backend: Backend) -> None:
        storage = backend.storage
        record = await storage.store(b"q" * 10_000)

        stream = (await storage.get(record.id)).payload
        await stream.__anext__()
        await stream.aclose()

        assert (await storage.get(record.id, mode="buffer")).payload == b"q" * 10_000

    @pytest.mark.asyncio
    async def test_concurrent_stores(self, backend: Backend) -> None:
        storage = backend.storage
        payloads = [f"payload {i}".encode() for i in range(5)]

        records = await asyncio.gather(*(storage.store(p) for p in payloads))

        assert len({r.id for r in records}) == 5
        for record, payload in zip(records, payloads):
            content = await storage.get(record.id, mode="buffer")
            assert content.payload == payload
