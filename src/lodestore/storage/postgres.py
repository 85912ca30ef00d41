"""PostgreSQL large object storage.

Payloads are stored as native large objects, metadata as a row in the
files table (see ``lodestore.persistence.tables``). The large object and
its row are written in one transaction on one pooled connection, so a
failed store leaves neither behind.

Streamed reads return a ``LargeObjectStream`` that keeps the connection
and its transaction until the caller drains or closes it.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any
from uuid import UUID

from sqlalchemy import MetaData, Row, Table, delete, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.schema import CreateSchema

from lodestore.errors import BackendFailure, NotFound, StorageError, TransactionFailure
from lodestore.observability.metrics import record_bytes
from lodestore.persistence.tables import build_files_table
from lodestore.storage.base import (
    FileContent,
    FileDraft,
    FileRecord,
    OutputMode,
    StorageProvider,
    StoredObject,
)
from lodestore.storage.hashing import HashingReader
from lodestore.storage.large_object import (
    DEFAULT_CHUNK_SIZE,
    INV_READ,
    LargeObject,
    LargeObjectStream,
    LargeObjectWriter,
)

logger = logging.getLogger(__name__)

_BACKEND_ERRORS = (SQLAlchemyError, OSError)


class LargeObjectProvider(StorageProvider):
    """PostgreSQL large object storage backend.

    Configuration via:
    - engine: async SQLAlchemy engine (asyncpg driver); its pool supplies
      one connection per operation
    - schema / table: location of the files table
    - chunk_size: size of each lowrite/loread call
    - idle_timeout: seconds an unread stream may hold its connection
    """

    name = "relational"
    supports_path = False

    def __init__(
        self,
        engine: AsyncEngine,
        schema: str | None = "public",
        table: str = "files",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        idle_timeout: float | None = 300.0,
    ):
        self.engine = engine
        self.schema = schema or None
        self.chunk_size = chunk_size
        self.idle_timeout = idle_timeout
        self.metadata = MetaData()
        self.table: Table = build_files_table(self.metadata, name=table, schema=self.schema)

    async def init(self) -> None:
        """Create schema, table and index if missing."""
        try:
            async with self.engine.begin() as conn:
                if self.schema and self.schema != "public":
                    await conn.execute(CreateSchema(self.schema, if_not_exists=True))
                await conn.run_sync(self.metadata.create_all)
        except _BACKEND_ERRORS as exc:
            raise BackendFailure(f"Failed to initialize {self.table.fullname}: {exc}") from exc
        logger.info(f"Storage table {self.table.fullname} ready")

    @asynccontextmanager
    async def _transaction(self, file_id: str, operation: str) -> AsyncIterator[AsyncConnection]:
        """Run a block in one transaction on one pooled connection.

        Commits on success. On any error the transaction is rolled back
        before the error propagates; database errors are re-raised as
        TransactionFailure. The connection is always returned to the pool.
        """
        conn = await self._connect(file_id)
        try:
            try:
                await conn.begin()
                yield conn
                await conn.commit()
            except BaseException as exc:
                await self._rollback(conn, file_id, operation, exc)
                if isinstance(exc, _BACKEND_ERRORS):
                    raise TransactionFailure(
                        f"{operation} of {file_id} rolled back: {exc}", file_id
                    ) from exc
                raise
        finally:
            await self._release(conn, file_id)

    async def _connect(self, file_id: str) -> AsyncConnection:
        try:
            return await self.engine.connect()
        except _BACKEND_ERRORS as exc:
            raise BackendFailure(f"Could not acquire a database connection: {exc}", file_id) from exc

    async def _rollback(
        self, conn: AsyncConnection, file_id: str, operation: str, exc: BaseException
    ) -> None:
        if not isinstance(exc, StorageError):
            logger.warning(f"Rolling back {operation} of {file_id}: {exc!r}")
        try:
            await conn.rollback()
        except Exception as rollback_exc:
            logger.error(f"Rollback of {operation} for {file_id} failed: {rollback_exc}")

    async def _release(self, conn: AsyncConnection, file_id: str) -> None:
        try:
            await conn.close()
        except Exception as exc:
            logger.error(f"Releasing connection for {file_id} failed: {exc}")

    async def store(self, chunks: AsyncIterator[bytes], draft: FileDraft) -> StoredObject:
        """Stream the payload into a new large object and insert its row."""
        reader = HashingReader(chunks)
        async with self._transaction(draft.id, "store") as conn:
            lo = await LargeObject.create(conn)
            writer = LargeObjectWriter(lo, self.chunk_size)
            async for chunk in reader:
                await writer.write(chunk)
            await writer.flush()
            await lo.close()

            content_hash = reader.hexdigest()
            await conn.execute(
                insert(self.table).values(
                    id=draft.id,
                    loid=lo.oid,
                    filename=draft.filename,
                    content_type=draft.content_type,
                    size=reader.size,
                    sha256=content_hash,
                    metadata=draft.metadata,
                    created_at=draft.created_at,
                )
            )

        record_bytes(self.name, "in", reader.size)
        logger.debug(f"Stored file {draft.id} as large object {lo.oid} ({reader.size} bytes)")
        return StoredObject(size=reader.size, content_hash=content_hash, locator=str(lo.oid))

    async def get(self, file_id: str, mode: OutputMode = OutputMode.STREAM) -> FileContent:
        """Retrieve a file as bytes or as a connection-owning stream."""
        self.check_mode(mode)

        if mode is OutputMode.BUFFER:
            async with self._transaction(file_id, "get") as conn:
                row = await self._fetch_row(conn, file_id)
                lo = await LargeObject.open(conn, row.loid, INV_READ)
                parts = []
                while True:
                    chunk = await lo.read(self.chunk_size)
                    if not chunk:
                        break
                    parts.append(chunk)
                await lo.close()
            content = b"".join(parts)
            record_bytes(self.name, "out", len(content))
            return FileContent(meta=self._to_record(row), payload=content)

        conn = await self._connect(file_id)
        try:
            await conn.begin()
            row = await self._fetch_row(conn, file_id)
            lo = await LargeObject.open(conn, row.loid, INV_READ)
        except BaseException as exc:
            await self._rollback(conn, file_id, "get", exc)
            await self._release(conn, file_id)
            if isinstance(exc, _BACKEND_ERRORS):
                raise BackendFailure(f"Opening {file_id} failed: {exc}", file_id) from exc
            raise

        stream = LargeObjectStream(
            conn,
            lo,
            file_id=file_id,
            chunk_size=self.chunk_size,
            idle_timeout=self.idle_timeout,
            provider=self.name,
        )
        return FileContent(meta=self._to_record(row), payload=stream)

    async def delete(self, file_id: str) -> None:
        """Delete the row and unlink its large object in one transaction."""
        async with self._transaction(file_id, "delete") as conn:
            if not _is_uuid(file_id):
                raise NotFound(file_id)
            result = await conn.execute(
                delete(self.table).where(self.table.c.id == file_id).returning(self.table.c.loid)
            )
            loid = result.scalar_one_or_none()
            if loid is None:
                raise NotFound(file_id)
            await LargeObject.unlink(conn, loid)
        logger.debug(f"Deleted file {file_id} and large object {loid}")

    async def close(self) -> None:
        await self.engine.dispose()

    async def _fetch_row(self, conn: AsyncConnection, file_id: str) -> Row[Any]:
        if not _is_uuid(file_id):
            raise NotFound(file_id)
        result = await conn.execute(select(self.table).where(self.table.c.id == file_id))
        row = result.one_or_none()
        if row is None:
            raise NotFound(file_id)
        return row

    def _to_record(self, row: Row[Any]) -> FileRecord:
        return FileRecord(
            id=str(row.id),
            filename=row.filename,
            content_type=row.content_type,
            metadata=row.metadata or {},
            created_at=row.created_at,
            size=row.size,
            content_hash=row.sha256,
            locator=str(row.loid),
            storage=self.name,
        )


def _is_uuid(value: str) -> bool:
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True
