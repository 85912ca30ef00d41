"""PostgreSQL large object access over an async SQLAlchemy connection.

Large objects are driven through the server-side functions ``lo_create``,
``lo_open``, ``lowrite``, ``loread``, ``lo_close`` and ``lo_unlink``. A
descriptor returned by ``lo_open`` is only valid inside the transaction
that opened it, so every ``LargeObject`` is bound to one connection with
an open transaction.

``LargeObjectStream`` hands a large object to a caller as an async
iterator while it still owns the connection. Its lifecycle is one state
machine:

    opened -> streaming -> closing -> closed

The move to ``closing`` happens once, from whichever comes first of full
drain (commit), a read error, ``aclose()`` or the idle timeout
(rollback). Everything that asks to close afterwards waits on the same
closing task, so the connection is released exactly once.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, cast

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from lodestore.errors import BackendFailure, TransactionFailure
from lodestore.observability.metrics import get_metrics, record_bytes

logger = logging.getLogger(__name__)

# Mode flags from libpq-fs.h
INV_WRITE = 0x20000
INV_READ = 0x40000

DEFAULT_CHUNK_SIZE = 16384


class LargeObject:
    """An open large object descriptor inside the connection's transaction."""

    def __init__(self, conn: AsyncConnection, oid: int, fd: int) -> None:
        self.conn = conn
        self.oid = oid
        self.fd = fd

    @classmethod
    async def create(cls, conn: AsyncConnection) -> "LargeObject":
        """Allocate a new large object and open it for writing."""
        oid = (await conn.execute(text("SELECT lo_create(0)"))).scalar_one()
        if not oid:
            raise BackendFailure("Failed to create large object")
        return await cls.open(conn, oid, INV_WRITE)

    @classmethod
    async def open(cls, conn: AsyncConnection, oid: int, mode: int = INV_READ) -> "LargeObject":
        """Open an existing large object."""
        fd = (
            await conn.execute(text("SELECT lo_open(:oid, :mode)"), {"oid": oid, "mode": mode})
        ).scalar_one()
        return cls(conn, oid, fd)

    async def write(self, data: bytes) -> None:
        await self.conn.execute(text("SELECT lowrite(:fd, :data)"), {"fd": self.fd, "data": data})

    async def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes; an empty result means end of object."""
        result = await self.conn.execute(
            text("SELECT loread(:fd, :size)"), {"fd": self.fd, "size": size}
        )
        return cast(bytes, result.scalar_one())

    async def close(self) -> None:
        await self.conn.execute(text("SELECT lo_close(:fd)"), {"fd": self.fd})

    @staticmethod
    async def unlink(conn: AsyncConnection, oid: int) -> None:
        """Remove a large object and all its data."""
        await conn.execute(text("SELECT lo_unlink(:oid)"), {"oid": oid})


class LargeObjectWriter:
    """Coalesces arbitrary chunks into ``lowrite`` calls of ``chunk_size`` bytes.

    At most ``chunk_size`` bytes are held back between calls; ``flush``
    writes the remainder.
    """

    def __init__(self, lo: LargeObject, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._lo = lo
        self._chunk_size = chunk_size
        self._buffer = bytearray()

    async def write(self, data: bytes) -> None:
        if self._buffer:
            missing = self._chunk_size - len(self._buffer)
            self._buffer += data[:missing]
            data = data[missing:]
            if len(self._buffer) < self._chunk_size:
                return
            await self._lo.write(bytes(self._buffer))
            self._buffer.clear()

        view = memoryview(data)
        offset = 0
        while len(view) - offset >= self._chunk_size:
            await self._lo.write(bytes(view[offset : offset + self._chunk_size]))
            offset += self._chunk_size
        self._buffer += view[offset:]

    async def flush(self) -> None:
        if self._buffer:
            await self._lo.write(bytes(self._buffer))
            self._buffer.clear()


class StreamState(str, Enum):
    """Lifecycle of a streamed large object read."""

    OPENED = "opened"
    STREAMING = "streaming"
    CLOSING = "closing"
    CLOSED = "closed"


class LargeObjectStream:
    """Async byte iterator over a large object that owns its connection.

    The connection and its read transaction stay claimed until the stream
    reaches ``closed``. Consumers that stop early must call ``aclose()``
    (or use ``async with``); streams left untouched for ``idle_timeout``
    seconds close themselves and the next read raises ``BackendFailure``.

    Usage:
        async with content.payload as stream:
            async for chunk in stream:
                ...
    """

    def __init__(
        self,
        conn: AsyncConnection,
        lo: LargeObject,
        *,
        file_id: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        idle_timeout: float | None = 300.0,
        provider: str = "relational",
    ) -> None:
        self._conn = conn
        self._lo = lo
        self.file_id = file_id
        self._chunk_size = chunk_size
        self._idle_timeout = idle_timeout
        self._provider = provider

        self._state = StreamState.OPENED
        self._lock = asyncio.Lock()
        self._closing: asyncio.Task[None] | None = None
        self._idle_handle: asyncio.TimerHandle | None = None
        # Error to raise on the next read after an idle close
        self._pending_error: BaseException | None = None
        self.bytes_read = 0

        get_metrics().open_streams.labels(provider=self._provider).inc()
        self._arm_idle_timer()

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is StreamState.CLOSED

    def __aiter__(self) -> "LargeObjectStream":
        return self

    async def __anext__(self) -> bytes:
        self._raise_if_finished()
        self._cancel_idle_timer()
        error: Exception | None = None
        async with self._lock:
            self._raise_if_finished()
            self._state = StreamState.STREAMING
            try:
                chunk = await self._lo.read(self._chunk_size)
            except asyncio.CancelledError:
                self._begin_close(commit=False, reason="consumer cancelled")
                raise
            except Exception as exc:
                error = exc

        if error is not None:
            await self._finish(commit=False, reason="read error")
            raise BackendFailure(
                f"Reading large object {self._lo.oid} failed: {error}", self.file_id
            ) from error

        if not chunk:
            await self._finish(commit=True, reason="drained")
            raise StopAsyncIteration

        self.bytes_read += len(chunk)
        record_bytes(self._provider, "out", len(chunk))
        self._arm_idle_timer()
        return chunk

    async def read_all(self) -> bytes:
        """Drain the remaining bytes into memory."""
        return b"".join([chunk async for chunk in self])

    async def aclose(self) -> None:
        """Abort the read: roll back and release the connection.

        Safe to call at any point and any number of times; after a full
        drain it only waits for the commit that is already under way.
        """
        if self._closing is not None:
            await asyncio.wait([self._closing])
            return
        await self._finish(commit=False, reason="closed by consumer")

    async def __aenter__(self) -> "LargeObjectStream":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    def _raise_if_finished(self) -> None:
        if self._state in (StreamState.CLOSING, StreamState.CLOSED):
            error, self._pending_error = self._pending_error, None
            if error is not None:
                raise error
            raise StopAsyncIteration

    def _arm_idle_timer(self) -> None:
        if not self._idle_timeout:
            return
        loop = asyncio.get_running_loop()
        self._idle_handle = loop.call_later(self._idle_timeout, self._on_idle)

    def _cancel_idle_timer(self) -> None:
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

    def _on_idle(self) -> None:
        self._idle_handle = None
        if self._closing is not None:
            return
        logger.warning(
            f"Stream for {self.file_id} idle for {self._idle_timeout}s after "
            f"{self.bytes_read} bytes; releasing connection"
        )
        self._pending_error = BackendFailure(
            f"Stream for {self.file_id} was closed after {self._idle_timeout}s without reads",
            self.file_id,
        )
        self._begin_close(commit=False, reason="idle timeout")

    def _begin_close(self, commit: bool, reason: str) -> asyncio.Task[None]:
        """Start the single terminal transition, or return the one in progress."""
        if self._closing is None:
            self._state = StreamState.CLOSING
            self._cancel_idle_timer()
            self._closing = asyncio.get_running_loop().create_task(self._close(commit, reason))
        return self._closing

    async def _finish(self, commit: bool, reason: str) -> None:
        # Shielded so a consumer cancelled mid-close cannot interrupt the release
        await asyncio.shield(self._begin_close(commit, reason))

    async def _close(self, commit: bool, reason: str) -> None:
        async with self._lock:
            try:
                if commit:
                    await self._lo.close()
                    await self._conn.commit()
                else:
                    await self._conn.rollback()
            except Exception as exc:
                if commit:
                    raise TransactionFailure(
                        f"Commit after reading {self.file_id} failed: {exc}", self.file_id
                    ) from exc
                logger.error(f"Rollback of stream for {self.file_id} failed: {exc}")
            finally:
                try:
                    await self._conn.close()
                except Exception as exc:
                    logger.error(f"Releasing connection for {self.file_id} failed: {exc}")
                self._state = StreamState.CLOSED
                get_metrics().open_streams.labels(provider=self._provider).dec()
                logger.debug(
                    f"Stream for {self.file_id} closed ({reason}, {self.bytes_read} bytes)"
                )
