"""Payload shapes accepted by the storage facade.

Callers may hand over a byte buffer, text (or a number, which is stored as
its decimal text), or a byte stream. ``classify`` turns the raw value into
one of three tagged variants; every variant exposes ``chunks()`` so
providers only ever consume an async iterator of ``bytes``.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, AsyncIterator, Iterator
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, BinaryIO, Literal, Union

from lodestore.errors import EmptyPayload, UnsupportedPayloadType

READ_SIZE = 64 * 1024


def _as_bytes(chunk: Any) -> bytes:
    if isinstance(chunk, bytes):
        return chunk
    if isinstance(chunk, (bytearray, memoryview)):
        return bytes(chunk)
    raise UnsupportedPayloadType(f"stream chunk of type {type(chunk).__name__}")


@dataclass(frozen=True)
class BufferPayload:
    """In-memory bytes."""

    data: bytes
    kind: Literal["buffer"] = "buffer"

    async def chunks(self) -> AsyncIterator[bytes]:
        yield self.data


@dataclass(frozen=True)
class TextPayload:
    """Text, stored UTF-8 encoded."""

    text: str
    kind: Literal["text"] = "text"

    async def chunks(self) -> AsyncIterator[bytes]:
        yield self.text.encode("utf-8")


@dataclass(frozen=True)
class StreamPayload:
    """A lazy byte source: async iterable, sync iterator, or binary file object."""

    source: Any
    kind: Literal["stream"] = "stream"

    async def chunks(self) -> AsyncIterator[bytes]:
        source = self.source
        if isinstance(source, AsyncIterable):
            async for chunk in source:
                yield _as_bytes(chunk)
        elif hasattr(source, "read"):
            reader: BinaryIO = source
            while True:
                block = reader.read(READ_SIZE)
                if not block:
                    break
                yield _as_bytes(block)
                # Blocking reads would otherwise starve the loop on large files
                await asyncio.sleep(0)
        else:
            for chunk in source:
                yield _as_bytes(chunk)
                await asyncio.sleep(0)


Payload = Union[BufferPayload, TextPayload, StreamPayload]


def classify(value: Any) -> Payload:
    """Validate a raw payload and wrap it in its tagged variant.

    Raises:
        EmptyPayload: If ``value`` is None
        UnsupportedPayloadType: If ``value`` is none of the accepted shapes
    """
    if value is None:
        raise EmptyPayload()
    if isinstance(value, (BufferPayload, TextPayload, StreamPayload)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return BufferPayload(bytes(value))
    if isinstance(value, str):
        return TextPayload(value)
    if isinstance(value, bool):
        raise UnsupportedPayloadType("bool")
    if isinstance(value, (int, float, Decimal)):
        return TextPayload(str(value))
    if isinstance(value, AsyncIterable) or hasattr(value, "read") or isinstance(value, Iterator):
        return StreamPayload(value)
    raise UnsupportedPayloadType(type(value).__name__)
