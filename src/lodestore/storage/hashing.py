"""Single-pass hashing of a payload while it is being written."""

from __future__ import annotations

import hashlib
from collections.abc import AsyncIterator


class HashingReader:
    """Tee over an async chunk source.

    Every chunk is fed into a running SHA-256 digest and counted before
    being passed on unmodified, so size and hash describe exactly the
    bytes the consumer received.

    Usage:
        reader = HashingReader(chunks)
        async for chunk in reader:
            await sink.write(chunk)
        reader.size, reader.hexdigest()
    """

    def __init__(self, source: AsyncIterator[bytes]) -> None:
        self._source = source
        self._digest = hashlib.sha256()
        self.size = 0

    def __aiter__(self) -> "HashingReader":
        return self

    async def __anext__(self) -> bytes:
        chunk = await self._source.__anext__()
        self._digest.update(chunk)
        self.size += len(chunk)
        return chunk

    def hexdigest(self) -> str:
        return self._digest.hexdigest()
