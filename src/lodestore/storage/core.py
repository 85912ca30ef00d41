"""Storage facade.

``FileStorage`` is the single entry point for callers. It validates and
normalizes input, assigns ids, and dispatches to the configured provider:

    storage = FileStorage.from_settings(Settings(provider="fs", base_dir="/tmp/files"))
    await storage.init()

    record = await storage.store(b"hello", {"filename": "hello.txt"})
    content = await storage.get(record.id, mode="buffer")
    await storage.delete(record.id)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from lodestore.config import Settings
from lodestore.errors import MissingId
from lodestore.observability.logging import LogContext
from lodestore.observability.metrics import track_operation
from lodestore.storage.base import (
    DEFAULT_CONTENT_TYPE,
    FileContent,
    FileDraft,
    FileInfo,
    FileRecord,
    OutputMode,
    StorageProvider,
)
from lodestore.storage.factory import ProviderKind, create_provider
from lodestore.storage.payload import classify

logger = logging.getLogger(__name__)


class FileStorage:
    """Uniform store/get/delete over one storage provider."""

    def __init__(self, provider: StorageProvider) -> None:
        self.provider = provider

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        kind: ProviderKind | str | None = None,
    ) -> "FileStorage":
        """Build the provider named by ``kind`` (default: ``settings.provider``)."""
        return cls(create_provider(kind or settings.provider, settings))

    @property
    def storage_name(self) -> str:
        return self.provider.name

    async def init(self) -> None:
        """Prepare the provider's backend (schema, directories)."""
        await self.provider.init()

    async def close(self) -> None:
        await self.provider.close()

    async def __aenter__(self) -> "FileStorage":
        await self.init()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def store(
        self,
        payload: Any,
        info: FileInfo | Mapping[str, Any] | None = None,
    ) -> FileRecord:
        """Store a payload and return its record.

        Args:
            payload: bytes-like, str or number, or a byte stream (async
                iterable, iterator of bytes, or binary file object)
            info: Optional filename, content type and metadata

        Returns:
            FileRecord with the new id, computed size and SHA-256 hash

        Raises:
            EmptyPayload: If payload is None
            UnsupportedPayloadType: If payload has none of the accepted shapes
            BackendFailure: If the provider could not persist it
        """
        source = classify(payload)
        if not isinstance(info, FileInfo):
            info = FileInfo.from_mapping(info)

        file_id = str(uuid4())
        draft = FileDraft(
            id=file_id,
            filename=info.filename or file_id,
            content_type=info.content_type or DEFAULT_CONTENT_TYPE,
            metadata=dict(info.metadata or {}),
            created_at=datetime.now(timezone.utc),
        )

        with LogContext(operation="store", file_id=file_id, provider=self.storage_name):
            with track_operation(self.storage_name, "store"):
                stored = await self.provider.store(source.chunks(), draft)
            logger.info(
                f"Stored {source.kind} payload as {file_id} "
                f"({stored.size} bytes, sha256={stored.content_hash[:12]})"
            )
        return FileRecord.from_stored(draft, stored, self.storage_name)

    async def get(
        self,
        file_id: str,
        mode: OutputMode | str | None = OutputMode.STREAM,
    ) -> FileContent:
        """Retrieve a stored file.

        ``mode`` selects the payload shape: ``stream`` (default, an async
        iterator that must be drained or closed), ``buffer`` (bytes) or
        ``path`` (filesystem provider only).

        Raises:
            MissingId: If file_id is empty
            UnsupportedOutputMode: If mode is unknown or unsupported by the provider
            NotFound: If no file exists for file_id
        """
        if not file_id:
            raise MissingId("get")
        output = OutputMode.parse(mode)
        self.provider.check_mode(output)

        with LogContext(operation="get", file_id=file_id, provider=self.storage_name):
            with track_operation(self.storage_name, "get"):
                return await self.provider.get(file_id, output)

    async def delete(self, file_id: str) -> dict[str, Any]:
        """Delete a stored file; payload and metadata go together.

        Raises:
            MissingId: If file_id is empty
            NotFound: If no file exists for file_id
        """
        if not file_id:
            raise MissingId("delete")

        with LogContext(operation="delete", file_id=file_id, provider=self.storage_name):
            with track_operation(self.storage_name, "delete"):
                await self.provider.delete(file_id)
            logger.info(f"Deleted {file_id}")
        return {"id": file_id, "deleted": True}
