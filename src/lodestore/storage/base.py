"""Base storage provider interface.

Defines the record types exchanged between the facade and providers, and
the abstract interface every storage backend implements.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Union

from lodestore.errors import UnsupportedOutputMode

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class OutputMode(str, Enum):
    """Shape of the payload returned by ``get``."""

    STREAM = "stream"
    BUFFER = "buffer"
    PATH = "path"

    @classmethod
    def parse(cls, value: "OutputMode | str | None") -> "OutputMode":
        """Parse a mode name; ``None`` means the default (stream)."""
        if value is None:
            return cls.STREAM
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise UnsupportedOutputMode(str(value)) from None


@dataclass(frozen=True)
class FileInfo:
    """Caller supplied descriptors for a file being stored."""

    filename: str | None = None
    content_type: str | None = None
    metadata: Mapping[str, Any] | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "FileInfo":
        """Build from a plain mapping.

        Accepts ``content_type`` or ``contentType``. Other keys, such as a
        claimed ``size`` or ``id``, are ignored.
        """
        if not data:
            return cls()
        return cls(
            filename=data.get("filename"),
            content_type=data.get("content_type") or data.get("contentType"),
            metadata=data.get("metadata"),
        )


@dataclass(frozen=True)
class FileDraft:
    """Record skeleton built by the facade and handed to a provider."""

    id: str
    filename: str
    content_type: str
    metadata: dict[str, Any]
    created_at: datetime


@dataclass(frozen=True)
class StoredObject:
    """What a provider computed while persisting a payload."""

    size: int
    content_hash: str
    locator: str


@dataclass
class FileRecord:
    """Metadata for a stored file."""

    id: str
    filename: str
    content_type: str = DEFAULT_CONTENT_TYPE
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    size: int = 0
    content_hash: str = ""
    locator: str = ""
    storage: str = ""

    @classmethod
    def from_stored(cls, draft: FileDraft, stored: StoredObject, storage: str) -> "FileRecord":
        """Merge a draft with provider results; computed fields always win."""
        return cls(
            id=draft.id,
            filename=draft.filename,
            content_type=draft.content_type,
            metadata=dict(draft.metadata),
            created_at=draft.created_at,
            size=stored.size,
            content_hash=stored.content_hash,
            locator=stored.locator,
            storage=storage,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON friendly dictionary."""
        return {
            "id": self.id,
            "filename": self.filename,
            "content_type": self.content_type,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "size": self.size,
            "content_hash": self.content_hash,
            "locator": self.locator,
            "storage": self.storage,
        }


FilePayload = Union[bytes, Path, AsyncIterator[bytes]]


@dataclass
class FileContent:
    """Result of ``get``: the record plus a payload shaped by the output mode.

    ``payload`` is ``bytes`` for buffer mode, a ``Path`` for path mode, and
    an async iterator of ``bytes`` with an ``aclose()`` coroutine for
    stream mode.
    """

    meta: FileRecord
    payload: FilePayload


class StorageProvider(ABC):
    """Abstract base class for storage backends."""

    name: str = ""

    # Whether get() can return a filesystem path
    supports_path: bool = False

    async def init(self) -> None:
        """Prepare the backend (directories, schema). Safe to call repeatedly."""
        return None

    @abstractmethod
    async def store(self, chunks: AsyncIterator[bytes], draft: FileDraft) -> StoredObject:
        """Persist a payload and its metadata atomically.

        Args:
            chunks: Payload bytes, consumed exactly once
            draft: Record skeleton (id, filename, content type, metadata, created_at)

        Returns:
            StoredObject with the exact size, SHA-256 hex digest and locator

        Raises:
            BackendFailure: If the payload or metadata could not be persisted;
                nothing is left behind in that case
        """
        ...

    @abstractmethod
    async def get(self, file_id: str, mode: OutputMode = OutputMode.STREAM) -> FileContent:
        """Retrieve a stored file.

        Args:
            file_id: Id assigned at store time
            mode: Payload shape to return

        Returns:
            FileContent with the record and payload

        Raises:
            NotFound: If no file exists for the id
            UnsupportedOutputMode: If the provider cannot produce ``mode``
        """
        ...

    @abstractmethod
    async def delete(self, file_id: str) -> None:
        """Delete payload and metadata together.

        Raises:
            NotFound: If no file exists for the id
        """
        ...

    async def close(self) -> None:
        """Release backend resources."""
        return None

    def check_mode(self, mode: OutputMode) -> None:
        """Reject output modes this provider cannot serve."""
        if mode is OutputMode.PATH and not self.supports_path:
            raise UnsupportedOutputMode(mode.value, self.name)
