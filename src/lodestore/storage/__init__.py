"""Storage engine for lodestore.

Provides one store/get/delete contract over interchangeable backends:
- Local filesystem storage (payload file + JSON sidecar)
- PostgreSQL large object storage (payload as a large object, metadata as a row)

Payloads of unknown size are streamed to the backend while their SHA-256
hash and byte count are computed in the same pass.
"""

from lodestore.storage.base import (
    FileContent,
    FileDraft,
    FileInfo,
    FileRecord,
    OutputMode,
    StorageProvider,
    StoredObject,
)
from lodestore.storage.core import FileStorage
from lodestore.storage.factory import ProviderKind, create_provider
from lodestore.storage.large_object import LargeObjectStream, StreamState
from lodestore.storage.local import FilesystemProvider
from lodestore.storage.payload import BufferPayload, StreamPayload, TextPayload, classify
from lodestore.storage.postgres import LargeObjectProvider

__all__ = [
    "FileStorage",
    "StorageProvider",
    "FilesystemProvider",
    "LargeObjectProvider",
    "LargeObjectStream",
    "StreamState",
    "ProviderKind",
    "create_provider",
    "FileContent",
    "FileDraft",
    "FileInfo",
    "FileRecord",
    "OutputMode",
    "StoredObject",
    "BufferPayload",
    "TextPayload",
    "StreamPayload",
    "classify",
]
