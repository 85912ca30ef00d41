"""lodestore: content storage over the filesystem or PostgreSQL large objects."""

from lodestore.errors import (
    BackendFailure,
    EmptyPayload,
    MissingId,
    NotFound,
    StorageConfigError,
    StorageError,
    TransactionFailure,
    UnsupportedOutputMode,
    UnsupportedPayloadType,
)
from lodestore.storage import FileInfo, FileRecord, FileStorage, OutputMode, ProviderKind

__version__ = "0.1.0"

__all__ = [
    "FileStorage",
    "FileInfo",
    "FileRecord",
    "OutputMode",
    "ProviderKind",
    "StorageError",
    "StorageConfigError",
    "UnsupportedPayloadType",
    "EmptyPayload",
    "MissingId",
    "NotFound",
    "UnsupportedOutputMode",
    "BackendFailure",
    "TransactionFailure",
]
