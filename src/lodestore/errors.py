"""Error taxonomy for lodestore.

Validation errors (UnsupportedPayloadType, EmptyPayload, MissingId,
UnsupportedOutputMode) are raised before any backend is touched.
Backend errors wrap the underlying driver or OS exception as ``__cause__``.
"""

from __future__ import annotations


class StorageError(Exception):
    """Base exception for storage errors."""

    pass


class StorageConfigError(StorageError, ValueError):
    """Invalid or incomplete storage configuration."""

    pass


class UnsupportedPayloadType(StorageError, TypeError):
    """Payload is not a byte buffer, text/number, or byte stream."""

    def __init__(self, payload_type: str) -> None:
        self.payload_type = payload_type
        super().__init__(
            f"Unsupported payload type: {payload_type}. "
            "Use bytes, str, a number, or a byte stream."
        )


class EmptyPayload(StorageError, ValueError):
    """No payload was provided at all (zero-length payloads are fine)."""

    def __init__(self) -> None:
        super().__init__("No payload provided for storage")


class MissingId(StorageError, ValueError):
    """An operation that addresses a stored file was called without an id."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"A file id is required for {operation}")


class NotFound(StorageError, LookupError):
    """No stored file exists for the given id."""

    def __init__(self, file_id: str) -> None:
        self.file_id = file_id
        super().__init__(f"File not found: {file_id}")


class UnsupportedOutputMode(StorageError, ValueError):
    """The requested output mode is unknown or unavailable on this provider."""

    def __init__(self, mode: str, provider: str | None = None) -> None:
        self.mode = mode
        self.provider = provider
        message = f"Unsupported output mode: {mode!r}"
        if provider:
            message += f" (not available on the {provider} provider)"
        super().__init__(message)


class BackendFailure(StorageError):
    """I/O, connection, or constraint failure from the underlying store."""

    def __init__(self, message: str, file_id: str | None = None) -> None:
        self.file_id = file_id
        super().__init__(message)


class TransactionFailure(BackendFailure):
    """A backend failure that caused the in-flight transaction to roll back."""

    rolled_back = True
