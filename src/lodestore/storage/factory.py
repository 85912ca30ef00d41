"""Storage provider factory for lodestore."""

from __future__ import annotations

from enum import Enum

from lodestore.config import Settings
from lodestore.errors import StorageConfigError
from lodestore.persistence.db import create_engine
from lodestore.storage.base import StorageProvider
from lodestore.storage.local import FilesystemProvider
from lodestore.storage.postgres import LargeObjectProvider


class ProviderKind(str, Enum):
    """Supported storage backends."""

    FILESYSTEM = "filesystem"
    RELATIONAL = "relational"

    @classmethod
    def parse(cls, value: "ProviderKind | str") -> "ProviderKind":
        """Parse a provider name, accepting the short aliases used in configs."""
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        kind = _ALIASES.get(name)
        if kind is None:
            raise StorageConfigError(
                f"Unknown provider: {value!r}. Supported values: filesystem (fs), relational (pg)."
            )
        return kind


_ALIASES = {
    "filesystem": ProviderKind.FILESYSTEM,
    "fs": ProviderKind.FILESYSTEM,
    "local": ProviderKind.FILESYSTEM,
    "relational": ProviderKind.RELATIONAL,
    "pg": ProviderKind.RELATIONAL,
    "postgres": ProviderKind.RELATIONAL,
    "postgresql": ProviderKind.RELATIONAL,
}


def create_provider(kind: ProviderKind | str, settings: Settings) -> StorageProvider:
    """Return a new StorageProvider for ``kind`` configured from ``settings``."""
    kind = ProviderKind.parse(kind)
    if kind is ProviderKind.FILESYSTEM:
        if not settings.base_dir:
            raise StorageConfigError("LODESTORE_BASE_DIR is required for provider='filesystem'")
        return FilesystemProvider(base_dir=settings.base_dir, chunk_size=settings.fs_chunk_size)

    if not settings.database_url:
        raise StorageConfigError("DATABASE_URL is required for provider='relational'")
    return LargeObjectProvider(
        engine=create_engine(settings),
        schema=settings.db_schema,
        table=settings.db_table,
        chunk_size=settings.lo_chunk_size,
        idle_timeout=settings.stream_idle_timeout or None,
    )
