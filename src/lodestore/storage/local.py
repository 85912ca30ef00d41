"""Local filesystem storage.

Stores files in a date-partitioned directory structure:
    {base_dir}/{YYYY}/{MM}/{DD}/{id}        payload
    {base_dir}/{YYYY}/{MM}/{DD}/{id}.json   metadata sidecar

The sidecar is the commit point: it is written last, through an atomic
rename, and removed first on delete. A payload without a sidecar is
never visible to ``get``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, cast

import aiofiles  # type: ignore[import-untyped]
import aiofiles.os  # type: ignore[import-untyped]
import orjson

from lodestore.errors import BackendFailure, NotFound
from lodestore.observability.metrics import record_bytes
from lodestore.storage.base import (
    FileContent,
    FileDraft,
    FileRecord,
    OutputMode,
    StorageProvider,
    StoredObject,
)
from lodestore.storage.hashing import HashingReader

logger = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".json"
PARTIAL_SUFFIX = ".part"
DELETING_SUFFIX = ".deleting"


class FilesystemProvider(StorageProvider):
    """Local filesystem storage backend."""

    name = "filesystem"
    supports_path = True

    def __init__(self, base_dir: str | Path = "data", chunk_size: int = 64 * 1024):
        """Initialize local storage.

        Args:
            base_dir: Base directory for stored files
            chunk_size: Read size for streamed gets
        """
        self.base_dir = Path(base_dir).resolve()
        self.chunk_size = chunk_size

    async def init(self) -> None:
        await aiofiles.os.makedirs(self.base_dir, exist_ok=True)

    def _get_dir(self, created_at: datetime) -> Path:
        """Get the partition directory for a creation time (UTC date)."""
        day = created_at.astimezone(timezone.utc)
        return self.base_dir / f"{day.year:04d}" / f"{day.month:02d}" / f"{day.day:02d}"

    async def store(self, chunks: AsyncIterator[bytes], draft: FileDraft) -> StoredObject:
        """Write the payload, then commit it by writing the sidecar."""
        directory = self._get_dir(draft.created_at)
        file_path = directory / draft.id
        part_path = directory / f"{draft.id}{PARTIAL_SUFFIX}"
        meta_path = directory / f"{draft.id}{SIDECAR_SUFFIX}"
        meta_tmp = directory / f"{draft.id}{SIDECAR_SUFFIX}{PARTIAL_SUFFIX}"

        reader = HashingReader(chunks)
        try:
            await aiofiles.os.makedirs(directory, exist_ok=True)
            async with aiofiles.open(part_path, "wb") as f:
                async for chunk in reader:
                    await f.write(chunk)
            await aiofiles.os.replace(part_path, file_path)

            sidecar = {
                "id": draft.id,
                "filename": draft.filename,
                "content_type": draft.content_type,
                "size": reader.size,
                "sha256": reader.hexdigest(),
                "metadata": draft.metadata,
                "created_at": draft.created_at.isoformat(),
            }
            async with aiofiles.open(meta_tmp, "wb") as f:
                await f.write(orjson.dumps(sidecar, option=orjson.OPT_INDENT_2))
            await aiofiles.os.replace(meta_tmp, meta_path)
        except BaseException as exc:
            await self._discard(part_path, file_path, meta_tmp)
            if isinstance(exc, (OSError, orjson.JSONEncodeError)):
                raise BackendFailure(f"Failed to write {file_path}: {exc}", draft.id) from exc
            raise

        record_bytes(self.name, "in", reader.size)
        logger.debug(f"Stored file {draft.id} at {file_path} ({reader.size} bytes)")
        return StoredObject(
            size=reader.size,
            content_hash=reader.hexdigest(),
            locator=str(file_path),
        )

    async def _discard(self, *paths: Path) -> None:
        """Remove leftovers of a failed store."""
        for path in paths:
            try:
                await aiofiles.os.remove(path)
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.error(f"Could not remove partial file {path}: {exc}")

    async def get(self, file_id: str, mode: OutputMode = OutputMode.STREAM) -> FileContent:
        """Retrieve a file as a stream, bytes, or path."""
        self.check_mode(mode)
        meta_path = await self._find_meta(file_id)
        if meta_path is None:
            raise NotFound(file_id)

        record = await self._read_meta(meta_path)
        file_path = Path(record.locator)

        if mode is OutputMode.PATH:
            return FileContent(meta=record, payload=file_path)

        if mode is OutputMode.BUFFER:
            try:
                async with aiofiles.open(file_path, "rb") as f:
                    content = cast(bytes, await f.read())
            except FileNotFoundError:
                raise NotFound(file_id) from None
            except OSError as exc:
                raise BackendFailure(f"Failed to read {file_path}: {exc}", file_id) from exc
            record_bytes(self.name, "out", len(content))
            return FileContent(meta=record, payload=content)

        return FileContent(meta=record, payload=self._stream(file_path))

    async def _stream(self, file_path: Path) -> AsyncIterator[bytes]:
        """Stream file content in chunks."""
        try:
            async with aiofiles.open(file_path, "rb") as f:
                while True:
                    chunk = await f.read(self.chunk_size)
                    if not chunk:
                        break
                    record_bytes(self.name, "out", len(chunk))
                    yield chunk
        except OSError as exc:
            raise BackendFailure(f"Failed to read {file_path}: {exc}") from exc

    async def delete(self, file_id: str) -> None:
        """Hide the sidecar, remove the payload, then drop the sidecar.

        If the payload cannot be removed the sidecar is restored, so the
        file is either fully deleted or still fully readable.
        """
        meta_path = await self._find_meta(file_id)
        if meta_path is None:
            raise NotFound(file_id)

        file_path = meta_path.with_name(file_id)
        tombstone = meta_path.with_name(f"{file_id}{SIDECAR_SUFFIX}{DELETING_SUFFIX}")
        try:
            await aiofiles.os.replace(meta_path, tombstone)
        except FileNotFoundError:
            raise NotFound(file_id) from None
        except OSError as exc:
            raise BackendFailure(f"Failed to delete {meta_path}: {exc}", file_id) from exc

        try:
            await aiofiles.os.remove(file_path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            await aiofiles.os.replace(tombstone, meta_path)
            raise BackendFailure(f"Failed to delete {file_path}: {exc}", file_id) from exc

        await self._discard(tombstone)
        logger.debug(f"Deleted file {file_id}")

        await self._prune(meta_path.parent)

    async def _prune(self, directory: Path) -> None:
        """Remove empty date directories up to the base directory."""
        try:
            while directory != self.base_dir and self.base_dir in directory.parents:
                if await aiofiles.os.listdir(directory):
                    break
                await aiofiles.os.rmdir(directory)
                directory = directory.parent
        except OSError:
            pass  # Ignore errors cleaning up directories

    async def _find_meta(self, file_id: str) -> Path | None:
        """Find the sidecar for ``file_id`` by walking YYYY/MM/DD folders, newest first."""
        if not file_id or "/" in file_id or "\\" in file_id or file_id.startswith("."):
            return None
        for year in await self._ls(self.base_dir):
            for month in await self._ls(year):
                for day in await self._ls(month):
                    candidate = day / f"{file_id}{SIDECAR_SUFFIX}"
                    if await aiofiles.os.path.isfile(candidate):
                        return candidate
        return None

    async def _ls(self, directory: Path) -> list[Path]:
        try:
            names = await aiofiles.os.listdir(directory)
        except (FileNotFoundError, NotADirectoryError):
            return []
        return [directory / n for n in sorted(names, reverse=True) if not n.startswith(".")]

    async def _read_meta(self, meta_path: Path) -> FileRecord:
        try:
            async with aiofiles.open(meta_path, "rb") as f:
                data: dict[str, Any] = orjson.loads(await f.read())
        except (OSError, orjson.JSONDecodeError) as exc:
            raise BackendFailure(f"Unreadable metadata {meta_path}: {exc}") from exc

        return FileRecord(
            id=data["id"],
            filename=data["filename"],
            content_type=data["content_type"],
            metadata=data.get("metadata") or {},
            created_at=datetime.fromisoformat(data["created_at"]),
            size=data["size"],
            content_hash=data["sha256"],
            locator=str(meta_path.with_name(data["id"])),
            storage=self.name,
        )
