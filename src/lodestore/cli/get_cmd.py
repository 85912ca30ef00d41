"""CLI command for retrieving a stored file.

Usage:
    lodestore get 0b6f... > out.bin
    lodestore get --output out.bin 0b6f...
    lodestore get --as path 0b6f...
    lodestore get --meta-only 0b6f...
"""

from __future__ import annotations

import sys
from contextlib import nullcontext
from pathlib import Path
from typing import IO, Any, Optional

import typer

from lodestore.cli._common import echo_json, run_with_storage
from lodestore.storage.base import OutputMode
from lodestore.storage.core import FileStorage

app = typer.Typer(help="Write a stored file to a path or stdout")


@app.callback(invoke_without_command=True)
def get(
    ctx: typer.Context,
    file_id: str = typer.Argument(..., help="Id printed by `lodestore store`"),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the payload to this file instead of stdout (- for stdout)",
    ),
    mode: OutputMode = typer.Option(
        OutputMode.STREAM,
        "--as",
        help="stream (chunked), buffer (in memory) or path (filesystem provider only)",
    ),
    meta_only: bool = typer.Option(
        False,
        "--meta-only",
        help="Print the record as JSON instead of the payload",
    ),
) -> None:
    """Retrieve a stored file."""

    async def _get(storage: FileStorage) -> dict[str, Any] | None:
        content = await storage.get(file_id, mode)

        if meta_only or mode is OutputMode.PATH:
            if mode is OutputMode.STREAM:
                await content.payload.aclose()  # type: ignore[union-attr]
            data = content.meta.to_dict()
            if mode is OutputMode.PATH:
                data["path"] = str(content.payload)
            return data

        to_file = output is not None and str(output) != "-"
        target: Any = open(output, "wb") if to_file else nullcontext(sys.stdout.buffer)
        with target as out:
            sink: IO[bytes] = out
            if mode is OutputMode.BUFFER:
                sink.write(content.payload)  # type: ignore[arg-type]
            else:
                stream = content.payload
                try:
                    async for chunk in stream:  # type: ignore[union-attr]
                        sink.write(chunk)
                finally:
                    await stream.aclose()  # type: ignore[union-attr]
            sink.flush()
        return None

    data = run_with_storage(ctx, _get)
    if data is not None:
        echo_json(data)
