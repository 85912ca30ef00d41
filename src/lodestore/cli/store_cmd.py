"""CLI command for storing a file.

Usage:
    lodestore store report.pdf
    lodestore store --content-type application/pdf --meta author=Alice report.pdf
    cat data.bin | lodestore store --filename data.bin -
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Optional

import typer

from lodestore.cli._common import echo_json, err_console, run_with_storage
from lodestore.storage.base import FileInfo
from lodestore.storage.core import FileStorage

app = typer.Typer(help="Store a file and print its record")


def _parse_meta(pairs: list[str]) -> dict[str, str]:
    metadata: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            err_console.print(f"[red]Invalid --meta value:[/red] {pair!r} (expected key=value)")
            raise typer.Exit(code=2)
        metadata[key] = value
    return metadata


@app.callback(invoke_without_command=True)
def store(
    ctx: typer.Context,
    source: str = typer.Argument(
        ...,
        help="File to store, or - to read from stdin",
    ),
    filename: Optional[str] = typer.Option(
        None,
        "--filename",
        "-n",
        help="Stored filename (default: the source file name)",
    ),
    content_type: Optional[str] = typer.Option(
        None,
        "--content-type",
        "-t",
        help="MIME type (default: application/octet-stream)",
    ),
    meta: list[str] = typer.Option(
        [],
        "--meta",
        "-m",
        help="Metadata entry as key=value; repeatable",
    ),
) -> None:
    """Store a file and print the resulting record as JSON."""
    metadata = _parse_meta(meta)

    if source != "-":
        path = Path(source)
        if not path.is_file():
            err_console.print(f"[red]Not a file:[/red] {source}")
            raise typer.Exit(code=2)
        filename = filename or path.name

    info = FileInfo(filename=filename, content_type=content_type, metadata=metadata)

    async def _store(storage: FileStorage) -> dict[str, Any]:
        if source == "-":
            record = await storage.store(sys.stdin.buffer, info)
        else:
            with open(source, "rb") as f:
                record = await storage.store(f, info)
        return record.to_dict()

    echo_json(run_with_storage(ctx, _store))
