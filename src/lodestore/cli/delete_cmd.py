"""CLI command for deleting a stored file.

Usage:
    lodestore delete 0b6f...
"""

from __future__ import annotations

from typing import Any

import typer

from lodestore.cli._common import echo_json, run_with_storage
from lodestore.storage.core import FileStorage

app = typer.Typer(help="Delete a stored file")


@app.callback(invoke_without_command=True)
def delete(
    ctx: typer.Context,
    file_id: str = typer.Argument(..., help="Id printed by `lodestore store`"),
) -> None:
    """Delete a stored file and its metadata."""

    async def _delete(storage: FileStorage) -> dict[str, Any]:
        return await storage.delete(file_id)

    echo_json(run_with_storage(ctx, _delete))
