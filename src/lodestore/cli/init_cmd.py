"""CLI command for preparing the storage backend.

Usage:
    lodestore init
    lodestore --provider pg --database-url postgresql+asyncpg://... init
"""

from __future__ import annotations

import typer

from lodestore.cli._common import err_console, run_with_storage
from lodestore.storage.core import FileStorage

app = typer.Typer(help="Create the storage directory or table")


@app.callback(invoke_without_command=True)
def init(ctx: typer.Context) -> None:
    """Create the base directory (filesystem) or schema, table and index (relational).

    Safe to run repeatedly.
    """

    async def _init(storage: FileStorage) -> str:
        await storage.init()
        return storage.storage_name

    name = run_with_storage(ctx, _init)
    err_console.print(f"[green]Storage ready[/green] ({name})")
