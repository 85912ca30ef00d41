"""Helpers shared by the CLI commands."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import orjson
import typer
from rich.console import Console

from lodestore.config import Settings
from lodestore.errors import StorageError
from lodestore.storage.core import FileStorage

T = TypeVar("T")

err_console = Console(stderr=True)


def run_with_storage(ctx: typer.Context, action: Callable[[FileStorage], Awaitable[T]]) -> T:
    """Open storage from the CLI settings, run ``action``, and close it.

    Storage errors are reported in red and exit with code 1.
    """
    settings: Settings = ctx.obj or Settings()

    async def _run() -> T:
        storage = FileStorage.from_settings(settings)
        try:
            return await action(storage)
        finally:
            await storage.close()

    try:
        return asyncio.run(_run())
    except StorageError as e:
        err_console.print(f"[red]{type(e).__name__}:[/red] {e}")
        raise typer.Exit(code=1) from e


def echo_json(data: dict[str, Any]) -> None:
    typer.echo(orjson.dumps(data, option=orjson.OPT_INDENT_2).decode())
