"""CLI commands for lodestore.

Provides command-line interface using Typer:
- lodestore init: Create the storage directory or table
- lodestore store: Store a file (or stdin) and print its record
- lodestore get: Write a stored file to a path or stdout
- lodestore delete: Delete a stored file

Usage:
    lodestore --help
    lodestore --provider fs --base-dir ./data store --content-type application/pdf report.pdf
    lodestore --provider pg get --output report.pdf 0b6f...
    lodestore delete 0b6f...
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from lodestore.cli.delete_cmd import app as delete_app
from lodestore.cli.get_cmd import app as get_app
from lodestore.cli.init_cmd import app as init_app
from lodestore.cli.store_cmd import app as store_app
from lodestore.config import Settings
from lodestore.observability.logging import configure_logging

# Main CLI application
app = typer.Typer(
    name="lodestore",
    help="lodestore: content storage over the filesystem or PostgreSQL large objects",
    no_args_is_help=True,
)

# Add subcommands
app.add_typer(init_app, name="init")
app.add_typer(store_app, name="store")
app.add_typer(get_app, name="get")
app.add_typer(delete_app, name="delete")


@app.callback()
def callback(
    ctx: typer.Context,
    provider: Optional[str] = typer.Option(
        None,
        "--provider",
        "-p",
        help="Storage provider: filesystem (fs) or relational (pg)",
    ),
    base_dir: Optional[Path] = typer.Option(
        None,
        "--base-dir",
        help="Base directory for the filesystem provider",
    ),
    database_url: Optional[str] = typer.Option(
        None,
        "--database-url",
        help="SQLAlchemy URL for the relational provider (postgresql+asyncpg://...)",
    ),
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        "-l",
        help="Log level: debug, info, warning, error",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs/--console-logs",
        help="Emit JSON formatted logs",
    ),
) -> None:
    """lodestore: content storage over the filesystem or PostgreSQL large objects."""
    configure_logging(json_format=json_logs, level=log_level)

    overrides: dict[str, object] = {}
    if provider:
        overrides["provider"] = provider
    if base_dir:
        overrides["base_dir"] = str(base_dir)
    if database_url:
        overrides["database_url"] = database_url
    ctx.obj = Settings(**overrides)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
