"""Persistence layer for lodestore.

This module provides:
- Async PostgreSQL engine construction (SQLAlchemy asyncio + asyncpg)
- The files table definition used by the large-object provider
"""

from lodestore.persistence.db import create_engine
from lodestore.persistence.tables import build_files_table

__all__ = [
    "create_engine",
    "build_files_table",
]
