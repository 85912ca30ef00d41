"""Async database engine construction.

Provides PostgreSQL async connectivity using SQLAlchemy 2.0 asyncio
extension with asyncpg driver. Engines are owned by the provider that
creates them; there is no module-level engine.
"""

from __future__ import annotations

from typing import Any

import orjson
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from lodestore.config import Settings


def _json_serializer(obj: Any) -> str:
    return orjson.dumps(obj).decode()


def create_engine(settings: Settings) -> AsyncEngine:
    """Create an async engine with pool settings from ``settings``.

    JSONB values are encoded and decoded with orjson.
    """
    return create_async_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=True,  # Verify connection health
        echo=settings.env == "debug",
        json_serializer=_json_serializer,
        json_deserializer=orjson.loads,
    )
