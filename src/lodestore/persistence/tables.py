"""SQLAlchemy table definitions for the relational provider.

The payload itself lives in ``pg_largeobject``; the files table holds one
row per stored object pointing at its large object through ``loid``.
Schema and table name are configurable, so the table is built with
SQLAlchemy Core per provider instead of a declarative class.
"""

from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Index,
    MetaData,
    Table,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, OID, UUID


def build_files_table(
    metadata: MetaData,
    name: str = "files",
    schema: str | None = "public",
) -> Table:
    """Build the files table bound to ``metadata``.

    Columns:
        id: primary key, generated by the storage facade
        loid: large object holding the payload
        filename, content_type: caller supplied descriptors
        size, sha256: computed while the payload is written
        metadata: caller supplied JSON mapping
        created_at: assigned once at store time
    """
    return Table(
        name,
        metadata,
        Column("id", UUID(as_uuid=False), primary_key=True),
        Column("loid", OID, nullable=False),
        Column("filename", Text),
        Column("content_type", Text),
        Column("size", BigInteger),
        Column("sha256", Text),
        Column("metadata", JSONB),
        Column(
            "created_at",
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
        ),
        Index(f"idx_{name}_created_at", "created_at"),
        schema=schema,
    )
