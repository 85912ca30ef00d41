"""Tests for the files table definition."""

from __future__ import annotations

from sqlalchemy import MetaData
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateIndex, CreateTable

from lodestore.persistence.tables import build_files_table


class TestFilesTable:
    """Test build_files_table."""

    def test_columns(self) -> None:
        table = build_files_table(MetaData())

        assert [c.name for c in table.columns] == [
            "id",
            "loid",
            "filename",
            "content_type",
            "size",
            "sha256",
            "metadata",
            "created_at",
        ]
        assert [c.name for c in table.primary_key] == ["id"]
        assert not table.c.loid.nullable
        assert not table.c.created_at.nullable

    def test_default_location(self) -> None:
        table = build_files_table(MetaData())
        assert table.fullname == "public.files"

    def test_custom_name_and_schema(self) -> None:
        """Index names follow the table name so several tables can share a schema."""
        table = build_files_table(MetaData(), name="blobs", schema="content")

        assert table.fullname == "content.blobs"
        assert {index.name for index in table.indexes} == {"idx_blobs_created_at"}

    def test_postgres_ddl(self) -> None:
        table = build_files_table(MetaData())
        dialect = postgresql.dialect()

        ddl = str(CreateTable(table).compile(dialect=dialect))
        assert "loid OID NOT NULL" in ddl
        assert "metadata JSONB" in ddl
        assert "created_at TIMESTAMP WITH TIME ZONE DEFAULT now() NOT NULL" in ddl

        (index,) = table.indexes
        index_ddl = str(CreateIndex(index).compile(dialect=dialect))
        assert "idx_files_created_at" in index_ddl
