# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Table base class with Columns-based schema (async version)."""

from __future__ import annotations

from typing import Any

from .base import DbAdapter
from .column import Columns


class Table:
    """Base class for async table managers.

    Subclasses define columns via configure() hook and implement
    domain-specific operations.

    Attributes:
        name: Table name in database.
        adapter: DbAdapter used for every query.
        columns: Column definitions.
        indexes: Index name -> column list, created with the table.
    """

    name: str
    indexes: dict[str, list[str]] = {}

    def __init__(self, adapter: DbAdapter) -> None:
        self.adapter = adapter
        if not hasattr(self, "name") or not self.name:
            raise ValueError(f"{type(self).__name__} must define 'name'")

        self.columns = Columns()
        self.configure()

    def configure(self) -> None:
        """Override to define columns. Called during __init__."""
        pass

    # -------------------------------------------------------------------------
    # Schema
    # -------------------------------------------------------------------------

    def create_table_sql(self) -> str:
        """Generate CREATE TABLE IF NOT EXISTS statement."""
        col_defs = []
        for col in self.columns.values():
            if col.primary_key and col.type_ == "INTEGER":
                col_defs.append(self.adapter.pk_column(col.name))
            else:
                col_defs.append(col.to_sql())
        return f"CREATE TABLE IF NOT EXISTS {self.name} (\n    " + ",\n    ".join(col_defs) + "\n)"

    def create_indexes_sql(self) -> list[str]:
        return [
            f"CREATE INDEX IF NOT EXISTS {index} ON {self.name} ({', '.join(cols)})"
            for index, cols in self.indexes.items()
        ]

    async def create_schema(self) -> None:
        """Create table and indexes if not exists."""
        await self.adapter.execute(self.create_table_sql())
        for statement in self.create_indexes_sql():
            await self.adapter.execute(statement)

    # -------------------------------------------------------------------------
    # Raw Query
    # -------------------------------------------------------------------------

    async def fetch_one(
        self, query: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        """Execute raw query, return single row."""
        return await self.adapter.fetch_one(query, params)

    async def fetch_all(
        self, query: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Execute raw query, return all rows."""
        return await self.adapter.fetch_all(query, params)

    async def execute(
        self, query: str, params: dict[str, Any] | None = None
    ) -> int:
        """Execute raw query, return affected row count."""
        return await self.adapter.execute(query, params)


__all__ = ["Table"]
