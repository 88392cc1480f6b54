# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SQLite async adapter using aiosqlite."""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import aiosqlite

from ..errors import StorageError
from .base import DbAdapter

if TYPE_CHECKING:
    from collections.abc import Sequence


@contextmanager
def _storage_errors() -> Iterator[None]:
    try:
        yield
    except (aiosqlite.Error, OSError) as exc:
        raise StorageError(f"SQLite error: {exc}") from exc


class SqliteAdapter(DbAdapter):
    """SQLite async adapter. Opens connection per-operation for thread safety."""

    def __init__(self, db_path: str, timeout: float = 5.0):
        """Initialize SQLite adapter.

        Args:
            db_path: Path to SQLite file, or ":memory:" for in-memory DB.
            timeout: Seconds to wait on a locked database before failing.
        """
        self.db_path = db_path or ":memory:"
        self.timeout = timeout

    def _connect(self) -> aiosqlite.Connection:
        return aiosqlite.connect(self.db_path, timeout=self.timeout)

    async def connect(self) -> None:
        """SQLite connections are opened per-operation, this is a no-op."""
        pass

    async def close(self) -> None:
        """SQLite connections are closed per-operation, this is a no-op."""
        pass

    async def execute(self, query: str, params: dict[str, Any] | None = None) -> int:
        """Execute query, return affected row count."""
        with _storage_errors():
            async with self._connect() as db:
                cursor = await db.execute(query, params or {})
                await db.commit()
                return cursor.rowcount

    async def fetch_one(
        self, query: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        """Execute query, return single row as dict or None."""
        with _storage_errors():
            async with self._connect() as db:
                async with db.execute(query, params or {}) as cursor:
                    row = await cursor.fetchone()
                    if row is None:
                        return None
                    cols = [c[0] for c in cursor.description]
                    return dict(zip(cols, row, strict=True))

    async def fetch_all(
        self, query: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Execute query, return all rows as list of dicts."""
        with _storage_errors():
            async with self._connect() as db:
                async with db.execute(query, params or {}) as cursor:
                    rows = await cursor.fetchall()
                    cols = [c[0] for c in cursor.description]
                    return [dict(zip(cols, row, strict=True)) for row in rows]

    async def execute_script(self, script: str) -> None:
        """Execute multiple statements (for schema creation)."""
        with _storage_errors():
            async with self._connect() as db:
                await db.executescript(script)
                await db.commit()

    async def insert_returning_id(self, table: str, data: dict[str, Any], pk: str = "id") -> int:
        """Insert one row and return ``cursor.lastrowid``."""
        columns = list(data.keys())
        query = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join(f':{c}' for c in columns)})"
        )
        with _storage_errors():
            async with self._connect() as db:
                cursor = await db.execute(query, data)
                await db.commit()
                return int(cursor.lastrowid)

    async def upsert(
        self,
        table: str,
        data: dict[str, Any],
        conflict_columns: Sequence[str],
        update_extras: Sequence[str] | None = None,
    ) -> int:
        """Insert or update using SQLite ON CONFLICT DO UPDATE."""
        columns = list(data.keys())
        placeholders = ", ".join(f":{c}" for c in columns)
        col_list = ", ".join(columns)
        conflict_cols = ", ".join(conflict_columns)
        update_parts = [f"{c} = excluded.{c}" for c in columns if c not in conflict_columns]
        if update_extras:
            update_parts.extend(update_extras)
        update_cols = ", ".join(update_parts)

        query = f"""
            INSERT INTO {table} ({col_list}) VALUES ({placeholders})
            ON CONFLICT ({conflict_cols}) DO UPDATE SET {update_cols}
        """
        return await self.execute(query, data)

    def in_list(self, column: str, name: str, values: Sequence[Any]) -> tuple[str, dict[str, Any]]:
        return (
            f"{column} IN (SELECT value FROM json_each(:{name}))",
            {name: json.dumps(list(values))},
        )

    def pk_column(self, name: str) -> str:
        # AUTOINCREMENT guarantees ids are never reused after deletion.
        return f"{name} INTEGER PRIMARY KEY AUTOINCREMENT"

    async def server_version(self) -> dict[str, Any]:
        row = await self.fetch_one("SELECT sqlite_version() AS version")
        return {
            "backend": "sqlite",
            "version": row["version"] if row else None,
            "database": self.db_path,
        }
