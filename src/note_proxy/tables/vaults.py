# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Vaults table manager: per-vault delivery credentials."""

from __future__ import annotations

from typing import Any

from ..models import VaultCredential
from ..sql import Table
from ..sql.column import String, Timestamp


class VaultsTable(Table):
    """Vaults table: one API credential per vault name.

    Rows are written by the admin CLI only; the delivery pipelines
    read them through :meth:`get_credential` on every request.
    """

    name = "vaults"

    def configure(self) -> None:
        c = self.columns
        c.column("name", String, primary_key=True)
        c.column("api_key", String, nullable=False)
        c.column("api_url", String)
        c.column("created_at", Timestamp, default="CURRENT_TIMESTAMP")
        c.column("updated_at", Timestamp, default="CURRENT_TIMESTAMP")

    async def get_credential(self, vault: str) -> VaultCredential | None:
        """Resolve the credential for ``vault`` by exact name match."""
        row = await self.fetch_one(
            "SELECT name, api_key, api_url FROM vaults WHERE name = :name",
            {"name": vault},
        )
        if not row:
            return None
        return VaultCredential(name=row["name"], api_key=row["api_key"], api_url=row["api_url"])

    async def add(self, vault: dict[str, Any]) -> None:
        """Insert or update a vault credential."""
        await self.adapter.upsert(
            self.name,
            {
                "name": vault["name"],
                "api_key": vault["api_key"],
                "api_url": vault.get("api_url"),
            },
            conflict_columns=["name"],
            update_extras=["updated_at = CURRENT_TIMESTAMP"],
        )

    async def list_all(self) -> list[dict[str, Any]]:
        """Return all vaults without their API keys."""
        return await self.fetch_all(
            "SELECT name, api_url, created_at, updated_at FROM vaults ORDER BY name"
        )

    async def remove(self, vault: str) -> bool:
        """Delete a vault credential. Queued notes for it are left untouched."""
        rowcount = await self.execute("DELETE FROM vaults WHERE name = :name", {"name": vault})
        return rowcount > 0


__all__ = ["VaultsTable"]
