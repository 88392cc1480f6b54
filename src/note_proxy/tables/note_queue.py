# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Durable note queue: pending notes per vault.

A note enters the queue before any delivery attempt and leaves it only
through :meth:`NoteQueueTable.dequeue` or :meth:`NoteQueueTable.dequeue_many`
once the downstream API has confirmed it. There is no expiry.
"""

from __future__ import annotations

from collections.abc import Iterable

from ..models import QueuedNote
from ..sql import Table
from ..sql.column import Integer, String, Timestamp


class NoteQueueTable(Table):
    """Append/remove log of notes awaiting delivery.

    Ids are assigned by the store, increase monotonically and are never
    reused, so they double as the insertion-order tiebreaker.
    """

    name = "note_queue"
    indexes = {"idx_note_queue_vault_created": ["vault", "created_at", "id"]}

    def configure(self) -> None:
        c = self.columns
        c.column("id", Integer, primary_key=True)
        c.column("vault", String, nullable=False)
        c.column("note", String, nullable=False)
        c.column("created_at", Timestamp, default="CURRENT_TIMESTAMP")

    async def enqueue(self, vault: str, note: str) -> int:
        """Append one note and return its id. Committed before returning."""
        return await self.adapter.insert_returning_id(
            self.name, {"vault": vault, "note": note}, pk="id"
        )

    async def dequeue(self, note_id: int) -> bool:
        """Remove one note. A missing id is a no-op and returns False."""
        rowcount = await self.execute(
            "DELETE FROM note_queue WHERE id = :id", {"id": note_id}
        )
        return rowcount > 0

    async def list_pending(self, vault: str) -> list[QueuedNote]:
        """Snapshot of the vault's queued notes, oldest first."""
        rows = await self.fetch_all(
            """
            SELECT id, vault, note, created_at
            FROM note_queue
            WHERE vault = :vault
            ORDER BY created_at ASC, id ASC
            """,
            {"vault": vault},
        )
        return [
            QueuedNote(
                id=int(row["id"]),
                vault=row["vault"],
                note=row["note"],
                created_at=str(row["created_at"]) if row["created_at"] is not None else None,
            )
            for row in rows
        ]

    async def dequeue_many(self, note_ids: Iterable[int]) -> int:
        """Remove every listed note in a single DELETE statement.

        The ids travel as one bound parameter, so a large flush stays under
        the driver's variable limit.
        """
        ids = sorted({int(i) for i in note_ids})
        if not ids:
            return 0
        condition, params = self.adapter.in_list("id", "ids", ids)
        return await self.execute(f"DELETE FROM note_queue WHERE {condition}", params)

    async def count(self, vault: str | None = None) -> int:
        """Number of queued notes, for one vault or overall."""
        if vault is None:
            row = await self.fetch_one("SELECT COUNT(*) AS total FROM note_queue")
        else:
            row = await self.fetch_one(
                "SELECT COUNT(*) AS total FROM note_queue WHERE vault = :vault",
                {"vault": vault},
            )
        return int(row["total"]) if row else 0


__all__ = ["NoteQueueTable"]
