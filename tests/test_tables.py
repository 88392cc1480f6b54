import asyncio
from unittest.mock import AsyncMock

import pytest

from note_proxy.models import QueuedNote, VaultCredential
from note_proxy.proxy_db import NoteProxyDb
from note_proxy.tables import NoteQueueTable


@pytest.mark.asyncio
async def test_vault_credential_lookup(db):
    cred = await db.vaults.get_credential("personal")
    assert cred == VaultCredential(name="personal", api_key="vault-secret", api_url=None)
    assert await db.vaults.get_credential("missing") is None
    # Exact name match only
    assert await db.vaults.get_credential("Personal") is None


@pytest.mark.asyncio
async def test_vault_upsert_list_remove(db):
    await db.vaults.add({"name": "work", "api_key": "k1", "api_url": "https://obsidian.local:27124"})
    await db.vaults.add({"name": "work", "api_key": "k2", "api_url": None})

    cred = await db.vaults.get_credential("work")
    assert cred.api_key == "k2"
    assert cred.api_url is None

    listed = await db.vaults.list_all()
    assert [v["name"] for v in listed] == ["personal", "work"]
    assert all("api_key" not in v for v in listed)

    assert await db.vaults.remove("work") is True
    assert await db.vaults.remove("work") is False
    assert await db.vaults.get_credential("work") is None


@pytest.mark.asyncio
async def test_enqueue_assigns_increasing_ids(db):
    first = await db.queue.enqueue("personal", "A")
    second = await db.queue.enqueue("personal", "B")
    assert second > first


@pytest.mark.asyncio
async def test_ids_are_never_reused(db):
    first = await db.queue.enqueue("personal", "A")
    second = await db.queue.enqueue("personal", "B")
    await db.queue.dequeue(second)
    third = await db.queue.enqueue("personal", "C")
    assert third > second > first


@pytest.mark.asyncio
async def test_list_pending_oldest_first_per_vault(db):
    a = await db.queue.enqueue("personal", "A")
    other = await db.queue.enqueue("work", "X")
    b = await db.queue.enqueue("personal", "B")
    c = await db.queue.enqueue("personal", "C")

    pending = await db.queue.list_pending("personal")
    assert [n.id for n in pending] == [a, b, c]
    assert [n.note for n in pending] == ["A", "B", "C"]
    assert all(isinstance(n, QueuedNote) and n.vault == "personal" for n in pending)
    assert all(n.created_at for n in pending)

    work = await db.queue.list_pending("work")
    assert [n.id for n in work] == [other]
    assert await db.queue.list_pending("nobody") == []


@pytest.mark.asyncio
async def test_dequeue_is_idempotent(db):
    note_id = await db.queue.enqueue("personal", "A")
    assert await db.queue.dequeue(note_id) is True
    assert await db.queue.dequeue(note_id) is False
    assert await db.queue.dequeue(999_999) is False
    assert await db.queue.list_pending("personal") == []


@pytest.mark.asyncio
async def test_dequeue_many_removes_only_listed_ids(db):
    ids = [await db.queue.enqueue("personal", n) for n in ("A", "B", "C", "D")]
    removed = await db.queue.dequeue_many([ids[0], ids[2], 123_456])
    assert removed == 2
    remaining = await db.queue.list_pending("personal")
    assert [n.id for n in remaining] == [ids[1], ids[3]]


@pytest.mark.asyncio
async def test_dequeue_many_uses_single_statement(db):
    ids = [await db.queue.enqueue("personal", n) for n in ("A", "B", "C")]
    spy = AsyncMock(wraps=db.queue.adapter.execute)
    db.queue.adapter.execute = spy
    await db.queue.dequeue_many(ids)
    assert spy.await_count == 1
    query, params = spy.await_args.args
    assert query.startswith("DELETE FROM note_queue WHERE id IN (")
    assert list(params) == ["ids"]


@pytest.mark.asyncio
async def test_dequeue_many_beyond_sqlite_variable_limit(db):
    ids = [await db.queue.enqueue("personal", n) for n in ("A", "B", "C")]
    unknown = range(1_000_000, 1_040_000)
    removed = await db.queue.dequeue_many([*ids[:2], *unknown])
    assert removed == 2
    assert [n.note for n in await db.queue.list_pending("personal")] == ["C"]


@pytest.mark.asyncio
async def test_dequeue_many_empty_issues_no_statement():
    adapter = AsyncMock()
    queue = NoteQueueTable(adapter)
    assert await queue.dequeue_many([]) == 0
    adapter.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_count(db):
    await db.queue.enqueue("personal", "A")
    await db.queue.enqueue("personal", "B")
    await db.queue.enqueue("work", "C")
    assert await db.queue.count() == 3
    assert await db.queue.count("personal") == 2
    assert await db.queue.count("nobody") == 0


@pytest.mark.asyncio
async def test_concurrent_enqueue_gets_distinct_ids(db):
    ids = await asyncio.gather(*(db.queue.enqueue("personal", f"note {i}") for i in range(10)))
    assert len(set(ids)) == 10
    assert await db.queue.count("personal") == 10


def test_queue_schema_sql(tmp_path):
    db = NoteProxyDb(str(tmp_path / "schema.db"))
    sql = db.queue.create_table_sql()
    assert "id INTEGER PRIMARY KEY AUTOINCREMENT" in sql
    assert "vault TEXT NOT NULL" in sql
    assert "created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP" in sql
    assert db.queue.create_indexes_sql() == [
        "CREATE INDEX IF NOT EXISTS idx_note_queue_vault_created ON note_queue (vault, created_at, id)"
    ]


def test_vaults_schema_sql(tmp_path):
    db = NoteProxyDb(str(tmp_path / "schema.db"))
    sql = db.vaults.create_table_sql()
    assert "name TEXT PRIMARY KEY" in sql
    assert "api_key TEXT NOT NULL" in sql
    assert db.vaults.columns.primary_key.name == "name"
