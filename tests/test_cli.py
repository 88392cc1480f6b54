"""Tests for CLI commands and helper functions."""

import asyncio
import json

import pytest
from click.testing import CliRunner

from note_proxy.cli import main, print_error, print_success, run_async
from note_proxy.models import Delivered, Rejected
from note_proxy.proxy_db import NoteProxyDb


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("NPX_DB_PATH", raising=False)
    monkeypatch.delenv("NPX_CONFIG", raising=False)
    return str(tmp_path / "cli.db")


@pytest.fixture
def runner():
    return CliRunner()


def invoke(runner, db_path, *args, **kwargs):
    return runner.invoke(main, ["--db", db_path, *args], **kwargs)


def seed(db_path, vault="personal", notes=()):
    async def _seed():
        db = NoteProxyDb(db_path)
        await db.init_db()
        await db.vaults.add({"name": vault, "api_key": "vault-secret"})
        return [await db.queue.enqueue(vault, n) for n in notes]

    return asyncio.run(_seed())


class TestHelperFunctions:
    def test_run_async(self):
        async def async_func():
            return 42

        assert run_async(async_func()) == 42

    def test_print_helpers(self, capsys):
        print_success("done")
        print_error("broken")
        captured = capsys.readouterr()
        assert "done" in captured.out
        assert "broken" in captured.err


class TestVaultCommands:
    def test_init_db(self, runner, db_path):
        result = invoke(runner, db_path, "init-db")
        assert result.exit_code == 0, result.output
        assert "Database ready" in result.output

    def test_add_list_remove(self, runner, db_path):
        result = invoke(runner, db_path, "vaults", "add", "personal", "--api-key", "k1")
        assert result.exit_code == 0, result.output

        result = invoke(runner, db_path, "vaults", "add", "work",
                        "--api-key", "k2", "--api-url", "https://obsidian.work:27124/")
        assert result.exit_code == 0, result.output

        result = invoke(runner, db_path, "vaults", "list", "--json")
        assert result.exit_code == 0, result.output
        vaults = json.loads(result.output)
        assert [v["name"] for v in vaults] == ["personal", "work"]
        assert vaults[1]["api_url"] == "https://obsidian.work:27124"
        assert "k1" not in result.output

        result = invoke(runner, db_path, "vaults", "remove", "work", "--force")
        assert result.exit_code == 0, result.output

        result = invoke(runner, db_path, "vaults", "remove", "work", "--force")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_add_prompts_for_key(self, runner, db_path):
        result = invoke(runner, db_path, "vaults", "add", "personal", input="prompted-key\n")
        assert result.exit_code == 0, result.output
        cred = asyncio.run(NoteProxyDb(db_path).vaults.get_credential("personal"))
        assert cred.api_key == "prompted-key"

    def test_add_rejects_bad_url(self, runner, db_path):
        result = invoke(runner, db_path, "vaults", "add", "w", "--api-key", "k", "--api-url", "ftp://x")
        assert result.exit_code == 1
        assert "api_url" in result.output

    def test_remove_asks_confirmation(self, runner, db_path):
        seed(db_path)
        result = invoke(runner, db_path, "vaults", "remove", "personal", input="n\n")
        assert result.exit_code == 1
        cred = asyncio.run(NoteProxyDb(db_path).vaults.get_credential("personal"))
        assert cred is not None

    def test_list_empty(self, runner, db_path):
        result = invoke(runner, db_path, "vaults", "list")
        assert result.exit_code == 0
        assert "No vaults configured" in result.output


class TestQueueCommands:
    def test_list_and_count(self, runner, db_path):
        ids = seed(db_path, notes=["first", "second"])

        result = invoke(runner, db_path, "queue", "list", "personal", "--json")
        assert result.exit_code == 0, result.output
        notes = json.loads(result.output)
        assert [n["id"] for n in notes] == ids
        assert [n["note"] for n in notes] == ["first", "second"]

        result = invoke(runner, db_path, "queue", "count", "personal")
        assert result.output.strip() == "2"

        result = invoke(runner, db_path, "queue", "list", "personal")
        assert result.exit_code == 0
        assert "first" in result.output

    def test_list_empty(self, runner, db_path):
        result = invoke(runner, db_path, "queue", "list", "personal")
        assert "No queued notes" in result.output


class StubDelivery:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.endpoints = []

    async def deliver(self, endpoint, credential, payload):
        self.endpoints.append(endpoint)
        return self.outcomes.pop(0)


class TestFlushCommand:
    def test_flush_success(self, runner, db_path, monkeypatch):
        seed(db_path, notes=["A", "B"])
        stub = StubDelivery([Delivered(200), Delivered(200)])
        monkeypatch.setattr("note_proxy.server.NoteDeliveryClient", lambda timeout: stub)

        result = invoke(runner, db_path, "flush", "personal")

        assert result.exit_code == 0, result.output
        assert "Processed 2 queued notes" in result.output
        assert all(e.endswith("/periodic/daily/") for e in stub.endpoints)

    def test_flush_partial_failure_exit_code(self, runner, db_path, monkeypatch):
        ids = seed(db_path, notes=["A", "B"])
        stub = StubDelivery([Delivered(200), Rejected(500)])
        monkeypatch.setattr("note_proxy.server.NoteDeliveryClient", lambda timeout: stub)

        result = invoke(runner, db_path, "flush", "personal")

        assert result.exit_code == 1
        assert f"Note ID {ids[1]}: 500" in result.output

    def test_flush_unknown_vault(self, runner, db_path):
        result = invoke(runner, db_path, "flush", "ghost")
        assert result.exit_code == 1
        assert "Vault configuration 'ghost' not found" in result.output


class TestServeCommand:
    def test_serve_refuses_without_token(self, runner, db_path, monkeypatch):
        monkeypatch.delenv("NPX_API_TOKEN", raising=False)
        result = invoke(runner, db_path, "serve")
        assert result.exit_code == 1
        assert "API bearer token" in result.output
