"""Command-line interface for the periodic note proxy.

This module provides a CLI for managing vault credentials and the pending
note queue directly against the store, without going through the HTTP API.

Usage:
    note-proxy init-db
    note-proxy vaults add personal --api-key SECRET
    note-proxy vaults list
    note-proxy vaults remove personal
    note-proxy queue list personal
    note-proxy flush personal
    note-proxy serve --port 8000

Example:
    $ note-proxy --db /data/notes.db vaults add work \\
        --api-key 3f9c... --api-url https://obsidian.internal:27124

    $ note-proxy --db postgresql://proxy:secret@db/notes queue list work
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any, Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from note_proxy import __version__
from note_proxy.config_loader import ProxySettings, load_settings
from note_proxy.errors import NoteProxyError
from note_proxy.logger import configure_logging
from note_proxy.models import VaultCreate
from note_proxy.proxy_db import NoteProxyDb

console = Console()
err_console = Console(stderr=True)


def run_async(coro):
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]Error:[/red] {escape(message)}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {escape(message)}")


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    console.print_json(json.dumps(data, indent=2, default=str))


def _settings(ctx: click.Context) -> ProxySettings:
    return ctx.obj["settings"]


async def _with_db(db_path: str, action):
    """Open the store, run ``action(db)`` and always close it."""
    db = NoteProxyDb(db_path)
    try:
        await db.init_db()
        return await action(db)
    finally:
        await db.close()


def _run_db(ctx: click.Context, action):
    try:
        return run_async(_with_db(_settings(ctx).db_path, action))
    except NoteProxyError as exc:
        print_error(str(exc))
        sys.exit(1)


@click.group()
@click.version_option(__version__)
@click.option("--db", "db_path", envvar="NPX_DB_PATH", default=None,
              help="Database connection string (SQLite path or postgresql:// URL).")
@click.option("--config", "config_path", envvar="NPX_CONFIG", default=None,
              help="Path to config.ini.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, db_path: Optional[str], config_path: Optional[str], verbose: bool) -> None:
    """Periodic note proxy administration."""
    settings = load_settings(config_path)
    if db_path:
        settings.db_path = db_path
    if verbose:
        configure_logging("DEBUG")
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@main.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create the vaults and note_queue tables."""

    async def _noop(db: NoteProxyDb) -> None:
        return None

    _run_db(ctx, _noop)
    print_success(f"Database ready at {_settings(ctx).db_path}")


# ============================================================================
# Vaults
# ============================================================================

@main.group("vaults")
def vaults() -> None:
    """Manage vault credentials."""


@vaults.command("add")
@click.argument("name")
@click.option("--api-key", prompt="Vault API key", hide_input=True,
              help="Bearer token of the vault's Local REST API.")
@click.option("--api-url", default=None,
              help="Per-vault API base URL (default: instance setting).")
@click.pass_context
def vaults_add(ctx: click.Context, name: str, api_key: str, api_url: Optional[str]) -> None:
    """Register or update the credential of vault NAME."""
    try:
        vault = VaultCreate(name=name, api_key=api_key, api_url=api_url)
    except ValidationError as exc:
        print_error("Invalid vault definition:")
        for err in exc.errors():
            field = ".".join(str(x) for x in err["loc"])
            err_console.print(f"  {field}: {err['msg']}")
        sys.exit(1)

    async def _add(db: NoteProxyDb) -> None:
        await db.vaults.add(vault.model_dump())

    _run_db(ctx, _add)
    print_success(f"Vault '{name}' saved.")


@vaults.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def vaults_list(ctx: click.Context, as_json: bool) -> None:
    """List configured vaults (API keys are never shown)."""

    async def _list(db: NoteProxyDb) -> list[dict[str, Any]]:
        return await db.vaults.list_all()

    vault_list = _run_db(ctx, _list)

    if as_json:
        print_json(vault_list)
        return

    if not vault_list:
        console.print("[dim]No vaults configured.[/dim]")
        return

    table = Table(title="Vaults")
    table.add_column("Name", style="cyan")
    table.add_column("API URL")
    table.add_column("Updated")
    for v in vault_list:
        table.add_row(
            v["name"],
            v.get("api_url") or f"[dim]{_settings(ctx).obsidian_api_url}[/dim]",
            str(v.get("updated_at") or "-"),
        )
    console.print(table)


@vaults.command("remove")
@click.argument("name")
@click.option("--force", "-f", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def vaults_remove(ctx: click.Context, name: str, force: bool) -> None:
    """Remove the credential of vault NAME. Queued notes are kept."""
    if not force:
        click.confirm(f"Remove vault '{name}'?", abort=True)

    async def _remove(db: NoteProxyDb) -> bool:
        return await db.vaults.remove(name)

    if not _run_db(ctx, _remove):
        print_error(f"Vault '{name}' not found.")
        sys.exit(1)
    print_success(f"Vault '{name}' removed.")


# ============================================================================
# Queue
# ============================================================================

@main.group("queue")
def queue() -> None:
    """Inspect notes waiting for delivery."""


@queue.command("list")
@click.argument("vault")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def queue_list(ctx: click.Context, vault: str, as_json: bool) -> None:
    """List notes queued for VAULT, oldest first."""

    async def _list(db: NoteProxyDb):
        return await db.queue.list_pending(vault)

    notes = _run_db(ctx, _list)

    if as_json:
        print_json([{"id": n.id, "vault": n.vault, "note": n.note, "created_at": n.created_at} for n in notes])
        return

    if not notes:
        console.print(f"[dim]No queued notes for vault '{vault}'.[/dim]")
        return

    table = Table(title=f"Queued notes: {vault}")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Created")
    table.add_column("Note")
    for n in notes:
        preview = n.note.replace("\n", " ")
        if len(preview) > 60:
            preview = preview[:57] + "..."
        table.add_row(str(n.id), n.created_at or "-", escape(preview))
    console.print(table)


@queue.command("count")
@click.argument("vault", required=False)
@click.pass_context
def queue_count(ctx: click.Context, vault: Optional[str]) -> None:
    """Number of queued notes, for VAULT or overall."""

    async def _count(db: NoteProxyDb) -> int:
        return await db.queue.count(vault)

    click.echo(_run_db(ctx, _count))


# ============================================================================
# Flush
# ============================================================================

@main.command("flush")
@click.argument("vault")
@click.pass_context
def flush(ctx: click.Context, vault: str) -> None:
    """Retry every note queued for VAULT (delivered to the daily note)."""
    from note_proxy.server import build_core

    settings = _settings(ctx)

    async def _flush():
        core = build_core(settings)
        try:
            await core.init()
            return await core.flush(vault)
        finally:
            await core.close()

    report = run_async(_flush())

    error = report.to_error()
    if error is not None and report.total_notes == 0:
        print_error(str(error))
        sys.exit(1)

    console.print(
        f"{escape(report.message)}: "
        f"[green]{report.success_count} delivered[/green], "
        f"[red]{report.failure_count} failed[/red]"
    )
    for line in report.errors or []:
        err_console.print(f"  {line}", markup=False)
    if not report.success:
        sys.exit(1)


# ============================================================================
# Server
# ============================================================================

@main.command("serve")
@click.option("--host", "-h", default=None, help="Host to bind to (default: from settings).")
@click.option("--port", "-p", type=int, default=None, help="Port to listen on (default: from settings).")
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int]) -> None:
    """Run the HTTP webhook server."""
    import uvicorn

    from note_proxy.server import build_app

    settings = _settings(ctx)
    configure_logging(settings.log_level)
    try:
        app = build_app(settings)
    except RuntimeError as exc:
        print_error(str(exc))
        sys.exit(1)
    uvicorn.run(app, host=host or settings.host, port=port or settings.port)


if __name__ == "__main__":
    main()
