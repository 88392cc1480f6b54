"""Webhook proxy appending markdown to Obsidian periodic notes.

This package provides a small at-least-once delivery service with features including:

- Per-vault API credentials stored in SQLite or PostgreSQL
- Durable queue written before every downstream call
- Explicit flush to retry queued notes
- Prometheus metrics for monitoring
- FastAPI webhook surface with bearer authentication

Example:
    Basic usage with the FastAPI application::

        from note_proxy.core import NoteProxyCore
        from note_proxy.proxy_db import NoteProxyDb
        from note_proxy.api import create_app

        core = NoteProxyCore(NoteProxyDb("/data/notes.db"))
        app = create_app(core, api_token="secret")

Authors:
    Softwell S.r.l.
"""

__version__ = "0.1.0"
