# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""ASGI application entry point for uvicorn.

This module builds a FastAPI application from :func:`load_settings` and wires
the store, the delivery client and the core together.

Usage:
    uvicorn note_proxy.server:app --host 0.0.0.0 --port 8000

Environment variables:
    NPX_CONFIG: Path to config.ini (default: config.ini)
    NPX_DB_PATH: Database connection string (default: /data/notes.db)
    NPX_API_TOKEN: Bearer token required by every protected route
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api import create_app
from .config_loader import ProxySettings, load_settings
from .core import NoteProxyCore, bounded_flush
from .delivery import NoteDeliveryClient
from .logger import get_logger
from .proxy_db import NoteProxyDb

logger = get_logger("NoteProxyServer")


def build_core(settings: ProxySettings) -> NoteProxyCore:
    """Create the core service described by ``settings``."""
    return NoteProxyCore(
        NoteProxyDb(settings.db_path),
        delivery=NoteDeliveryClient(timeout=settings.delivery_timeout),
        api_url=settings.obsidian_api_url,
        flush_strategy=bounded_flush(settings.flush_concurrency),
    )


def build_app(settings: ProxySettings | None = None) -> FastAPI:
    """Build the production application.

    Raises:
        RuntimeError: If no API token is configured.
    """
    settings = settings or load_settings()
    api_token = settings.require_api_token()
    core = build_core(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler - prepares the store and releases it."""
        await core.init()
        logger.info(
            "Note proxy ready (store=%s, obsidian=%s)",
            type(core.db.adapter).__name__,
            core.api_url,
        )
        yield
        await core.close()

    return create_app(core, api_token=api_token, lifespan=lifespan)


def __getattr__(name: str):
    # ``app`` is built on first access so importing this module reads no settings.
    if name == "app":
        application = build_app()
        globals()["app"] = application
        return application
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
