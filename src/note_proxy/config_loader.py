# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Settings loader for the note proxy.

Configuration is read from an INI file (default: ``config.ini``) with
environment variables as fallbacks. Values found in the file win.

Example:
    Configuration file format (config.ini)::

        [storage]
        db_path = /data/notes.db

        [server]
        host = 0.0.0.0
        port = 8000
        api_token = change-me

        [obsidian]
        api_url = http://localhost:27123
        timeout_seconds = 30

        [flush]
        concurrency = 1

        [logging]
        level = INFO

    Loading settings::

        settings = load_settings()
        settings.require_api_token()
"""

from __future__ import annotations

import configparser
import os
from dataclasses import dataclass
from pathlib import Path

from .core import DEFAULT_API_URL
from .delivery import DEFAULT_TIMEOUT
from .logger import get_logger

logger = get_logger("ConfigLoader")

DEFAULT_CONFIG_PATH = "config.ini"
DEFAULT_DB_PATH = "/data/notes.db"


@dataclass
class ProxySettings:
    """Runtime settings for the proxy process.

    Attributes:
        db_path: Database connection string (SQLite path or PostgreSQL URL).
        host: HTTP bind address.
        port: HTTP port.
        api_token: Bearer token clients must present. Required to serve.
        obsidian_api_url: Default downstream base URL.
        delivery_timeout: Total per-request downstream timeout in seconds.
        flush_concurrency: Max in-flight deliveries during a flush.
        log_level: Logging level name.
    """

    db_path: str = DEFAULT_DB_PATH
    host: str = "0.0.0.0"
    port: int = 8000
    api_token: str | None = None
    obsidian_api_url: str = DEFAULT_API_URL
    delivery_timeout: float = DEFAULT_TIMEOUT
    flush_concurrency: int = 1
    log_level: str = "INFO"

    def require_api_token(self) -> str:
        """Return the API token or raise if none is configured."""
        if not self.api_token:
            raise RuntimeError(
                "API bearer token is not configured. Set NPX_API_TOKEN or [server] api_token."
            )
        return self.api_token


def load_settings(config_path: str | os.PathLike | None = None) -> ProxySettings:
    """Load settings from an INI file with ``NPX_*`` environment fallbacks.

    Environment variables (all prefixed with NPX_):
      NPX_CONFIG - Path to config.ini file (default: config.ini)
      NPX_DB_PATH - Database connection string (default: /data/notes.db)
      NPX_HOST - Server host (default: 0.0.0.0)
      NPX_PORT - Server port (default: 8000)
      NPX_API_TOKEN - API bearer token
      NPX_OBSIDIAN_API_URL - Obsidian REST API base URL (default: http://localhost:27123)
      NPX_DELIVERY_TIMEOUT - Downstream timeout in seconds (default: 30)
      NPX_FLUSH_CONCURRENCY - Concurrent deliveries during flush (default: 1)
      NPX_LOG_LEVEL - Logging level (default: INFO)

    Raises:
        ValueError: If a numeric option cannot be parsed or is out of range.
    """
    path = Path(config_path or os.getenv("NPX_CONFIG", DEFAULT_CONFIG_PATH))
    parser = configparser.ConfigParser()
    parser.read(path)

    def get(section: str, option: str, fallback: str | None = None) -> str | None:
        if parser.has_option(section, option):
            return parser.get(section, option)
        return fallback

    def get_int(section: str, option: str, fallback: str | None = None, default: int = 0) -> int:
        value = get(section, option, fallback)
        if value is None or not value.strip():
            return default
        return int(value)

    def get_float(section: str, option: str, fallback: str | None = None, default: float = 0.0) -> float:
        value = get(section, option, fallback)
        if value is None or not value.strip():
            return default
        return float(value)

    settings = ProxySettings(
        db_path=get("storage", "db_path", os.getenv("NPX_DB_PATH")) or DEFAULT_DB_PATH,
        host=get("server", "host", os.getenv("NPX_HOST")) or "0.0.0.0",
        port=get_int("server", "port", os.getenv("NPX_PORT"), default=8000),
        api_token=get("server", "api_token", os.getenv("NPX_API_TOKEN")),
        obsidian_api_url=get("obsidian", "api_url", os.getenv("NPX_OBSIDIAN_API_URL")) or DEFAULT_API_URL,
        delivery_timeout=get_float(
            "obsidian", "timeout_seconds", os.getenv("NPX_DELIVERY_TIMEOUT"), default=DEFAULT_TIMEOUT
        ),
        flush_concurrency=get_int("flush", "concurrency", os.getenv("NPX_FLUSH_CONCURRENCY"), default=1),
        log_level=(get("logging", "level", os.getenv("NPX_LOG_LEVEL")) or "INFO").strip().upper(),
    )

    if settings.delivery_timeout <= 0:
        raise ValueError("delivery timeout must be positive")
    if settings.flush_concurrency < 1:
        raise ValueError("flush concurrency must be >= 1")

    if not settings.db_path.startswith(("postgresql:", "postgres:")):
        settings.db_path = os.path.expanduser(settings.db_path)
    token = settings.api_token
    if isinstance(token, str):
        token = token.strip() or None
    settings.api_token = token
    settings.obsidian_api_url = settings.obsidian_api_url.strip().rstrip("/")

    logger.debug("Loaded settings from %s (exists=%s)", path, path.exists())
    return settings


__all__ = ["ProxySettings", "load_settings"]
