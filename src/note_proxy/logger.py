"""Logging utilities for the periodic note proxy.

This module provides a centralized logging helper. The actual logging setup
(level, handlers, format) is configured via ``logging.basicConfig()`` in the
entry point to avoid duplicate handlers.

Example:
    Typical usage in a module::

        from note_proxy.logger import get_logger

        logger = get_logger("NoteQueue")
        logger.info("Note queued")
"""

import logging


def get_logger(name: str = "NoteProxy") -> logging.Logger:
    """Retrieve a logger instance.

    Returns a standard library logger with the specified name. It does not
    configure handlers or formatters; that responsibility lies with the
    application entry point.

    Args:
        name: The logger name. Defaults to "NoteProxy".

    Returns:
        A ``logging.Logger`` instance bound to the given name.
    """
    return logging.getLogger(name)


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the process entry points."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
