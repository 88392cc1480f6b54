# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Error taxonomy for the note proxy.

Pipelines report expected failures as result objects tagged with an
:class:`~note_proxy.models.ErrorKind`; the exceptions below are raised by the
storage layer (``StorageError``) and by ``result.to_error()`` for callers that
prefer exception handling.
"""

from __future__ import annotations


class NoteProxyError(Exception):
    """Base class for all note proxy errors."""


class ValidationError(NoteProxyError):
    """Raised for a bad period or an empty note body."""


class VaultNotFoundError(NoteProxyError):
    """Raised when no credential is configured for a vault."""

    def __init__(self, vault: str):
        super().__init__(f"Vault configuration '{vault}' not found in database")
        self.vault = vault


class StorageError(NoteProxyError):
    """Raised when the credential/queue store cannot be reached or fails."""


class DeliveryRejected(NoteProxyError):
    """The downstream API answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"Downstream API rejected the note with status {status_code}")
        self.status_code = status_code
        self.body = body


class DeliveryTransportFailure(NoteProxyError):
    """The downstream API could not be reached (network, timeout)."""

    def __init__(self, reason: str):
        super().__init__(f"Downstream API unreachable: {reason}")
        self.reason = reason


__all__ = [
    "DeliveryRejected",
    "DeliveryTransportFailure",
    "NoteProxyError",
    "StorageError",
    "ValidationError",
    "VaultNotFoundError",
]
