# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Domain models for the periodic note proxy.

Models:
    - Period: Periodic note category appended to the downstream endpoint
    - VaultCreate: Validated vault credential payload (admin CLI)
    - VaultCredential: Credential resolved for a vault
    - QueuedNote: A note held in the durable queue
    - Delivered / Rejected / TransportFailure: Delivery client outcomes
    - NoteDeliveryResult: Result of the single-note pipeline
    - FlushReport: Aggregate result of the flush pipeline
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import (
    DeliveryRejected,
    DeliveryTransportFailure,
    NoteProxyError,
    StorageError,
    ValidationError,
    VaultNotFoundError,
)


class Period(str, Enum):
    """Periodic note categories accepted by the downstream API."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


# Flush always posts to the daily note; the requested period is not stored.
FLUSH_PERIOD = Period.DAILY


def parse_period(value: str | None) -> Period | None:
    """Return the Period matching ``value`` case-insensitively, or None."""
    if not value:
        return None
    try:
        return Period(value.strip().lower())
    except ValueError:
        return None


class VaultCreate(BaseModel):
    """Payload for registering or updating a vault credential."""

    model_config = ConfigDict(extra="forbid")

    name: Annotated[str, Field(min_length=1, max_length=200, description="Vault name")]
    api_key: Annotated[str, Field(min_length=1, description="Bearer token for the vault API")]
    api_url: Annotated[
        str | None,
        Field(default=None, description="Per-vault API base URL (default: instance setting)"),
    ]

    @field_validator("api_url")
    @classmethod
    def api_url_must_be_http(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError("api_url must start with http:// or https://")
        return v.rstrip("/")


@dataclass(frozen=True)
class VaultCredential:
    name: str
    api_key: str
    api_url: str | None = None


@dataclass(frozen=True)
class QueuedNote:
    id: int
    vault: str
    note: str
    created_at: str | None = None


# --------------------------------------------------------------- outcomes
@dataclass(frozen=True)
class Delivered:
    """The downstream API accepted the note (2xx status)."""

    status_code: int

    @property
    def ok(self) -> bool:
        return True

    def describe(self) -> str:
        return f"delivered ({self.status_code})"


@dataclass(frozen=True)
class Rejected:
    """The downstream API answered with a non-success status."""

    status_code: int
    body: str = ""

    @property
    def ok(self) -> bool:
        return False

    def describe(self) -> str:
        detail = f"{self.status_code}"
        if self.body:
            detail = f"{detail} {self.body[:200]}"
        return detail


@dataclass(frozen=True)
class TransportFailure:
    """The downstream API could not be reached."""

    reason: str

    @property
    def ok(self) -> bool:
        return False

    def describe(self) -> str:
        return self.reason


DeliveryOutcome = Union[Delivered, Rejected, TransportFailure]


class ErrorKind(str, Enum):
    """Failure classes surfaced by the pipelines."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    STORAGE = "storage"
    REJECTED = "rejected"
    TRANSPORT = "transport"


def _error_for(kind: ErrorKind, message: str, vault: str, status_code: int | None) -> NoteProxyError:
    match kind:
        case ErrorKind.VALIDATION:
            return ValidationError(message)
        case ErrorKind.NOT_FOUND:
            return VaultNotFoundError(vault)
        case ErrorKind.STORAGE:
            return StorageError(message)
        case ErrorKind.REJECTED:
            return DeliveryRejected(status_code or 0, message)
        case _:
            return DeliveryTransportFailure(message)


@dataclass
class NoteDeliveryResult:
    """Outcome of one pass through the single-note pipeline.

    Attributes:
        success: True when the downstream API accepted the note.
        message: Human-readable summary.
        vault: Target vault name.
        period: Normalized period, or the raw value when it was invalid.
        status_code: Downstream HTTP status, when a response was received.
        error_kind: Failure class, None on success.
        error: Downstream body or local error detail.
        note_id: Queue id assigned at enqueue, None if never queued.
        dequeued: False when the note was delivered but its queue row remains.
    """

    success: bool
    message: str
    vault: str
    period: str | None = None
    status_code: int | None = None
    error_kind: ErrorKind | None = None
    error: str | None = None
    note_id: int | None = None
    dequeued: bool = False

    def to_error(self) -> NoteProxyError | None:
        if self.error_kind is None:
            return None
        return _error_for(self.error_kind, self.error or self.message, self.vault, self.status_code)


@dataclass
class FlushReport:
    """Aggregate result of a flush run over one vault's queue."""

    success: bool
    message: str
    vault: str
    total_notes: int = 0
    success_count: int = 0
    failure_count: int = 0
    errors: list[str] | None = None
    error_kind: ErrorKind | None = None
    delivered_ids: list[int] = field(default_factory=list)

    def to_error(self) -> NoteProxyError | None:
        if self.error_kind is None:
            return None
        return _error_for(self.error_kind, self.message, self.vault, None)


__all__ = [
    "Delivered",
    "DeliveryOutcome",
    "ErrorKind",
    "FLUSH_PERIOD",
    "FlushReport",
    "NoteDeliveryResult",
    "Period",
    "QueuedNote",
    "Rejected",
    "TransportFailure",
    "VaultCreate",
    "VaultCredential",
    "parse_period",
]
