# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Core orchestration logic for the periodic note proxy.

This module provides the NoteProxyCore class, which runs the two delivery
pipelines on top of the credential/queue store:

- Single-note delivery: validate, resolve credential, enqueue, deliver,
  dequeue on confirmed success.
- Flush: resolve credential, snapshot the vault's queue, deliver each note
  to the daily note, remove all confirmed notes in one step.

Delivery is at-least-once: a note is written to the queue before the
downstream call and removed only after the downstream API accepted it.
Expected failures are returned as result objects tagged with an
:class:`~note_proxy.models.ErrorKind` instead of being raised.

Example:
    Wiring the core by hand::

        db = NoteProxyDb("/data/notes.db")
        core = NoteProxyCore(db, api_url="http://localhost:27123")
        await core.init()

        result = await core.deliver_note("personal", "daily", "- shipped v2")
        report = await core.flush("personal")
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timezone
from typing import Any

from .delivery import NoteDeliveryClient, periodic_endpoint
from .errors import StorageError
from .logger import get_logger
from .models import (
    FLUSH_PERIOD,
    Delivered,
    DeliveryOutcome,
    ErrorKind,
    FlushReport,
    NoteDeliveryResult,
    Period,
    QueuedNote,
    Rejected,
    TransportFailure,
    VaultCredential,
    parse_period,
)
from .prometheus import NoteMetrics
from .proxy_db import NoteProxyDb

DEFAULT_API_URL = "http://localhost:27123"
VALID_PERIODS = ", ".join(p.value for p in Period)

DeliverFn = Callable[[QueuedNote], Awaitable[DeliveryOutcome]]
FlushStrategy = Callable[[Sequence[QueuedNote], DeliverFn], Awaitable[list[DeliveryOutcome]]]


# ------------------------------------------------------------ flush strategies
async def sequential_flush(notes: Sequence[QueuedNote], deliver: DeliverFn) -> list[DeliveryOutcome]:
    """Deliver notes one at a time, in listed order."""
    outcomes: list[DeliveryOutcome] = []
    for note in notes:
        outcomes.append(await deliver(note))
    return outcomes


def bounded_flush(limit: int) -> FlushStrategy:
    """Return a strategy delivering up to ``limit`` notes concurrently.

    Outcomes are returned in the same order as ``notes`` so each one is
    still attributed to its own note id.
    """
    if limit < 1:
        raise ValueError("flush concurrency limit must be >= 1")
    if limit == 1:
        return sequential_flush

    async def _flush(notes: Sequence[QueuedNote], deliver: DeliverFn) -> list[DeliveryOutcome]:
        semaphore = asyncio.Semaphore(limit)

        async def _one(note: QueuedNote) -> DeliveryOutcome:
            async with semaphore:
                return await deliver(note)

        return list(await asyncio.gather(*(_one(note) for note in notes)))

    return _flush


class NoteProxyCore:
    """Delivery pipelines for one credential/queue store.

    Attributes:
        db: Credential and queue store, injected by the caller.
        delivery: Single-attempt downstream client.
        api_url: Default downstream base URL for vaults without their own.
        metrics: Prometheus metrics collector.
        logger: Logger instance for diagnostic output.
    """

    def __init__(
        self,
        db: NoteProxyDb,
        *,
        delivery: NoteDeliveryClient | None = None,
        api_url: str = DEFAULT_API_URL,
        metrics: NoteMetrics | None = None,
        flush_strategy: FlushStrategy | None = None,
        logger=None,
    ):
        """Initialize the core.

        Args:
            db: Credential/queue store shared by every pipeline run.
            delivery: Delivery client. Defaults to a NoteDeliveryClient with
                the default timeout.
            api_url: Downstream base URL used when a vault has no ``api_url``.
            metrics: Prometheus metrics collector. If None, creates new instance.
            flush_strategy: Loop used by :meth:`flush`. Defaults to
                :func:`sequential_flush`.
            logger: Custom logger instance. If None, uses default logger.
        """
        self.db = db
        self.delivery = delivery or NoteDeliveryClient()
        self.api_url = api_url.rstrip("/")
        self.metrics = metrics or NoteMetrics()
        self.flush_strategy: FlushStrategy = flush_strategy or sequential_flush
        self.logger = logger or get_logger("NoteProxyCore")

    # --------------------------------------------------------------- lifecycle
    async def init(self) -> None:
        """Create the schema and prime the pending gauge."""
        await self.db.init_db()
        await self._refresh_queue_gauge()

    async def close(self) -> None:
        await self.db.close()

    # --------------------------------------------------------------- utils
    @staticmethod
    def _utc_now_iso() -> str:
        return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    def _endpoint_for(self, credential: VaultCredential, period: Period) -> str:
        return periodic_endpoint(credential.api_url or self.api_url, period)

    async def _refresh_queue_gauge(self) -> None:
        try:
            self.metrics.set_pending(await self.db.queue.count())
        except StorageError:
            self.logger.exception("Failed to refresh queue gauge")

    async def _attempt(self, endpoint: str, credential: VaultCredential, payload: str) -> DeliveryOutcome:
        """Run one delivery, turning unexpected client errors into a TransportFailure."""
        try:
            return await self.delivery.deliver(endpoint, credential.api_key, payload)
        except Exception as exc:
            self.logger.exception("Unexpected error delivering to %s", endpoint)
            return TransportFailure(f"{type(exc).__name__}: {exc}")

    # ------------------------------------------------------- single-note path
    async def deliver_note(self, vault: str, period: str | None, content: str | None) -> NoteDeliveryResult:
        """Queue one note and forward it to the vault's periodic note.

        Args:
            vault: Vault name, looked up in the credential store.
            period: One of daily/weekly/monthly/quarterly/yearly (any case).
            content: Markdown payload, forwarded untouched.

        Returns:
            NoteDeliveryResult; ``error_kind`` tells which checkpoint failed.
        """
        normalized = parse_period(period)
        if normalized is None:
            return NoteDeliveryResult(
                success=False,
                message=f"Invalid period '{period}'. Must be one of: {VALID_PERIODS}",
                vault=vault,
                period=period,
                error_kind=ErrorKind.VALIDATION,
            )
        period_value = normalized.value

        try:
            credential = await self.db.vaults.get_credential(vault)
        except StorageError as exc:
            return self._storage_result(vault, period_value, exc)
        if credential is None:
            return NoteDeliveryResult(
                success=False,
                message=f"Vault configuration '{vault}' not found in database",
                vault=vault,
                period=period_value,
                error_kind=ErrorKind.NOT_FOUND,
            )

        if not content or not content.strip():
            return NoteDeliveryResult(
                success=False,
                message="Request body cannot be empty. Provide markdown content to append.",
                vault=vault,
                period=period_value,
                error_kind=ErrorKind.VALIDATION,
            )

        try:
            note_id = await self.db.queue.enqueue(vault, content)
        except StorageError as exc:
            return self._storage_result(vault, period_value, exc)
        self.metrics.inc_enqueued(vault)
        self.logger.debug("Queued note %s for vault %s", note_id, vault)

        endpoint = self._endpoint_for(credential, normalized)
        outcome = await self._attempt(endpoint, credential, content)

        if isinstance(outcome, Delivered):
            self.metrics.inc_delivered(vault)
            dequeued = True
            try:
                await self.db.queue.dequeue(note_id)
            except StorageError as exc:
                # Delivered but still queued: a later flush re-delivers it.
                dequeued = False
                self.metrics.inc_dequeue_failure(vault)
                self.logger.warning(
                    "Note %s delivered to vault %s but not removed from queue: %s",
                    note_id,
                    vault,
                    exc,
                )
            await self._refresh_queue_gauge()
            return NoteDeliveryResult(
                success=True,
                message=f"Successfully appended content to {period_value} periodic note in vault '{vault}'",
                vault=vault,
                period=period_value,
                status_code=outcome.status_code,
                note_id=note_id,
                dequeued=dequeued,
            )

        await self._refresh_queue_gauge()
        if isinstance(outcome, Rejected):
            self.metrics.inc_failure(vault, ErrorKind.REJECTED.value)
            self.logger.info(
                "Note %s for vault %s rejected (status=%d), kept in queue",
                note_id,
                vault,
                outcome.status_code,
            )
            return NoteDeliveryResult(
                success=False,
                message="Failed to append content to Obsidian vault",
                vault=vault,
                period=period_value,
                status_code=outcome.status_code,
                error_kind=ErrorKind.REJECTED,
                error=outcome.body,
                note_id=note_id,
            )

        self.metrics.inc_failure(vault, ErrorKind.TRANSPORT.value)
        self.logger.info("Note %s for vault %s not delivered (%s), kept in queue", note_id, vault, outcome.reason)
        return NoteDeliveryResult(
            success=False,
            message="Obsidian API unreachable, note kept in queue",
            vault=vault,
            period=period_value,
            error_kind=ErrorKind.TRANSPORT,
            error=outcome.reason,
            note_id=note_id,
        )

    def _storage_result(self, vault: str, period: str, exc: StorageError) -> NoteDeliveryResult:
        self.logger.error("Storage error while delivering to vault %s: %s", vault, exc)
        return NoteDeliveryResult(
            success=False,
            message="An error occurred while processing the request",
            vault=vault,
            period=period,
            error_kind=ErrorKind.STORAGE,
            error=str(exc),
        )

    # ------------------------------------------------------------ flush path
    async def flush(self, vault: str) -> FlushReport:
        """Retry every note queued for ``vault``, oldest first.

        All notes go to the daily periodic note whatever period they were
        originally posted for. Confirmed notes are removed with a single
        bulk delete after the loop; failed notes stay queued.
        """
        self.metrics.inc_flush_run(vault)
        try:
            credential = await self.db.vaults.get_credential(vault)
        except StorageError as exc:
            return self._storage_report(vault, exc)
        if credential is None:
            return FlushReport(
                success=False,
                message=f"Vault configuration '{vault}' not found in database",
                vault=vault,
                error_kind=ErrorKind.NOT_FOUND,
            )

        try:
            notes = await self.db.queue.list_pending(vault)
        except StorageError as exc:
            return self._storage_report(vault, exc)
        if not notes:
            return FlushReport(
                success=True,
                message=f"No queued notes found for vault '{vault}'",
                vault=vault,
            )

        endpoint = self._endpoint_for(credential, FLUSH_PERIOD)

        async def deliver(note: QueuedNote) -> DeliveryOutcome:
            return await self._attempt(endpoint, credential, note.note)

        self.logger.info("Flushing %d queued note(s) for vault %s", len(notes), vault)
        outcomes = await self.flush_strategy(notes, deliver)

        delivered_ids: list[int] = []
        errors: list[str] = []
        for note, outcome in zip(notes, outcomes, strict=True):
            if isinstance(outcome, Delivered):
                delivered_ids.append(note.id)
                continue
            kind = ErrorKind.REJECTED if isinstance(outcome, Rejected) else ErrorKind.TRANSPORT
            self.metrics.inc_failure(vault, kind.value)
            errors.append(f"Note ID {note.id}: {outcome.describe()}")
        self.metrics.inc_delivered(vault, len(delivered_ids))

        report = FlushReport(
            success=not errors,
            message=f"Processed {len(notes)} queued notes for vault '{vault}'",
            vault=vault,
            total_notes=len(notes),
            success_count=len(delivered_ids),
            failure_count=len(errors),
            errors=errors or None,
            delivered_ids=delivered_ids,
        )

        try:
            await self.db.queue.dequeue_many(delivered_ids)
        except StorageError as exc:
            self.metrics.inc_dequeue_failure(vault)
            self.logger.error(
                "Flush of vault %s delivered %d note(s) but could not remove them: %s",
                vault,
                len(delivered_ids),
                exc,
            )
            report.success = False
            report.message = "Delivered notes could not be removed from the queue"
            report.error_kind = ErrorKind.STORAGE
        await self._refresh_queue_gauge()

        self.logger.info(
            "Flush of vault %s: total=%d delivered=%d failed=%d",
            vault,
            report.total_notes,
            report.success_count,
            report.failure_count,
        )
        return report

    def _storage_report(self, vault: str, exc: StorageError) -> FlushReport:
        self.logger.error("Storage error while flushing vault %s: %s", vault, exc)
        return FlushReport(
            success=False,
            message="An error occurred while flushing queued notes",
            vault=vault,
            error_kind=ErrorKind.STORAGE,
        )

    # ------------------------------------------------------------- inspection
    async def list_queue(self, vault: str) -> list[QueuedNote]:
        """Current queue snapshot for a vault (raises StorageError)."""
        return await self.db.queue.list_pending(vault)

    async def health(self) -> tuple[bool, dict[str, Any]]:
        """Build the health payload reported by ``GET /health``."""
        healthy, message, data = await self.db.check_connection()
        status = "healthy" if healthy else "unhealthy"
        return healthy, {
            "status": status,
            "timestamp": self._utc_now_iso(),
            "checks": {
                "database": {
                    "status": status,
                    "message": message,
                    "data": data,
                }
            },
        }


__all__ = [
    "DEFAULT_API_URL",
    "FlushStrategy",
    "NoteProxyCore",
    "bounded_flush",
    "sequential_flush",
]
