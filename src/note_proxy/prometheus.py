# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics for monitoring the note proxy.

All metrics use the ``npx_`` prefix (periodic note proxy).

Metrics exposed:
    - ``npx_enqueued_total``: Notes durably queued, per vault.
    - ``npx_delivered_total``: Notes accepted by the downstream API, per vault.
    - ``npx_delivery_failures_total``: Failed delivery attempts, per vault and kind.
    - ``npx_dequeue_failures_total``: Delivered notes whose queue row could not be removed.
    - ``npx_flush_runs_total``: Flush invocations, per vault.
    - ``npx_pending_notes``: Notes currently queued across all vaults.

Example:
    Accessing metrics via the REST API::

        GET /metrics
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest


class NoteMetrics:
    """Prometheus metrics collector for the delivery pipelines.

    Attributes:
        registry: The Prometheus CollectorRegistry holding all metrics.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """Initialize metrics with an optional custom registry.

        Args:
            registry: Optional Prometheus CollectorRegistry. If not provided,
                a new registry is created.
        """
        self.registry = registry or CollectorRegistry()
        self.enqueued = Counter(
            "npx_enqueued_total",
            "Total notes queued",
            ["vault"],
            registry=self.registry,
        )
        self.delivered = Counter(
            "npx_delivered_total",
            "Total notes delivered",
            ["vault"],
            registry=self.registry,
        )
        self.failures = Counter(
            "npx_delivery_failures_total",
            "Total failed delivery attempts",
            ["vault", "kind"],
            registry=self.registry,
        )
        self.dequeue_failures = Counter(
            "npx_dequeue_failures_total",
            "Delivered notes left in the queue after a storage error",
            ["vault"],
            registry=self.registry,
        )
        self.flush_runs = Counter(
            "npx_flush_runs_total",
            "Total flush invocations",
            ["vault"],
            registry=self.registry,
        )
        self.pending = Gauge(
            "npx_pending_notes",
            "Current queued notes",
            registry=self.registry,
        )

    def inc_enqueued(self, vault: str) -> None:
        self.enqueued.labels(vault=vault or "default").inc()

    def inc_delivered(self, vault: str, count: int = 1) -> None:
        if count:
            self.delivered.labels(vault=vault or "default").inc(count)

    def inc_failure(self, vault: str, kind: str) -> None:
        """Increment the failure counter.

        Args:
            vault: Vault name.
            kind: ``rejected`` or ``transport``.
        """
        self.failures.labels(vault=vault or "default", kind=kind).inc()

    def inc_dequeue_failure(self, vault: str) -> None:
        self.dequeue_failures.labels(vault=vault or "default").inc()

    def inc_flush_run(self, vault: str) -> None:
        self.flush_runs.labels(vault=vault or "default").inc()

    def set_pending(self, value: int) -> None:
        self.pending.set(value)

    def generate_latest(self) -> bytes:
        """Export all metrics in Prometheus text exposition format."""
        return generate_latest(self.registry)
