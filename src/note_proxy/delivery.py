# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Delivery client for the Obsidian Local REST API periodic-notes endpoint.

The client performs exactly one HTTP POST per call and classifies the
result; it never retries. Retrying is the job of the flush pipeline,
triggered explicitly by the caller.

Example:
    Posting a note to today's daily note::

        client = NoteDeliveryClient(timeout=30)
        endpoint = periodic_endpoint("http://localhost:27123", Period.DAILY)
        outcome = await client.deliver(endpoint, "vault-api-key", "- met Bob")
        if outcome.ok:
            ...
"""

from __future__ import annotations

import asyncio

import aiohttp

from .logger import get_logger
from .models import Delivered, DeliveryOutcome, Period, Rejected, TransportFailure

MARKDOWN_CONTENT_TYPE = "text/markdown; charset=utf-8"
DEFAULT_TIMEOUT = 30.0
# Downstream error bodies are truncated before being echoed to callers.
MAX_ERROR_BODY = 2000

logger = get_logger("NoteDelivery")


def periodic_endpoint(base_url: str, period: Period | str) -> str:
    """Build ``{base_url}/periodic/{period}/``."""
    value = period.value if isinstance(period, Period) else str(period)
    return f"{base_url.rstrip('/')}/periodic/{value}/"


class NoteDeliveryClient:
    """Single-attempt note forwarder.

    Attributes:
        timeout: Total per-request timeout in seconds.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, session: aiohttp.ClientSession | None = None):
        """Initialize the delivery client.

        Args:
            timeout: Total per-request timeout in seconds.
            session: Optional shared ClientSession. When omitted a session
                is opened for each delivery.
        """
        self.timeout = float(timeout)
        self._session = session

    @staticmethod
    def _headers(credential: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {credential}",
            "Content-Type": MARKDOWN_CONTENT_TYPE,
        }

    async def deliver(self, endpoint: str, credential: str, payload: str) -> DeliveryOutcome:
        """POST ``payload`` to ``endpoint`` and classify the response.

        Returns:
            Delivered for any 2xx status, Rejected for any other status,
            TransportFailure when no response was received.
        """
        try:
            if self._session is not None:
                return await self._post(self._session, endpoint, credential, payload)
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as session:
                return await self._post(session, endpoint, credential, payload)
        except asyncio.TimeoutError:
            logger.warning("Delivery to %s timed out after %.1fs", endpoint, self.timeout)
            return TransportFailure(f"Timed out after {self.timeout:g}s")
        except aiohttp.ClientError as exc:
            logger.warning("Delivery to %s failed: %s", endpoint, exc)
            return TransportFailure(str(exc) or type(exc).__name__)

    async def _post(
        self, session: aiohttp.ClientSession, endpoint: str, credential: str, payload: str
    ) -> DeliveryOutcome:
        async with session.post(
            endpoint,
            data=payload.encode("utf-8"),
            headers=self._headers(credential),
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        ) as resp:
            if 200 <= resp.status < 300:
                logger.debug("Delivered note to %s (status=%d)", endpoint, resp.status)
                return Delivered(resp.status)
            # A body that does not match its declared charset is still a rejection.
            body = await resp.text(errors="replace")
            logger.warning("Downstream rejected note at %s (status=%d)", endpoint, resp.status)
            return Rejected(resp.status, body[:MAX_ERROR_BODY])


__all__ = ["NoteDeliveryClient", "periodic_endpoint", "MARKDOWN_CONTENT_TYPE"]
