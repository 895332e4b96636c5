"""Command-usage sinks.

Recording is fire-and-forget: callers schedule ``record`` and log failures,
they never wait on it for a reply.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone

import httpx

from warden.db import Database

LOGGER = logging.getLogger(__name__)


class UsageSink(ABC):
    """Destination for (command, sender, timestamp) usage records."""

    @abstractmethod
    async def record(self, command: str, sender_id: str, timestamp: datetime) -> None:
        """Store one usage record."""


class DatabaseUsageSink(UsageSink):
    """Writes usage records to the local SQLite database."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def record(self, command: str, sender_id: str, timestamp: datetime) -> None:
        await asyncio.to_thread(self._db.record_command, command, sender_id, timestamp)


class WebhookUsageSink(UsageSink):
    """POSTs usage records as JSON to an external endpoint."""

    def __init__(self, url: str, timeout_seconds: float = 10.0) -> None:
        self._url = url
        self._timeout_seconds = timeout_seconds

    async def record(self, command: str, sender_id: str, timestamp: datetime) -> None:
        payload = {
            "command": command,
            "sender_id": sender_id,
            "timestamp": timestamp.astimezone(timezone.utc).isoformat(),
        }
        async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout_seconds)) as client:
            response = await client.post(self._url, json=payload)
            if response.status_code >= 400:
                raise RuntimeError(f"Usage webhook returned HTTP {response.status_code}")


class FanOutUsageSink(UsageSink):
    """Forwards each record to several sinks; one failing does not stop the others."""

    def __init__(self, sinks: list[UsageSink]) -> None:
        self._sinks = sinks

    async def record(self, command: str, sender_id: str, timestamp: datetime) -> None:
        results = await asyncio.gather(
            *[sink.record(command, sender_id, timestamp) for sink in self._sinks],
            return_exceptions=True,
        )
        for sink, result in zip(self._sinks, results):
            if isinstance(result, Exception):
                LOGGER.warning("Usage sink %s failed: %s", type(sink).__name__, result)
