"""Fixed-interval async tasks."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

LOGGER = logging.getLogger(__name__)


class PeriodicTask:
    """Calls a coroutine function every ``interval_seconds`` until stopped.

    The first call happens one interval after ``run_forever`` starts. A failing
    callback is logged and the loop keeps going.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._name = name
        self._interval_seconds = interval_seconds
        self._callback = callback
        self._stop_event = asyncio.Event()

    @property
    def name(self) -> str:
        return self._name

    async def run_forever(self) -> None:
        """Run loop until stop() is called."""

        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval_seconds)
            except asyncio.TimeoutError:
                pass
            if self._stop_event.is_set():
                break
            try:
                await self._callback()
            except Exception:  # noqa: BLE001
                LOGGER.exception("Periodic task %s failed", self._name)

    def stop(self) -> None:
        """Signal the loop to stop."""

        self._stop_event.set()
