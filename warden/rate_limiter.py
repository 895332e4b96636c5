"""Per-sender tumbling-window spam counter."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from warden.models import Verdict

LOGGER = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 5
DEFAULT_WINDOW_SECONDS = 10.0


@dataclass(slots=True)
class SenderWindow:
    sender_id: str
    count: int
    window_start: float


class RateLimiter:
    """Counts messages per sender in fixed windows.

    A window opens on the first message and is reset only when a later message
    arrives after it has expired. Exactly ``threshold`` messages per window are
    allowed; every further message in the same window is flagged.

    The update runs synchronously with no await inside it, so concurrent
    handlers on one event loop never interleave on the same window.
    """

    def __init__(
        self,
        threshold: int = DEFAULT_THRESHOLD,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
    ) -> None:
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self._threshold = threshold
        self._window_seconds = window_seconds
        self._windows: dict[str, SenderWindow] = {}

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    def check_and_record(self, sender_id: str, now: float) -> Verdict:
        """Record one message from ``sender_id`` at ``now`` and return the verdict."""

        window = self._windows.get(sender_id)
        if window is None:
            window = SenderWindow(sender_id=sender_id, count=1, window_start=now)
            self._windows[sender_id] = window
        elif now - window.window_start < self._window_seconds:
            window.count += 1
        else:
            window.count = 1
            window.window_start = now

        if window.count > self._threshold:
            return Verdict.SPAM_DETECTED
        return Verdict.ALLOWED

    def window(self, sender_id: str) -> SenderWindow | None:
        return self._windows.get(sender_id)

    def sweep(self, now: float) -> int:
        """Drop expired windows and return how many were removed.

        An expired window would be reset on the sender's next message anyway,
        so removing it never changes a verdict.
        """

        expired = [
            sender_id
            for sender_id, window in self._windows.items()
            if now - window.window_start >= self._window_seconds
        ]
        for sender_id in expired:
            del self._windows[sender_id]
        if expired:
            LOGGER.debug("Swept %d expired sender windows", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)
