"""Periodic profile bio refresh."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from warden.commands import default_bio, local_now
from warden.config import BotState
from warden.models import UpdateProfile
from warden.pipeline import ActionExecutor

LOGGER = logging.getLogger(__name__)


class BioRefresher:
    """Regenerates the time-stamped default bio and pushes it to the profile."""

    def __init__(
        self,
        state: BotState,
        executor: ActionExecutor,
        wall_clock: Callable[[], datetime] = local_now,
    ) -> None:
        self._state = state
        self._executor = executor
        self._wall_clock = wall_clock

    async def refresh(self) -> str:
        bio = default_bio(self._wall_clock())
        self._state.bio_text = bio
        failed = await self._executor.apply(None, [UpdateProfile(bio)])
        if failed:
            LOGGER.warning("Auto bio update failed; keeping local bio %r", bio)
        return bio
