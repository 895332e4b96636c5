"""Moderation pipeline: spam check, link check, command dispatch, greeting.

Stages run in that fixed order and the first one that claims a message ends
processing for it.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from warden.commands import CommandRouter, parse_command
from warden.config import BotState
from warden.links import contains_link
from warden.models import (
    DeleteMessage,
    InboundMessage,
    OutboundAction,
    RemoveParticipant,
    Reply,
    SendToOrigin,
    UpdateProfile,
    Verdict,
)
from warden.rate_limiter import RateLimiter
from warden.transport import Transport

LOGGER = logging.getLogger(__name__)

GREETING_WORDS = ("hello", "hi", "hey")
GREETING_REPLY = "Hello there! How can I help you today?"
SLOW_DOWN_REPLY = "You're sending messages too quickly. Please slow down."


class ActionExecutor:
    """Applies outbound actions through the transport.

    Each action is attempted independently. Failures are logged with the action
    kind and target and never propagate.
    """

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def apply(self, message: InboundMessage | None, actions: list[OutboundAction]) -> list[OutboundAction]:
        """Apply ``actions`` in order and return the ones that failed."""

        failed: list[OutboundAction] = []
        for action in actions:
            try:
                await self._apply_one(message, action)
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning(
                    "Action %s failed (target=%s): %s",
                    type(action).__name__,
                    _target_of(message, action),
                    exc,
                )
                failed.append(action)
        return failed

    async def _apply_one(self, message: InboundMessage | None, action: OutboundAction) -> None:
        if isinstance(action, SendToOrigin):
            await self._transport.send_to_origin(action.origin_id, action.text, action.mentions)
            return
        if isinstance(action, UpdateProfile):
            await self._transport.set_profile_bio(action.bio)
            LOGGER.info("Updated bio: %s", action.bio)
            return
        if message is None:
            raise ValueError(f"{type(action).__name__} requires an inbound message")
        if isinstance(action, Reply):
            await self._transport.reply(message, action.text)
        elif isinstance(action, DeleteMessage):
            await self._transport.delete_message(message, everyone=action.everyone)
        elif isinstance(action, RemoveParticipant):
            await self._remove_participant(message, action)
        else:
            raise TypeError(f"Unsupported action: {action!r}")

    async def _remove_participant(self, message: InboundMessage, action: RemoveParticipant) -> None:
        try:
            await self._transport.remove_participant(message.origin_id, action.participant_id)
        except Exception:
            if action.failure_text:
                await self._transport.reply(message, action.failure_text)
            raise
        if action.success_text:
            await self._transport.reply(message, action.success_text)


def _target_of(message: InboundMessage | None, action: OutboundAction) -> str:
    if isinstance(action, SendToOrigin):
        return action.origin_id
    if isinstance(action, RemoveParticipant):
        return action.participant_id
    if isinstance(action, UpdateProfile):
        return "profile"
    if message is not None:
        return message.message_id or message.origin_id
    return "unknown"


class ModerationPipeline:
    """Runs one inbound message through the moderation stages."""

    def __init__(
        self,
        state: BotState,
        rate_limiter: RateLimiter,
        router: CommandRouter,
        executor: ActionExecutor,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._state = state
        self._rate_limiter = rate_limiter
        self._router = router
        self._executor = executor
        self._clock = clock

    async def handle(self, message: InboundMessage) -> list[OutboundAction]:
        """Decide on and apply the actions for ``message``.

        Returns the decided actions. Never raises.
        """
        try:
            actions = await self.evaluate(message)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Pipeline failed for message %s from %s", message.message_id, message.sender_key)
            return []
        if actions:
            await self._executor.apply(message, actions)
        return actions

    async def evaluate(self, message: InboundMessage) -> list[OutboundAction]:
        """Run the stages and return the actions for ``message`` without applying them."""

        sender = message.sender_key
        # Read once so a concurrent setprefix only affects later messages.
        prefix = self._state.prefix

        verdict = self._rate_limiter.check_and_record(sender, self._clock())
        if verdict is Verdict.SPAM_DETECTED:
            return self._spam_actions(message)

        invocation = parse_command(message.text, prefix)

        if invocation is None and message.is_group and contains_link(message.text):
            LOGGER.info("Deleting link message from %s in %s", sender, message.origin_id)
            return [
                DeleteMessage(everyone=True),
                SendToOrigin(
                    message.origin_id,
                    f"@{sender} Links are not allowed in this group!",
                    mentions=[sender],
                ),
            ]

        if invocation is not None:
            return await self._router.route(invocation, message, self._state, prefix)

        if is_greeting(message.text):
            return [Reply(GREETING_REPLY)]
        return []

    def _spam_actions(self, message: InboundMessage) -> list[OutboundAction]:
        sender = message.sender_key
        LOGGER.info("Spam detected from %s in %s", sender, message.origin_id)
        if message.is_group:
            return [
                DeleteMessage(everyone=True),
                SendToOrigin(message.origin_id, f"@{sender} Please stop spamming!", mentions=[sender]),
            ]
        return [Reply(SLOW_DOWN_REPLY)]


def is_greeting(text: str) -> bool:
    lowered = text.lower()
    return any(word in lowered for word in GREETING_WORDS)
