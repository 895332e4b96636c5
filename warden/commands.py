"""Command router for prefixed messages.

Every recognised or unrecognised command produces at least one reply; a
prefixed message never falls through to greeting handling.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

from warden.calculator import EvaluationFailure, evaluate, format_result
from warden.models import (
    CommandInvocation,
    InboundMessage,
    OutboundAction,
    RemoveParticipant,
    Reply,
    UpdateProfile,
)
from warden.transport import TransportActionFailure

if TYPE_CHECKING:
    from warden.config import BotState
    from warden.transport import Transport
    from warden.usage import UsageSink

LOGGER = logging.getLogger(__name__)

QUOTES = (
    "Believe you can and you're halfway there.",
    "Your limitation, it's only your imagination.",
    "Push yourself, because no one else is going to do it for you.",
    "Great things never come from comfort zones.",
    "Dream it. Wish it. Do it.",
)

FACTS = (
    "Honey never spoils.",
    "A single strand of spaghetti is called a spaghetto.",
    "Octopuses have three hearts.",
    "Bananas are berries, but strawberries aren't.",
    "The Eiffel Tower can be 15 cm taller during hot days.",
)

GROUP_ONLY = "This command can only be used in groups."


def parse_command(text: str, prefix: str) -> CommandInvocation | None:
    """Split a prefixed message into a command invocation.

    Returns:
        The invocation with a lowercased command name, or None if ``text`` does
        not start with ``prefix``. A bare prefix yields an empty command name.
    """
    if not prefix or not text.startswith(prefix):
        return None
    parts = text[len(prefix):].split()
    if not parts:
        return CommandInvocation(command="", args=[])
    return CommandInvocation(command=parts[0].lower(), args=parts[1:])


def format_uptime(seconds: float) -> str:
    """Format a duration as ``{h}h {m}m {s}s``."""
    total = int(seconds)
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m {secs}s"


def local_now() -> datetime:
    return datetime.now().astimezone()


def default_bio(now: datetime) -> str:
    return f"Bot Active | Updated at {now.strftime('%H:%M:%S')}"


def help_text(prefix: str) -> str:
    lines = [
        ("ping", "Check bot responsiveness."),
        ("help", "Show this help message."),
        ("say <message>", "Echo the message."),
        ("roll", "Roll a random number between 1 and 100."),
        ("uptime", "Show how long the bot has been running."),
        ("status", "Show uptime, current time and prefix."),
        ("setbio [text]", "Update bot bio/status."),
        ("setprefix <newPrefix>", f"Change the command prefix (current: {prefix})."),
        ("groupinfo", "Get information about the current group."),
        ("calc <expression>", "Evaluate a mathematical expression."),
        ("weather <city>", "Get a dummy weather forecast."),
        ("quote", "Receive a random inspirational quote."),
        ("fact", "Get a random fact."),
        ("kick @user", "Kick a mentioned user from the group."),
    ]
    body = "\n".join(f"• {prefix}{usage} - {description}" for usage, description in lines)
    return f"Bot Commands:\n{body}"


class CommandRouter:
    """Dispatches parsed commands to handlers and returns the resulting actions."""

    def __init__(
        self,
        transport: Transport,
        usage_sink: UsageSink | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = local_now,
    ) -> None:
        self._transport = transport
        self._usage_sink = usage_sink
        self._rng = rng or random.Random()
        self._clock = clock
        self._wall_clock = wall_clock
        self._pending_usage: set[asyncio.Task[None]] = set()

    async def route(
        self,
        invocation: CommandInvocation,
        message: InboundMessage,
        state: BotState,
        prefix: str,
    ) -> list[OutboundAction]:
        """Run one command.

        ``prefix`` is the prefix the message was parsed with; ``state`` may be
        mutated by ``setprefix`` and ``setbio``.
        """
        command, args = invocation.command, invocation.args
        LOGGER.info("Command dispatch: command=%r args=%r sender=%s", command, args, message.sender_key)
        self._record_usage(command, message.sender_key)

        if command == "ping":
            return [Reply("pong")]
        if command == "help":
            return [Reply(help_text(prefix))]
        if command == "say":
            if not args:
                return [Reply("You didn't provide any message to echo!")]
            return [Reply(" ".join(args))]
        if command == "roll":
            return [Reply(f"You rolled: {self._rng.randint(1, 100)}")]
        if command == "uptime":
            return [Reply(f"Bot has been running for: {self._uptime(state)}")]
        if command == "setbio":
            return self._handle_setbio(args, state)
        if command == "setprefix":
            return self._handle_setprefix(args, state, prefix)
        if command == "status":
            return [Reply(self._status(state))]
        if command == "groupinfo":
            return [await self._handle_groupinfo(message)]
        if command == "calc":
            return [self._handle_calc(args, prefix)]
        if command == "weather":
            if not args:
                return [Reply(f"Usage: {prefix}weather <city>")]
            city = " ".join(args)
            temp = self._rng.randint(10, 39)
            return [Reply(f"The current temperature in {city} is {temp}°C with clear skies.")]
        if command == "quote":
            return [Reply(self._rng.choice(QUOTES))]
        if command == "fact":
            return [Reply(self._rng.choice(FACTS))]
        if command == "kick":
            return self._handle_kick(message)
        return [Reply(f"Unknown command. Type {prefix}help for a list of commands.")]

    async def wait_for_usage(self) -> None:
        """Wait for in-flight usage records to settle."""

        if self._pending_usage:
            await asyncio.gather(*list(self._pending_usage), return_exceptions=True)

    def _uptime(self, state: BotState) -> str:
        return format_uptime(state.uptime_seconds(self._clock()))

    def _status(self, state: BotState) -> str:
        current_time = self._wall_clock().strftime("%H:%M:%S")
        return (
            "Bot Status:\n"
            f"• Uptime: {self._uptime(state)}\n"
            f"• Current Time: {current_time}\n"
            f"• Command Prefix: {state.prefix}"
        )

    def _handle_setbio(self, args: list[str], state: BotState) -> list[OutboundAction]:
        if args:
            bio = " ".join(args)
            confirmation = f"Bio updated to: {bio}"
        else:
            bio = default_bio(self._wall_clock())
            confirmation = "Bio auto-updated with current time."
        state.bio_text = bio
        return [UpdateProfile(bio), Reply(confirmation)]

    def _handle_setprefix(self, args: list[str], state: BotState, prefix: str) -> list[OutboundAction]:
        if len(args) != 1:
            return [Reply(f"Usage: {prefix}setprefix <newPrefix>")]
        state.set_prefix(args[0])
        LOGGER.info("Command prefix changed from %r to %r", prefix, state.prefix)
        return [Reply(f"Command prefix updated to: {state.prefix}")]

    async def _handle_groupinfo(self, message: InboundMessage) -> Reply:
        if not message.is_group:
            return Reply(GROUP_ONLY)
        try:
            chat = await self._transport.get_chat(message.origin_id)
        except TransportActionFailure as exc:
            LOGGER.warning("get_chat failed for %s: %s", message.origin_id, exc)
            return Reply("Could not fetch group info.")
        return Reply(
            "Group Info:\n"
            f"Subject: {chat.name}\n"
            f"Participants: {len(chat.participants)}\n"
            f"Description: {chat.description or 'No description provided.'}"
        )

    def _handle_calc(self, args: list[str], prefix: str) -> Reply:
        if not args:
            return Reply(f"Usage: {prefix}calc <expression>")
        try:
            rendered = format_result(evaluate(" ".join(args)))
        except EvaluationFailure as exc:
            LOGGER.info("calc rejected expression %r: %s", " ".join(args), exc)
            return Reply("Invalid expression.")
        return Reply(f"Result: {rendered}")

    def _handle_kick(self, message: InboundMessage) -> list[OutboundAction]:
        if not message.is_group:
            return [Reply(GROUP_ONLY)]
        if not message.mentioned_ids:
            return [Reply("Please mention a user to kick.")]
        return [
            RemoveParticipant(
                participant_id=participant_id,
                success_text=f"User @{participant_id} has been kicked from the group.",
                failure_text=f"Failed to kick @{participant_id}.",
            )
            for participant_id in message.mentioned_ids
        ]

    def _record_usage(self, command: str, sender_id: str) -> None:
        if self._usage_sink is None:
            return
        task = asyncio.create_task(
            self._usage_sink.record(command, sender_id, datetime.now(timezone.utc)),
            name=f"usage-{command}",
        )
        self._pending_usage.add(task)
        task.add_done_callback(self._usage_done)

    def _usage_done(self, task: asyncio.Task[None]) -> None:
        self._pending_usage.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.warning("Failed to record command usage: %s", exc)
