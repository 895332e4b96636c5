"""Core domain models used across layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal, Union


@dataclass(slots=True)
class InboundMessage:
    """Message normalized by adapters for pipeline usage."""

    origin_id: str
    sender_id: str
    text: str
    timestamp: datetime
    message_id: str | None = None
    is_group: bool = False
    mentioned_ids: list[str] = field(default_factory=list)

    @property
    def sender_key(self) -> str:
        """Identity used for rate limiting: the author, else the origin chat."""
        return self.sender_id or self.origin_id


@dataclass(slots=True)
class GroupEvent:
    """A participant joined or left a group."""

    kind: Literal["join", "leave"]
    origin_id: str
    participant_id: str


@dataclass(slots=True)
class ChatInfo:
    """Group metadata returned by the transport."""

    name: str
    participants: list[str] = field(default_factory=list)
    description: str | None = None


@dataclass(slots=True)
class CommandInvocation:
    """Parsed prefixed message."""

    command: str
    args: list[str] = field(default_factory=list)


class Verdict(Enum):
    ALLOWED = "allowed"
    SPAM_DETECTED = "spam_detected"


@dataclass(slots=True)
class Reply:
    """Quote-reply to the inbound message."""

    text: str


@dataclass(slots=True)
class SendToOrigin:
    """Send a message to a chat, optionally mentioning participants."""

    origin_id: str
    text: str
    mentions: list[str] = field(default_factory=list)


@dataclass(slots=True)
class DeleteMessage:
    """Delete the inbound message for everyone."""

    everyone: bool = True


@dataclass(slots=True)
class RemoveParticipant:
    """Remove a participant from the inbound message's group.

    The executor replies with ``success_text`` or ``failure_text`` depending on
    the outcome.
    """

    participant_id: str
    success_text: str = ""
    failure_text: str = ""


@dataclass(slots=True)
class UpdateProfile:
    """Replace the bot's profile bio."""

    bio: str


OutboundAction = Union[Reply, SendToOrigin, DeleteMessage, RemoveParticipant, UpdateProfile]
