"""Chat transport interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from warden.models import ChatInfo, InboundMessage


class TransportActionFailure(RuntimeError):
    """A collaborator call (reply, send, delete, remove, ...) was rejected."""

    def __init__(self, action: str, target: str, reason: str) -> None:
        super().__init__(f"{action} failed for {target}: {reason}")
        self.action = action
        self.target = target
        self.reason = reason


class Transport(ABC):
    """Actions the moderation core needs from the chat transport."""

    @abstractmethod
    async def reply(self, message: InboundMessage, text: str) -> None:
        """Reply to a message, quoting it."""

    @abstractmethod
    async def send_to_origin(self, origin_id: str, text: str, mentions: list[str] | None = None) -> None:
        """Send text to a chat or group."""

    @abstractmethod
    async def delete_message(self, message: InboundMessage, everyone: bool = True) -> None:
        """Delete a message."""

    @abstractmethod
    async def get_chat(self, origin_id: str) -> ChatInfo:
        """Return group metadata."""

    @abstractmethod
    async def remove_participant(self, origin_id: str, participant_id: str) -> None:
        """Remove a member from a group."""

    @abstractmethod
    async def set_profile_bio(self, bio: str) -> None:
        """Update the account's profile about text."""
