"""Welcome and farewell notices for group membership changes."""

from __future__ import annotations

import logging

from warden.models import GroupEvent, OutboundAction, SendToOrigin
from warden.pipeline import ActionExecutor
from warden.transport import Transport, TransportActionFailure

LOGGER = logging.getLogger(__name__)


class GroupNotifier:
    """Greets joining participants and says goodbye to leaving ones."""

    def __init__(self, transport: Transport, executor: ActionExecutor) -> None:
        self._transport = transport
        self._executor = executor

    async def handle(self, event: GroupEvent) -> list[OutboundAction]:
        """Send the notice for ``event``. Never raises."""

        try:
            actions = await self.evaluate(event)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Could not build %s notice for %s in %s", event.kind, event.participant_id, event.origin_id)
            return []
        failed = await self._executor.apply(None, actions)
        if not failed:
            LOGGER.info("Sent %s notice for %s in %s", event.kind, event.participant_id, event.origin_id)
        return actions

    async def evaluate(self, event: GroupEvent) -> list[OutboundAction]:
        participant = event.participant_id
        if event.kind == "join":
            group_name = await self._group_name(event.origin_id)
            text = f"Welcome @{participant} to {group_name}!"
        else:
            text = f"Goodbye @{participant}, we'll miss you!"
        return [SendToOrigin(event.origin_id, text, mentions=[participant])]

    async def _group_name(self, origin_id: str) -> str:
        try:
            chat = await self._transport.get_chat(origin_id)
        except TransportActionFailure as exc:
            LOGGER.warning("Could not look up group %s for welcome: %s", origin_id, exc)
            return "the group"
        return chat.name or "the group"
