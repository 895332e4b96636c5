"""Signal CLI adapter."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable

from warden.models import ChatInfo, GroupEvent, InboundMessage
from warden.transport import Transport, TransportActionFailure

LOGGER = logging.getLogger(__name__)

_UUID_RE = re.compile(r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}")


class SignalAdapter(Transport):
    """Transport backed by signal-cli JSON commands."""

    def __init__(
        self,
        signal_cli_path: str,
        account: str,
        poll_interval_seconds: float,
    ) -> None:
        self._signal_cli_path = signal_cli_path
        self._account = account
        self._poll_interval_seconds = poll_interval_seconds
        self._group_members: dict[str, set[str]] = {}

    async def _run(self, *args: str, action: str, target: str, json_output: bool = False) -> str:
        cmd = [self._signal_cli_path]
        if json_output:
            cmd.extend(["-o", "json"])
        cmd.extend(["-a", self._account, *args])
        process = await _spawn(cmd, action=action, target=target)
        try:
            stdout, stderr = await process.communicate()
        except OSError as exc:
            raise TransportActionFailure(action, target, str(exc)) from exc
        if process.returncode != 0:
            reason = stderr.decode(errors="replace").strip() or f"exit code {process.returncode}"
            raise TransportActionFailure(action, target, reason)
        return stdout.decode(errors="replace")

    # -- lifecycle -------------------------------------------------------

    async def is_authenticated(self) -> bool:
        """Return True if signal-cli has a registered session for the account."""

        try:
            process = await _spawn(
                [self._signal_cli_path, "-o", "json", "listAccounts"],
                action="listAccounts",
                target=self._account,
            )
            stdout, stderr = await process.communicate()
        except (TransportActionFailure, OSError) as exc:
            LOGGER.warning("signal-cli listAccounts could not run: %s", exc)
            return False
        if process.returncode != 0:
            LOGGER.warning("signal-cli listAccounts failed: %s", stderr.decode(errors="replace").strip())
            return False
        try:
            accounts = json.loads(stdout.decode(errors="replace") or "[]")
        except json.JSONDecodeError:
            return False
        return any(isinstance(a, dict) and a.get("number") == self._account for a in accounts)

    async def link(self, device_name: str, on_pairing_code: Callable[[str], None]) -> None:
        """Link this host as a secondary device.

        signal-cli prints the ``sgnl://linkdevice`` URI first and exits once the
        primary device has scanned it.
        """
        process = await _spawn(
            [self._signal_cli_path, "link", "-n", device_name],
            action="link",
            target=device_name,
        )
        assert process.stdout is not None
        try:
            first_line = (await process.stdout.readline()).decode(errors="replace").strip()
            if first_line:
                on_pairing_code(first_line)
            _, stderr = await process.communicate()
        except OSError as exc:
            raise TransportActionFailure("link", device_name, str(exc)) from exc
        if process.returncode != 0:
            raise TransportActionFailure("link", device_name, stderr.decode(errors="replace").strip())

    # -- inbound ---------------------------------------------------------

    async def poll_events(self) -> AsyncIterator[InboundMessage | GroupEvent]:
        """Poll receive endpoint and yield normalized messages and group events."""

        while True:
            try:
                stdout = await self._run(
                    "receive",
                    "-t",
                    str(int(self._poll_interval_seconds)),
                    action="receive",
                    target=self._account,
                    json_output=True,
                )
            except TransportActionFailure as exc:
                LOGGER.warning("signal-cli receive failed: %s", exc.reason)
                await asyncio.sleep(self._poll_interval_seconds)
                continue

            for line in stdout.splitlines():
                line = line.strip()
                if not line:
                    continue
                try:
                    payload = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if not isinstance(payload, dict):
                    continue
                group_id = _group_update_id(payload)
                if group_id is not None:
                    for event in await self._membership_changes(group_id):
                        yield event
                    continue
                try:
                    message = _to_message(payload)
                except (KeyError, TypeError, ValueError):
                    continue
                if message is not None:
                    yield message

    async def prime_group_cache(self) -> None:
        """Remember current members of every group so later updates can be diffed."""

        stdout = await self._run("listGroups", "-d", action="listGroups", target=self._account, json_output=True)
        for group in _load_json_list(stdout):
            group_id = group.get("id")
            if isinstance(group_id, str):
                self._group_members[group_id] = _member_ids(group.get("members"))
        LOGGER.info("Cached membership for %d groups", len(self._group_members))

    async def _membership_changes(self, group_id: str) -> list[GroupEvent]:
        try:
            chat = await self.get_chat(group_id)
        except TransportActionFailure as exc:
            LOGGER.warning("Could not refresh members of %s: %s", group_id, exc.reason)
            return []
        current = set(chat.participants)
        previous = self._group_members.get(group_id)
        self._group_members[group_id] = current
        if previous is None:
            return []
        events = [GroupEvent("join", group_id, member) for member in sorted(current - previous)]
        events.extend(GroupEvent("leave", group_id, member) for member in sorted(previous - current))
        return events

    # -- actions ---------------------------------------------------------

    async def reply(self, message: InboundMessage, text: str) -> None:
        args = ["send", "-m", text, *_recipient_args(message.origin_id, message.is_group)]
        if message.message_id:
            args.extend(["--quote-timestamp", message.message_id, "--quote-author", message.sender_id])
        await self._run(*args, action="reply", target=message.origin_id)

    async def send_to_origin(self, origin_id: str, text: str, mentions: list[str] | None = None) -> None:
        args = ["send", "-m", text, *_recipient_args(origin_id, _looks_like_group(origin_id))]
        for mention in mentions or []:
            span = mention_span(text, mention)
            if span is not None:
                args.extend(["--mention", f"{span[0]}:{span[1]}:{mention}"])
        await self._run(*args, action="send", target=origin_id)

    async def delete_message(self, message: InboundMessage, everyone: bool = True) -> None:
        if not everyone:
            raise TransportActionFailure("delete", message.origin_id, "signal-cli only supports remote delete")
        if not message.message_id:
            raise TransportActionFailure("delete", message.origin_id, "message has no timestamp")
        await self._run(
            "remoteDelete",
            "-t",
            message.message_id,
            *_recipient_args(message.origin_id, message.is_group),
            action="delete",
            target=message.origin_id,
        )

    async def get_chat(self, origin_id: str) -> ChatInfo:
        stdout = await self._run("listGroups", "-d", "-g", origin_id, action="get_chat", target=origin_id, json_output=True)
        groups = _load_json_list(stdout)
        if not groups:
            raise TransportActionFailure("get_chat", origin_id, "group not found")
        group = groups[0]
        return ChatInfo(
            name=str(group.get("name") or ""),
            participants=sorted(_member_ids(group.get("members"))),
            description=group.get("description") or None,
        )

    async def remove_participant(self, origin_id: str, participant_id: str) -> None:
        await self._run(
            "updateGroup",
            "-g",
            origin_id,
            "--remove-member",
            participant_id,
            action="remove_participant",
            target=participant_id,
        )

    async def set_profile_bio(self, bio: str) -> None:
        await self._run("updateProfile", "--about", bio, action="set_profile_bio", target=self._account)


async def _spawn(cmd: list[str], action: str, target: str) -> asyncio.subprocess.Process:
    try:
        return await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise TransportActionFailure(action, target, f"could not start {cmd[0]}: {exc}") from exc


def mention_span(text: str, participant_id: str) -> tuple[int, int] | None:
    """Return (start, length) of ``@participant_id`` in UTF-16 code units."""
    token = f"@{participant_id}"
    index = text.find(token)
    if index < 0:
        return None
    return _utf16_len(text[:index]), _utf16_len(token)


def _utf16_len(text: str) -> int:
    return len(text.encode("utf-16-le")) // 2


def _recipient_args(origin_id: str, is_group: bool) -> list[str]:
    return ["-g", origin_id] if is_group else [origin_id]


def _looks_like_group(origin_id: str) -> bool:
    # Direct recipients are E.164 numbers or UUIDs; anything else is a base64 group id.
    return not (origin_id.startswith("+") or _UUID_RE.fullmatch(origin_id))


def _load_json_list(raw: str) -> list[dict[str, Any]]:
    try:
        data = json.loads(raw or "[]")
    except json.JSONDecodeError:
        return []
    if isinstance(data, dict):
        data = [data]
    return [item for item in data if isinstance(item, dict)] if isinstance(data, list) else []


def _member_ids(raw: object) -> set[str]:
    members: set[str] = set()
    if not isinstance(raw, list):
        return members
    for item in raw:
        if isinstance(item, str):
            members.add(item)
        elif isinstance(item, dict):
            member = item.get("number") or item.get("uuid")
            if member:
                members.add(str(member))
    return members


def _group_update_id(payload: dict[str, object]) -> str | None:
    envelope = payload.get("envelope")
    if not isinstance(envelope, dict):
        return None
    data_message = envelope.get("dataMessage")
    if not isinstance(data_message, dict):
        return None
    group_info = data_message.get("groupInfo")
    if not isinstance(group_info, dict) or group_info.get("type") != "UPDATE":
        return None
    group_id = group_info.get("groupId")
    return group_id if isinstance(group_id, str) else None


def _to_message(payload: dict[str, object]) -> InboundMessage | None:
    envelope = payload.get("envelope")
    if not isinstance(envelope, dict):
        return None
    data_message = envelope.get("dataMessage")
    if not isinstance(data_message, dict):
        return None

    text = data_message.get("message")
    # Not stripped: command prefixes only match at the very start of the body.
    text = text if isinstance(text, str) else ""
    if not text.strip():
        return None

    source = str(envelope.get("sourceNumber") or envelope.get("source") or envelope.get("sourceUuid") or "")
    timestamp_ms = int(envelope.get("timestamp") or 0)
    timestamp = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)

    group_info = data_message.get("groupInfo")
    if isinstance(group_info, dict) and isinstance(group_info.get("groupId"), str):
        origin_id = group_info["groupId"]
        is_group = True
    else:
        origin_id = source
        is_group = False

    mentions: list[str] = []
    raw_mentions = data_message.get("mentions")
    if isinstance(raw_mentions, list):
        for mention in raw_mentions:
            if not isinstance(mention, dict):
                continue
            member = mention.get("number") or mention.get("uuid")
            if member and str(member) not in mentions:
                mentions.append(str(member))

    return InboundMessage(
        origin_id=origin_id,
        sender_id=source,
        text=text,
        timestamp=timestamp,
        message_id=str(envelope.get("timestamp") or "") or None,
        is_group=is_group,
        mentioned_ids=mentions,
    )
