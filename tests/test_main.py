import logging
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from warden.config import Settings
from warden.db import Database
from warden.main import authenticate, build_usage_sink, log_usage_summary
from warden.transport import TransportActionFailure
from warden.usage import DatabaseUsageSink, FanOutUsageSink


def _settings(tmp_path, **overrides) -> Settings:
    values = {"SIGNAL_ACCOUNT": "+15550000", "DATABASE_PATH": tmp_path / "warden.db", **overrides}
    return Settings(_env_file=None, **values)


def _db(tmp_path) -> Database:
    db = Database(tmp_path / "warden.db")
    db.initialize()
    return db


def test_usage_sink_defaults_to_database(tmp_path):
    sink = build_usage_sink(_settings(tmp_path), _db(tmp_path))
    assert isinstance(sink, DatabaseUsageSink)


def test_usage_sink_adds_webhook_when_configured(tmp_path):
    settings = _settings(tmp_path, COMMAND_LOG_WEBHOOK_URL="https://hooks.example/usage")
    sink = build_usage_sink(settings, _db(tmp_path))
    assert isinstance(sink, FanOutUsageSink)


def test_usage_summary_logs_most_used_first(tmp_path, caplog):
    db = _db(tmp_path)
    for command in ("help", "ping", "ping"):
        db.record_command(command, "+1", datetime.now(timezone.utc))

    with caplog.at_level(logging.INFO, logger="warden.main"):
        counts = log_usage_summary(db)

    assert counts == {"ping": 2, "help": 1}
    assert "Command usage: ping=2, help=1" in caplog.text


def test_usage_summary_silent_when_empty(tmp_path, caplog):
    with caplog.at_level(logging.INFO, logger="warden.main"):
        assert log_usage_summary(_db(tmp_path)) == {}
    assert "Command usage" not in caplog.text


@pytest.mark.asyncio
async def test_authenticate_with_existing_session(tmp_path):
    adapter = MagicMock()
    adapter.is_authenticated = AsyncMock(return_value=True)
    adapter.link = AsyncMock()

    assert await authenticate(adapter, _settings(tmp_path)) is True
    adapter.link.assert_not_awaited()


@pytest.mark.asyncio
async def test_authenticate_fails_without_session_or_link_name(tmp_path):
    adapter = MagicMock()
    adapter.is_authenticated = AsyncMock(return_value=False)
    adapter.link = AsyncMock()

    assert await authenticate(adapter, _settings(tmp_path)) is False
    adapter.link.assert_not_awaited()


@pytest.mark.asyncio
async def test_authenticate_links_new_device(tmp_path):
    adapter = MagicMock()
    adapter.is_authenticated = AsyncMock(side_effect=[False, True])
    adapter.link = AsyncMock()

    assert await authenticate(adapter, _settings(tmp_path, SIGNAL_LINK_DEVICE_NAME="warden")) is True
    assert adapter.link.await_args.args[0] == "warden"


@pytest.mark.asyncio
async def test_authenticate_link_failure(tmp_path):
    adapter = MagicMock()
    adapter.is_authenticated = AsyncMock(return_value=False)
    adapter.link = AsyncMock(side_effect=TransportActionFailure("link", "warden", "timed out"))

    assert await authenticate(adapter, _settings(tmp_path, SIGNAL_LINK_DEVICE_NAME="warden")) is False
