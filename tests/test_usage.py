from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from warden.db import Database
from warden.usage import DatabaseUsageSink, FanOutUsageSink, WebhookUsageSink

_TS = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _mock_client(status_code: int = 200) -> AsyncMock:
    response = MagicMock()
    response.status_code = status_code
    client = AsyncMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    client.post = AsyncMock(return_value=response)
    return client


@pytest.mark.asyncio
async def test_database_sink_writes_row(tmp_path):
    db = Database(tmp_path / "warden.db")
    db.initialize()

    await DatabaseUsageSink(db).record("ping", "+1", _TS)

    assert db.command_counts() == {"ping": 1}


@pytest.mark.asyncio
async def test_webhook_sink_posts_json():
    client = _mock_client()
    with patch("warden.usage.httpx.AsyncClient", return_value=client):
        await WebhookUsageSink("https://hooks.example/usage").record("ping", "+1", _TS)

    client.post.assert_awaited_once_with(
        "https://hooks.example/usage",
        json={"command": "ping", "sender_id": "+1", "timestamp": "2024-03-01T12:00:00+00:00"},
    )


@pytest.mark.asyncio
async def test_webhook_sink_raises_on_http_error():
    client = _mock_client(status_code=500)
    with patch("warden.usage.httpx.AsyncClient", return_value=client):
        with pytest.raises(RuntimeError, match="HTTP 500"):
            await WebhookUsageSink("https://hooks.example/usage").record("ping", "+1", _TS)


@pytest.mark.asyncio
async def test_fan_out_continues_past_failing_sink():
    failing = MagicMock()
    failing.record = AsyncMock(side_effect=RuntimeError("down"))
    working = MagicMock()
    working.record = AsyncMock()

    await FanOutUsageSink([failing, working]).record("ping", "+1", _TS)

    working.record.assert_awaited_once_with("ping", "+1", _TS)
