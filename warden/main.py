"""Application entrypoint."""

from __future__ import annotations

import asyncio
import logging
import time

from warden.bio import BioRefresher
from warden.commands import CommandRouter
from warden.config import Settings, initial_state, load_settings
from warden.db import Database
from warden.membership import GroupNotifier
from warden.models import GroupEvent
from warden.pipeline import ActionExecutor, ModerationPipeline
from warden.rate_limiter import RateLimiter
from warden.scheduler import PeriodicTask
from warden.signal_adapter import SignalAdapter
from warden.transport import TransportActionFailure
from warden.usage import DatabaseUsageSink, FanOutUsageSink, UsageSink, WebhookUsageSink

logging.basicConfig(level=logging.INFO)
LOGGER = logging.getLogger(__name__)


def build_usage_sink(settings: Settings, db: Database) -> UsageSink:
    """Local SQLite sink, plus the webhook sink when a URL is configured."""

    sinks: list[UsageSink] = [DatabaseUsageSink(db)]
    if settings.command_log_webhook_url:
        sinks.append(WebhookUsageSink(settings.command_log_webhook_url, settings.request_timeout_seconds))
    return sinks[0] if len(sinks) == 1 else FanOutUsageSink(sinks)


def log_usage_summary(db: Database) -> dict[str, int]:
    """Log how often each command has been used, most used first."""

    counts = db.command_counts()
    if counts:
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        LOGGER.info("Command usage: %s", ", ".join(f"{command}={uses}" for command, uses in ranked))
    return counts


def on_pairing_code(code: str) -> None:
    LOGGER.info("Pairing code available. Open it on the primary device: %s", code)


async def authenticate(adapter: SignalAdapter, settings: Settings) -> bool:
    """Confirm the signal-cli session, linking a new device if configured."""

    if await adapter.is_authenticated():
        LOGGER.info("Client authenticated successfully.")
        return True
    if settings.signal_link_device_name:
        try:
            await adapter.link(settings.signal_link_device_name, on_pairing_code)
        except TransportActionFailure as exc:
            LOGGER.error("Authentication failure: %s", exc.reason)
            return False
        if await adapter.is_authenticated():
            LOGGER.info("Client authenticated successfully.")
            return True
    LOGGER.error("Authentication failure: no signal-cli session for %s", settings.signal_account)
    return False


async def run() -> None:
    """Initialize app layers and start processing loop."""

    settings = load_settings()
    state = initial_state(settings)

    adapter = SignalAdapter(
        signal_cli_path=settings.signal_cli_path,
        account=settings.signal_account,
        poll_interval_seconds=settings.signal_poll_interval_seconds,
    )
    if not await authenticate(adapter, settings):
        return

    executor = ActionExecutor(adapter)
    rate_limiter = RateLimiter(threshold=settings.spam_threshold, window_seconds=settings.spam_window_seconds)
    db = Database(settings.database_path)
    db.initialize()
    router = CommandRouter(transport=adapter, usage_sink=build_usage_sink(settings, db))
    pipeline = ModerationPipeline(state=state, rate_limiter=rate_limiter, router=router, executor=executor)
    notifier = GroupNotifier(adapter, executor)
    bio_refresher = BioRefresher(state, executor)

    async def sweep_windows() -> None:
        rate_limiter.sweep(time.monotonic())

    periodic = [
        PeriodicTask("bio-refresh", settings.bio_refresh_seconds, bio_refresher.refresh),
        PeriodicTask("window-sweep", settings.window_sweep_seconds, sweep_windows),
    ]

    try:
        await adapter.prime_group_cache()
    except TransportActionFailure as exc:
        LOGGER.warning("Could not load group membership: %s", exc.reason)

    tasks = [asyncio.create_task(task.run_forever(), name=task.name) for task in periodic]
    LOGGER.info("Client is ready!")

    try:
        async for event in adapter.poll_events():
            try:
                if isinstance(event, GroupEvent):
                    await notifier.handle(event)
                else:
                    await pipeline.handle(event)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Unhandled error while processing %r", event)
    except asyncio.CancelledError:
        raise
    finally:
        for task in periodic:
            task.stop()
        for handle in tasks:
            handle.cancel()
        await router.wait_for_usage()
        log_usage_summary(db)
        LOGGER.info("Bot shutdown complete")


def main() -> None:
    """Synchronous wrapper for asyncio entrypoint."""

    asyncio.run(run())


if __name__ == "__main__":
    main()
