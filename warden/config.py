"""Application configuration and shared bot state."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven settings validated at startup."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    signal_cli_path: str = Field(default="signal-cli", alias="SIGNAL_CLI_PATH")
    signal_account: str = Field(..., alias="SIGNAL_ACCOUNT")
    signal_poll_interval_seconds: float = Field(default=2.0, alias="SIGNAL_POLL_INTERVAL_SECONDS")
    # When set, link this process as a secondary device under the given name.
    signal_link_device_name: str | None = Field(default=None, alias="SIGNAL_LINK_DEVICE_NAME")
    command_prefix: str = Field(default=".", alias="COMMAND_PREFIX")
    spam_threshold: int = Field(default=5, alias="SPAM_THRESHOLD", ge=1)
    spam_window_seconds: float = Field(default=10.0, alias="SPAM_WINDOW_SECONDS", gt=0)
    bio_refresh_seconds: float = Field(default=59.0, alias="BIO_REFRESH_SECONDS", gt=0)
    window_sweep_seconds: float = Field(default=300.0, alias="WINDOW_SWEEP_SECONDS", gt=0)
    database_path: Path = Field(default=Path("warden.db"), alias="DATABASE_PATH")
    command_log_webhook_url: str | None = Field(default=None, alias="COMMAND_LOG_WEBHOOK_URL")
    request_timeout_seconds: float = Field(default=10.0, alias="REQUEST_TIMEOUT_SECONDS")

    @field_validator("command_prefix")
    @classmethod
    def _prefix_not_blank(cls, value: str) -> str:
        if not value or value.isspace():
            raise ValueError("COMMAND_PREFIX must be a non-empty string")
        return value


def load_settings() -> Settings:
    """Load and validate settings."""

    return Settings()


@dataclass(slots=True)
class BotState:
    """Process-wide mutable bot configuration.

    ``prefix`` and ``bio_text`` change only through command handlers and the
    bio refresher. ``start_time`` is a monotonic reading taken at startup.
    """

    prefix: str = "."
    bio_text: str = ""
    start_time: float = field(default_factory=time.monotonic)

    def set_prefix(self, prefix: str) -> None:
        if not prefix:
            raise ValueError("prefix must be non-empty")
        self.prefix = prefix

    def uptime_seconds(self, now: float | None = None) -> float:
        current = time.monotonic() if now is None else now
        return max(0.0, current - self.start_time)


def initial_state(settings: Settings) -> BotState:
    """Build the startup BotState from settings."""

    return BotState(prefix=settings.command_prefix)
