"""
Delivery configuration.

Secrets are read from the environment when a sink is enabled without them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Literal

from whalestream.errors import ConfigError

# Env vars whose values must never be logged
DELIVERY_REDACTED_ENV_VARS = frozenset({
    "TELEGRAM_BOT_TOKEN",
    "DISCORD_WEBHOOK_URL",
    "ALERT_WEBHOOK_URL",
})


def _check_timeout(timeout_s: float) -> None:
    if timeout_s <= 0:
        raise ConfigError(f"timeout_s must be > 0, got {timeout_s}")


@dataclass
class TelegramSinkConfig:
    """Telegram sink configuration."""

    enabled: bool = False
    bot_token: str = ""  # From TELEGRAM_BOT_TOKEN env var
    chat_id: str = ""  # From TELEGRAM_CHAT_ID env var
    parse_mode: Literal["HTML", "Markdown", "MarkdownV2"] = "HTML"
    timeout_s: float = 10.0
    max_retries: int = 2

    def __post_init__(self) -> None:
        if self.enabled:
            self.bot_token = self.bot_token or os.environ.get("TELEGRAM_BOT_TOKEN", "")
            self.chat_id = self.chat_id or os.environ.get("TELEGRAM_CHAT_ID", "")
            if not self.bot_token:
                raise ConfigError("TELEGRAM_BOT_TOKEN required when Telegram sink enabled")
            if not self.chat_id:
                raise ConfigError("TELEGRAM_CHAT_ID required when Telegram sink enabled")
        _check_timeout(self.timeout_s)


@dataclass
class DiscordSinkConfig:
    """Discord channel webhook configuration."""

    enabled: bool = False
    webhook_url: str = ""  # From DISCORD_WEBHOOK_URL env var
    username: str = "Whale Alert"
    timeout_s: float = 10.0
    max_retries: int = 2

    def __post_init__(self) -> None:
        if self.enabled:
            self.webhook_url = self.webhook_url or os.environ.get("DISCORD_WEBHOOK_URL", "")
            if not self.webhook_url:
                raise ConfigError("DISCORD_WEBHOOK_URL required when Discord sink enabled")
        _check_timeout(self.timeout_s)


@dataclass
class WebhookSinkConfig:
    """Generic JSON webhook configuration."""

    enabled: bool = False
    url: str = ""  # From ALERT_WEBHOOK_URL env var
    timeout_s: float = 10.0
    max_retries: int = 2
    headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.enabled:
            self.url = self.url or os.environ.get("ALERT_WEBHOOK_URL", "")
            if not self.url:
                raise ConfigError("ALERT_WEBHOOK_URL required when Webhook sink enabled")
        _check_timeout(self.timeout_s)


@dataclass
class SinkConfig:
    """Combined sink configuration."""

    telegram: TelegramSinkConfig = field(default_factory=TelegramSinkConfig)
    discord: DiscordSinkConfig = field(default_factory=DiscordSinkConfig)
    webhook: WebhookSinkConfig = field(default_factory=WebhookSinkConfig)

    def any_enabled(self) -> bool:
        return self.telegram.enabled or self.discord.enabled or self.webhook.enabled


@dataclass
class DeliveryConfig:
    """
    Main delivery configuration.

    Attributes:
        sinks: Per-sink settings.
        dry_run: Log alerts instead of sending them.
        drain_timeout_s: How long stop() waits for queued alerts before dropping them.
    """

    sinks: SinkConfig = field(default_factory=SinkConfig)
    dry_run: bool = False
    drain_timeout_s: float = 2.0

    def __post_init__(self) -> None:
        if self.drain_timeout_s < 0:
            raise ConfigError(f"drain_timeout_s must be >= 0, got {self.drain_timeout_s}")
