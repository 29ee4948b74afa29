"""
Alert delivery.

Per-stream AlertDispatcher queues feeding an AlertSink (usually an AlertRouter that fans
out to Telegram, Discord, a generic webhook or the log).
"""

from whalestream.delivery.config import (
    DeliveryConfig,
    DiscordSinkConfig,
    SinkConfig,
    TelegramSinkConfig,
    WebhookSinkConfig,
)
from whalestream.delivery.dispatcher import AlertDispatcher, DispatcherMetrics
from whalestream.delivery.formatter import FormattedMessage, WhaleTransferFormatter
from whalestream.delivery.router import AlertRouter, RouterMetrics
from whalestream.delivery.sinks import (
    AlertSink,
    DeliveryResult,
    DiscordSink,
    LogSink,
    TelegramSink,
    WebhookSink,
)

__all__ = [
    "AlertDispatcher",
    "AlertRouter",
    "AlertSink",
    "DeliveryConfig",
    "DeliveryResult",
    "DiscordSink",
    "DiscordSinkConfig",
    "DispatcherMetrics",
    "FormattedMessage",
    "LogSink",
    "RouterMetrics",
    "SinkConfig",
    "TelegramSink",
    "TelegramSinkConfig",
    "WebhookSink",
    "WebhookSinkConfig",
    "WhaleTransferFormatter",
]
