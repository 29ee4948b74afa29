"""Alert sinks."""

from whalestream.delivery.sinks.base import AlertSink, DeliveryResult
from whalestream.delivery.sinks.discord import DiscordSink
from whalestream.delivery.sinks.http import HttpAlertSink
from whalestream.delivery.sinks.log import LogSink
from whalestream.delivery.sinks.telegram import TelegramSink
from whalestream.delivery.sinks.webhook import WebhookSink

__all__ = [
    "AlertSink",
    "DeliveryResult",
    "DiscordSink",
    "HttpAlertSink",
    "LogSink",
    "TelegramSink",
    "WebhookSink",
]
