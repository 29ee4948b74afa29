"""
Alert router.

Fan-out sink: sends each WhaleTransfer to every enabled sink concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from whalestream.delivery.formatter import WhaleTransferFormatter
from whalestream.delivery.sinks.base import AlertSink, DeliveryResult, SinkType
from whalestream.delivery.sinks.discord import DiscordSink
from whalestream.delivery.sinks.log import LogSink
from whalestream.delivery.sinks.telegram import TelegramSink
from whalestream.delivery.sinks.webhook import WebhookSink

if TYPE_CHECKING:
    from whalestream.contracts import WhaleTransfer
    from whalestream.delivery.config import DeliveryConfig

logger = logging.getLogger(__name__)


@dataclass
class RouterMetrics:
    """Per-sink delivery outcomes."""

    total_received: int = 0
    total_delivered: int = 0
    total_failed: int = 0
    sink_successes: dict[str, int] = field(default_factory=dict)
    sink_failures: dict[str, int] = field(default_factory=dict)


class AlertRouter(AlertSink):
    """
    Routes WhaleTransfers to a set of sinks.

    The router itself is an AlertSink, so a supervisor can be given either one
    concrete sink or a router. The result is successful when at least one sink
    delivered.
    """

    def __init__(self, sinks: list[AlertSink], *, dry_run: bool = False) -> None:
        self._sinks = list(sinks)
        self._dry_run = dry_run
        self._dry_run_sink = LogSink()
        self._metrics = RouterMetrics()
        self._closed = False

        if not self._sinks and not dry_run:
            logger.warning("No alert sinks enabled")

    @classmethod
    def from_config(cls, config: DeliveryConfig) -> AlertRouter:
        """Build a router with every sink enabled in the config."""
        formatter = WhaleTransferFormatter()
        sinks_config = config.sinks
        sinks: list[AlertSink] = []

        if sinks_config.telegram.enabled:
            sinks.append(TelegramSink(sinks_config.telegram, formatter))
            logger.info("Telegram sink enabled")

        if sinks_config.discord.enabled:
            sinks.append(DiscordSink(sinks_config.discord, formatter))
            logger.info("Discord sink enabled")

        if sinks_config.webhook.enabled:
            sinks.append(WebhookSink(sinks_config.webhook, formatter))
            logger.info("Webhook sink enabled")

        if not sinks:
            sinks.append(LogSink(formatter))
            logger.info("No remote sinks configured, logging alerts")

        return cls(sinks, dry_run=config.dry_run)

    @property
    def name(self) -> str:
        return "router"

    @property
    def sink_type(self) -> SinkType:
        return "router"

    @property
    def sinks(self) -> list[AlertSink]:
        return list(self._sinks)

    @property
    def metrics(self) -> RouterMetrics:
        return self._metrics

    async def notify(self, event: WhaleTransfer) -> DeliveryResult:
        results = await self.notify_all(event)
        if not results:
            return DeliveryResult(success=False, sink_name=self.name, error="No sinks")
        failures = [r for r in results if not r.success]
        if len(failures) == len(results):
            errors = "; ".join(f"{r.sink_name}: {r.error}" for r in failures)
            return DeliveryResult(success=False, sink_name=self.name, error=errors)
        return DeliveryResult(success=True, sink_name=self.name)

    async def notify_all(self, event: WhaleTransfer) -> list[DeliveryResult]:
        """
        Send one event to every sink.

        Returns:
            One DeliveryResult per sink (a single log result in dry-run mode).
        """
        if self._closed:
            logger.warning("AlertRouter is closed, ignoring event")
            return []

        self._metrics.total_received += 1

        if self._dry_run:
            return [await self._dry_run_sink.notify(event)]

        results = await asyncio.gather(*[self._send_to_sink(sink, event) for sink in self._sinks])

        for result in results:
            if result.success:
                self._metrics.total_delivered += 1
                self._metrics.sink_successes[result.sink_name] = (
                    self._metrics.sink_successes.get(result.sink_name, 0) + 1
                )
            else:
                self._metrics.total_failed += 1
                self._metrics.sink_failures[result.sink_name] = (
                    self._metrics.sink_failures.get(result.sink_name, 0) + 1
                )
        return list(results)

    async def _send_to_sink(self, sink: AlertSink, event: WhaleTransfer) -> DeliveryResult:
        """Send to a single sink, converting exceptions to failed results."""
        try:
            return await sink.notify(event)
        except Exception as e:
            logger.error(
                "Sink send error",
                extra={"sink": sink.name, "error": str(e)},
            )
            return DeliveryResult(success=False, sink_name=sink.name, error=str(e))

    async def close(self) -> None:
        """Close all sinks and release resources."""
        self._closed = True
        for sink in self._sinks:
            try:
                await sink.close()
            except Exception as e:
                logger.error(
                    "Error closing sink",
                    extra={"sink": sink.name, "error": str(e)},
                )
        self._sinks.clear()
