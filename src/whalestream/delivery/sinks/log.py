"""Log sink: writes alerts to the application log (dry-run and local use)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from whalestream.delivery.formatter import WhaleTransferFormatter
from whalestream.delivery.sinks.base import AlertSink, DeliveryResult, SinkType

if TYPE_CHECKING:
    from whalestream.contracts import WhaleTransfer

logger = logging.getLogger(__name__)


class LogSink(AlertSink):
    """Logs each alert at INFO; always succeeds."""

    def __init__(self, formatter: WhaleTransferFormatter | None = None) -> None:
        self._formatter = formatter or WhaleTransferFormatter()
        self.delivered = 0

    @property
    def name(self) -> str:
        return "log"

    @property
    def sink_type(self) -> SinkType:
        return "log"

    async def notify(self, event: WhaleTransfer) -> DeliveryResult:
        message = self._formatter.format(event)
        logger.info(
            message.text.splitlines()[0],
            extra={
                "purpose": event.purpose,
                "reference_id": event.reference_id,
                "amount": str(event.amount),
                "currency": event.currency_unit,
                "source": event.source_account,
                "destination": event.destination_account,
            },
        )
        self.delivered += 1
        return DeliveryResult(success=True, sink_name=self.name)

    async def close(self) -> None:
        pass
