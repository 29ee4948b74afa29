"""
Webhook sink.

Delivers the raw event plus rendered text to a generic HTTP endpoint.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from whalestream.delivery.formatter import WhaleTransferFormatter
from whalestream.delivery.sinks.base import DeliveryResult, SinkType
from whalestream.delivery.sinks.http import HttpAlertSink

if TYPE_CHECKING:
    from whalestream.contracts import WhaleTransfer
    from whalestream.delivery.config import WebhookSinkConfig


class WebhookSink(HttpAlertSink):
    """
    Generic webhook delivery sink.

    Sends the WhaleTransfer as JSON under "event", with the formatted text alongside.
    """

    def __init__(
        self,
        config: WebhookSinkConfig,
        formatter: WhaleTransferFormatter | None = None,
    ) -> None:
        super().__init__(timeout_s=config.timeout_s, max_retries=config.max_retries)
        self._config = config
        self._formatter = formatter or WhaleTransferFormatter()

    @property
    def name(self) -> str:
        # Don't expose webhook URL in name
        return "webhook:custom"

    @property
    def sink_type(self) -> SinkType:
        return "webhook"

    async def notify(self, event: WhaleTransfer) -> DeliveryResult:
        """Send alert to webhook."""
        if not self._config.enabled:
            return DeliveryResult(
                success=False,
                sink_name=self.name,
                error="Webhook sink not enabled",
            )

        message = self._formatter.format(event)
        payload = {
            "event": event.model_dump(mode="json"),
            "explorer_url": event.explorer_url,
            "text": message.text,
            "markdown": message.markdown,
        }
        headers = {"Content-Type": "application/json"}
        headers.update(self._config.headers)
        return await self._post(self._config.url, payload, headers)
